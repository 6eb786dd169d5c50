"""
Unit tests for the stage orchestrator
"""

import asyncio

import httpx
import pytest
import pytest_asyncio

from core.exceptions import CSVValidationError
from migration.bus import Topic
from migration.context import MigrationContext
from migration.orchestrator import DONE, StageOrchestrator
from migration.stages import MigrationStage


@pytest_asyncio.fixture
async def context(settings, make_gateway):
    gateway = make_gateway(lambda request: httpx.Response(200))
    context = MigrationContext.create(settings, gateway=gateway)
    context.bus.bind(asyncio.get_running_loop())
    yield context
    await context.close()


@pytest.fixture
def shutdown(context):
    """Event set by the first SHUTDOWN, with its payloads"""
    event = asyncio.Event()
    reasons = []

    def on_shutdown(payload):
        reasons.append(payload["reason"])
        event.set()

    context.bus.subscribe(Topic.SHUTDOWN, on_shutdown)
    event.reasons = reasons
    return event


class TestStageOrchestrator:
    """Test stage sequencing driven by completion events"""

    @pytest.mark.asyncio
    async def test_stages_without_plans_are_skipped_in_order(self, context, shutdown):
        launched = []
        context.bus.subscribe(Topic.STAGE_COMPLETE, launched.append)
        orchestrator = StageOrchestrator(context, {})

        await orchestrator.start()
        await asyncio.wait_for(shutdown.wait(), timeout=2)

        assert launched == list(MigrationStage)
        assert orchestrator.state == DONE
        assert set(orchestrator.statuses.values()) == {"skipped"}
        assert shutdown.reasons == ["migration complete"]

    @pytest.mark.asyncio
    async def test_next_stage_waits_for_completion(self, context, shutdown):
        calls = []

        async def locations(stage):
            calls.append(stage)
            context.tracker.start(stage, 1)

        async def organizations(stage):
            calls.append(stage)
            context.tracker.start(stage, 0)

        orchestrator = StageOrchestrator(context, {
            MigrationStage.LOCATIONS: locations,
            MigrationStage.ORGANIZATIONS: organizations,
        })

        await orchestrator.start()
        await asyncio.sleep(0)
        assert calls == [MigrationStage.LOCATIONS]
        assert orchestrator.active == MigrationStage.LOCATIONS

        context.tracker.complete(MigrationStage.LOCATIONS)
        await asyncio.wait_for(shutdown.wait(), timeout=2)

        assert calls == [MigrationStage.LOCATIONS, MigrationStage.ORGANIZATIONS]
        assert orchestrator.statuses[MigrationStage.LOCATIONS] == "completed"
        assert orchestrator.statuses[MigrationStage.USERS] == "skipped"

    @pytest.mark.asyncio
    async def test_completion_for_inactive_stage_ignored(self, context):
        async def locations(stage):
            context.tracker.start(stage, 1)

        orchestrator = StageOrchestrator(context, {MigrationStage.LOCATIONS: locations})
        await orchestrator.start()

        await orchestrator.advance(MigrationStage.USERS)

        assert orchestrator.active == MigrationStage.LOCATIONS
        assert orchestrator.statuses[MigrationStage.ORGANIZATIONS] == "pending"

    @pytest.mark.asyncio
    async def test_failed_plan_reports_and_shuts_down(self, context, shutdown):
        async def locations(stage):
            raise CSVValidationError("CSV format not valid")

        orchestrator = StageOrchestrator(context, {MigrationStage.LOCATIONS: locations})
        await orchestrator.start()
        await asyncio.wait_for(shutdown.wait(), timeout=2)

        assert orchestrator.statuses[MigrationStage.LOCATIONS] == "failed"
        assert context.errors.error_count == 1
        assert "CSV format not valid" in shutdown.reasons[0]

    @pytest.mark.asyncio
    async def test_skip_switch(self, context, shutdown):
        context.settings = context.settings.copy(update={"SKIP_LOCATIONS": True})
        called = []

        async def locations(stage):
            called.append(stage)

        orchestrator = StageOrchestrator(context, {MigrationStage.LOCATIONS: locations})
        await orchestrator.start()
        await asyncio.wait_for(shutdown.wait(), timeout=2)

        assert called == []
        assert orchestrator.statuses[MigrationStage.LOCATIONS] == "skipped"

    @pytest.mark.asyncio
    async def test_resolved_users_recorded(self, context):
        async def users(stage):
            context.tracker.start(stage, 1)
            context.bus.publish(Topic.USER_RESOLVED, {"username": "Alice", "id": "u-1"})

        orchestrator = StageOrchestrator(context, {MigrationStage.USERS: users})
        orchestrator.active = MigrationStage.ORGANIZATION_LOCATIONS
        orchestrator.statuses[MigrationStage.ORGANIZATION_LOCATIONS] = "running"

        await orchestrator.advance(MigrationStage.ORGANIZATION_LOCATIONS)

        assert context.store.user_id("alice") == "u-1"

    @pytest.mark.asyncio
    async def test_progress(self, context):
        async def locations(stage):
            await context.dispatcher.push(stage, ["a", "b", "c"], noop)

        async def noop(batch):
            pass

        orchestrator = StageOrchestrator(context, {MigrationStage.LOCATIONS: locations})
        await orchestrator.start()

        progress = orchestrator.progress()

        locations_progress = progress.stages[0]
        assert locations_progress.stage == "LOCATIONS"
        assert locations_progress.outstanding == 0
        assert locations_progress.dispatched == 3
        assert len(progress.stages) == 5

    @pytest.mark.asyncio
    async def test_stage_with_failed_units_is_partial(self, context, shutdown):
        async def reject_last(batch):
            if "c" in batch:
                raise RuntimeError("destination rejected batch")

        async def locations(stage):
            await context.dispatcher.push(stage, ["a", "b", "c"], reject_last)

        orchestrator = StageOrchestrator(context, {MigrationStage.LOCATIONS: locations})
        await orchestrator.start()
        await asyncio.wait_for(shutdown.wait(), timeout=2)

        assert orchestrator.statuses[MigrationStage.LOCATIONS] == "partial"
        assert orchestrator.statuses[MigrationStage.ORGANIZATIONS] == "skipped"
        assert orchestrator.progress().stages[0].failed == 1
