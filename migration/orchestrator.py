"""
Stage orchestrator - the pipeline's single state machine.

States are the migration stages plus a terminal DONE. The only way
forward is a STAGE_COMPLETE event for the active stage; each one
launches the next stage's plan (acquire data, hand it to the dispatch
engine). After the last stage a SHUTDOWN is published.
"""

import logging
from typing import Awaitable, Callable, Dict, Mapping, Optional

from migration.bus import Topic
from migration.context import MigrationContext
from migration.stages import MigrationStage, STAGE_SEQUENCE, first_stage, next_stage
from schemas.api import ProgressResponse, StageProgress

logger = logging.getLogger(__name__)

StagePlan = Callable[[MigrationStage], Awaitable[None]]

DONE = "DONE"


class StageOrchestrator:
    """
    Sequence the migration stages.

    Args:
        context: Run context (bus, tracker, store, settings)
        plans: Acquisition-and-dispatch step per stage; stages without a
            plan resolve as skipped
    """

    def __init__(self, context: MigrationContext, plans: Mapping[MigrationStage, StagePlan]):
        self.context = context
        self.plans = dict(plans)
        self.active: Optional[MigrationStage] = None
        self.done = False
        self.statuses: Dict[MigrationStage, str] = {stage: "pending" for stage in STAGE_SEQUENCE}

        context.bus.subscribe(Topic.STAGE_COMPLETE, self._on_stage_complete)
        context.bus.subscribe(Topic.USER_RESOLVED, self._on_user_resolved)

    @property
    def state(self) -> str:
        if self.done:
            return DONE
        return self.active.value if self.active else "PENDING"

    def _skip_requested(self, stage: MigrationStage) -> bool:
        settings = self.context.settings
        switches = {
            MigrationStage.LOCATIONS: settings.SKIP_LOCATIONS,
            MigrationStage.ORGANIZATIONS: settings.SKIP_ORGANIZATIONS,
            MigrationStage.ORGANIZATION_LOCATIONS: settings.SKIP_ORGANIZATION_LOCATIONS,
            MigrationStage.USERS: settings.SKIP_USERS,
            MigrationStage.USER_GROUPS: settings.SKIP_USER_GROUPS,
        }
        return switches[stage]

    async def start(self):
        await self._launch(first_stage())

    async def _on_stage_complete(self, stage: MigrationStage):
        await self.advance(stage)

    async def advance(self, completed: MigrationStage):
        """Move past ``completed`` and launch the following stage"""
        if self.done or completed != self.active:
            logger.warning(f"Ignoring completion of {completed.value}; active stage is {self.state}")
            return

        if self.statuses[completed] == "running":
            self.statuses[completed] = self._outcome(completed)

        following = next_stage(completed)
        if following is None:
            self.active = None
            self.done = True
            logger.info("All migration stages finished")
            self.context.bus.publish(Topic.SHUTDOWN, {"reason": "migration complete"})
            return

        await self._launch(following)

    def _outcome(self, stage: MigrationStage) -> str:
        if self.context.tracker.was_skipped(stage):
            return "skipped"
        failed = self.context.dispatcher.failed_count(stage)
        if failed:
            logger.warning(f"Stage {stage.value} finished with {failed} failed unit(s)")
            return "partial"
        return "completed"

    async def _launch(self, stage: MigrationStage):
        self.active = stage
        self.statuses[stage] = "running"
        self.context.store.claim(stage)

        if self._skip_requested(stage):
            self.context.tracker.skip(stage, "disabled by configuration")
            return

        plan = self.plans.get(stage)
        if plan is None:
            self.context.tracker.skip(stage, "no source for this stage")
            return

        logger.info(f"Starting stage {stage.value}")
        try:
            await plan(stage)
        except Exception as e:
            self.statuses[stage] = "failed"
            self.context.errors.report(e, stage=stage)

    def _on_user_resolved(self, payload: dict):
        username, user_id = payload["username"], payload["id"]
        self.context.store.record_user_id(MigrationStage.USERS, username, user_id)
        logger.info(f"User id set for {username}")

    def progress(self) -> ProgressResponse:
        tracker = self.context.tracker
        dispatcher = self.context.dispatcher
        return ProgressResponse(
            active_stage=self.active.value if self.active else None,
            done=self.done,
            stages=[
                StageProgress(
                    stage=stage.value,
                    status=self.statuses[stage],
                    outstanding=tracker.outstanding(stage),
                    dispatched=dispatcher.dispatched_count(stage),
                    failed=dispatcher.failed_count(stage)
                )
                for stage in STAGE_SEQUENCE
            ]
        )
