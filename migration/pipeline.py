"""
Migration pipeline wiring.

Builds the run context, prepares the stage inputs (credential, location
tags, transformed CSV data) and hands the stage plans to the
orchestrator. The run ends when SHUTDOWN is published, either after the
last stage or from the error sink.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import Settings
from core.database import create_source_engine
from core.exceptions import GatewayError
from migration.auth import CredentialProvider
from migration.bus import Topic
from migration.context import MigrationContext
from migration.extractors.csv_extractor import CSVExtractor
from migration.extractors.source_db import SourceDatabaseReader
from migration.loaders.artifact_writer import ArtifactWriter
from migration.orchestrator import StageOrchestrator, StagePlan
from migration.stages import MigrationStage
from migration.transformers.hierarchy import LocationHierarchyTransformer
from migration.transformers.users import attach_organization_locations, group_users
from schemas.api import HealthResponse, ProgressResponse
from schemas.location import LocationTag
from schemas.user import UserRecord

logger = logging.getLogger(__name__)

SOURCE_STAGES = (
    MigrationStage.LOCATIONS,
    MigrationStage.ORGANIZATIONS,
    MigrationStage.ORGANIZATION_LOCATIONS,
)


def user_id_from_location(header: Optional[str]) -> Optional[str]:
    """Created-user id is the last path segment of the Location header"""
    if not header:
        return None
    user_id = header.rstrip("/").rsplit("/", 1)[-1]
    return user_id or None


def strip_untagged(record: Dict[str, Any]) -> Dict[str, Any]:
    """Drop locationTags when any tag has no destination id"""
    tags = record.get("locationTags")
    if tags and any(isinstance(tag, dict) and tag.get("id") is None for tag in tags):
        record = dict(record)
        record.pop("locationTags")
    return record


class MigrationPipeline:
    """
    One migration run.

    CSV mode (SOURCE_FILE set) builds every stage from the locations and
    users files. Otherwise locations, organizations and organization
    locations are polled from the source database and the user stages
    are skipped.
    """

    def __init__(
        self,
        settings: Settings,
        context: Optional[MigrationContext] = None,
        source_engine: Optional[AsyncEngine] = None
    ):
        self.settings = settings
        self.context = context or MigrationContext.create(settings)
        self.artifacts = ArtifactWriter(settings.DATA_DIRECTORY, self.context.run_blocking)
        self.source_engine = source_engine
        self.location_tags: Dict[str, LocationTag] = {}
        self._user_groups: Dict[str, List[UserRecord]] = {}
        self.orchestrator = StageOrchestrator(self.context, self._plans())

        self.running = False
        self.started_at: Optional[datetime] = None
        self._done: Optional[asyncio.Event] = None
        self._shutdown_reason: Optional[str] = None

    @property
    def csv_mode(self) -> bool:
        return bool(self.settings.SOURCE_FILE)

    @property
    def done(self) -> bool:
        return self._done is not None and self._done.is_set()

    def _stage_urls(self) -> Dict[MigrationStage, str]:
        return {
            MigrationStage.LOCATIONS: self.settings.LOCATION_URL,
            MigrationStage.ORGANIZATIONS: self.settings.ORGANIZATION_URL,
            MigrationStage.ORGANIZATION_LOCATIONS: self.settings.ORGANIZATION_LOCATION_URL,
        }

    def _plans(self) -> Dict[MigrationStage, StagePlan]:
        if self.csv_mode:
            return {
                MigrationStage.LOCATIONS: self._push_locations,
                MigrationStage.ORGANIZATIONS: self._push_organizations,
                MigrationStage.ORGANIZATION_LOCATIONS: self._push_organization_locations,
                MigrationStage.USERS: self._push_users,
                MigrationStage.USER_GROUPS: self._push_user_groups,
            }
        return {stage: self._poll_source for stage in SOURCE_STAGES}

    # Run lifecycle

    async def run(self) -> Dict[str, Any]:
        """Run every stage to completion (or failure) and tear down"""
        self.context.bus.bind(asyncio.get_running_loop())
        self._done = asyncio.Event()
        self.context.bus.subscribe(Topic.SHUTDOWN, self._on_shutdown)

        self.running = True
        self.started_at = datetime.now(timezone.utc)
        logger.info(f"Starting migration ({'csv' if self.csv_mode else 'source database'} mode)")

        try:
            try:
                await self.prepare()
            except Exception as e:
                self.context.errors.report(e)
            else:
                await self.orchestrator.start()

            await self._done.wait()
        finally:
            self.running = False
            await self.close()

        summary = self.summary()
        logger.info(f"Migration finished: {summary}")
        return summary

    def _on_shutdown(self, payload: Mapping[str, Any]):
        if self._done is None or self._done.is_set():
            return
        self._shutdown_reason = payload.get("reason") if payload else None
        logger.info(f"Shutting down: {self._shutdown_reason}")
        self._done.set()

    async def close(self):
        await self.context.close()
        if self.source_engine is not None:
            await self.source_engine.dispose()

    async def prepare(self):
        """
        Obtain the credential and build the CSV-mode stage inputs.

        Raises:
            AuthenticationError: If no credential can be obtained
            GatewayError: If location tags cannot be fetched
            ExtractionError: If an input file is missing or malformed
        """
        gateway = self.context.gateway
        if gateway.credential is None:
            gateway.credential = await CredentialProvider(self.settings).obtain(gateway.client)

        await self.artifacts.reset()

        if self.csv_mode:
            self.location_tags = await self.fetch_location_tags()
            await self._prepare_csv()
        else:
            self.source_engine = self.source_engine or create_source_engine(self.settings)

    async def fetch_location_tags(self) -> Dict[str, LocationTag]:
        response = await self.context.gateway.request(self.settings.LOCATION_TAG_URL, method="GET")
        if response is None or response.status_code != 200:
            raise GatewayError(
                "Unable to fetch location tags",
                context={
                    "url": self.settings.LOCATION_TAG_URL,
                    "status_code": response.status_code if response is not None else None
                }
            )

        tags = [LocationTag(**tag) for tag in response.json()]
        logger.info(f"Fetched {len(tags)} location tag(s)")
        return {tag.name: tag for tag in tags}

    async def _prepare_csv(self):
        run_blocking = self.context.run_blocking
        store = self.context.store

        if self.settings.USERS_FILE:
            users = await run_blocking(CSVExtractor(self.settings.USERS_FILE).read_users)
            self._user_groups = group_users(users)
            logger.info(f"Read {len(users)} user(s) in {len(self._user_groups)} location group(s)")

        headers, rows = await run_blocking(CSVExtractor(self.settings.SOURCE_FILE).read_rows)
        transformer = LocationHierarchyTransformer(
            self.location_tags,
            team_level=self.settings.GENERATE_TEAMS,
            geo_levels=self.settings.geo_levels()
        )
        result = await run_blocking(transformer.transform, headers, rows)

        store.claim(MigrationStage.LOCATIONS)
        store.record_locations(MigrationStage.LOCATIONS, result.new_locations, result.location_ids)
        store.record_teams(MigrationStage.LOCATIONS, result.organizations, result.organization_locations)

        await self.artifacts.write("organizations", [o.to_row() for o in result.organizations])
        await self.artifacts.write(
            "organization_locations", [ol.to_row() for ol in result.organization_locations]
        )

    # CSV-mode stage plans

    async def _deliver(self, url: str, payload=None, method: str = "POST"):
        """
        Send one request and insist the destination accepted it.

        Raises:
            GatewayError: If the request was dropped, failed or got a non-2xx response
        """
        response = await self.context.gateway.request(url, method=method, payload=payload)
        if response is None or response.is_error:
            raise GatewayError(
                f"{method} {url} was not accepted",
                context={
                    "url": url,
                    "method": method,
                    "status_code": response.status_code if response is not None else None
                }
            )
        return response

    def _poster(self, stage: MigrationStage, url: str):
        async def post(batch):
            payload = [entity.to_payload() for entity in batch]
            logger.info(f"Posting {len(payload)} {stage.label} to {url}")
            await self._deliver(url, payload=payload)
        return post

    async def _push_locations(self, stage: MigrationStage):
        await self.context.dispatcher.push(
            stage, self.context.store.new_locations, self._poster(stage, self.settings.LOCATION_URL)
        )

    async def _push_organizations(self, stage: MigrationStage):
        await self.context.dispatcher.push(
            stage, self.context.store.organizations, self._poster(stage, self.settings.ORGANIZATION_URL)
        )

    async def _push_organization_locations(self, stage: MigrationStage):
        await self.context.dispatcher.push(
            stage,
            self.context.store.organization_locations,
            self._poster(stage, self.settings.ORGANIZATION_LOCATION_URL)
        )

    async def _push_users(self, stage: MigrationStage):
        users = attach_organization_locations(self._user_groups, self.context.store.location_ids)
        self.context.store.record_users(stage, users)
        await self.context.dispatcher.push(stage, users, self._post_users)

    async def _post_users(self, batch: List[UserRecord]):
        rejected = []
        for user in batch:
            if not user.username:
                logger.warning(f"Skipping user without a username at '{user.location_key}'")
                continue

            try:
                response = await self._deliver(self.settings.USERS_URL, payload=user.to_payload())
            except GatewayError:
                rejected.append(user.username)
                continue

            user_id = user_id_from_location(response.headers.get("Location"))
            if user_id is None:
                logger.warning(f"No user id returned for {user.username}")
                continue
            self.context.bus.publish(Topic.USER_RESOLVED, {"username": user.username, "id": user_id})

        if rejected:
            raise GatewayError(
                f"{len(rejected)} of {len(batch)} user(s) not created",
                context={"usernames": rejected}
            )

    async def _push_user_groups(self, stage: MigrationStage):
        if not self.settings.USER_GROUP_ID:
            self.context.tracker.skip(stage, "USER_GROUP_ID not configured")
            return

        usernames = [user.username for user in self.context.store.users if user.username]
        await self.context.dispatcher.push(stage, usernames, self._assign_groups)

    async def _assign_groups(self, usernames: List[str]):
        unassigned = []
        for username in usernames:
            user_id = self.context.store.user_id(username)
            if user_id is None:
                logger.warning(f"No id resolved for user {username}; group not assigned")
                unassigned.append(username)
                continue
            url = self.settings.USER_GROUP_URL.format(user_id=user_id, group_id=self.settings.USER_GROUP_ID)
            try:
                await self._deliver(url, method="PUT")
            except GatewayError:
                unassigned.append(username)

        if unassigned:
            raise GatewayError(
                f"{len(unassigned)} of {len(usernames)} user(s) not added to the group",
                context={"usernames": unassigned, "group_id": self.settings.USER_GROUP_ID}
            )

    # Source-database stage plan

    def _reader(self, stage: MigrationStage) -> SourceDatabaseReader:
        prefix = f"SOURCE_{stage.value}"
        return SourceDatabaseReader(
            self.source_engine,
            stage,
            count_query=getattr(self.settings, f"{prefix}_COUNT_QUERY"),
            page_query=getattr(self.settings, f"{prefix}_PAGE_QUERY")
        )

    async def _poll_source(self, stage: MigrationStage):
        reader = self._reader(stage)
        url = self._stage_urls()[stage]
        limit = self.settings.DATA_LIMIT

        async def fetch_page(offset: int):
            return await reader.fetch_page(offset, limit)

        async def on_page(records: List[Dict[str, Any]]):
            if not records:
                return
            if stage == MigrationStage.LOCATIONS:
                records = [strip_untagged(record) for record in records]
            await self._deliver(url, payload=records)

        count = await reader.count()
        await self.context.dispatcher.poll(stage, count, fetch_page, on_page)

    # Status

    def progress(self) -> ProgressResponse:
        return self.orchestrator.progress()

    def health(self) -> HealthResponse:
        return HealthResponse(
            timestamp=datetime.now(timezone.utc),
            running=self.running,
            done=self.done,
            active_stage=self.orchestrator.active.value if self.orchestrator.active else None,
            error_count=self.context.errors.error_count,
            failed_units=self.context.dispatcher.failed_count()
        )

    def status(self) -> str:
        """
        Overall outcome.

        failed: an error reached the error sink, or no unit was delivered
            while some failed
        partial: some units failed or requests were dropped
        success: everything dispatched was accepted
        """
        dispatcher = self.context.dispatcher
        gateway = self.context.gateway
        failed_units = dispatcher.failed_count()

        if self.context.errors.error_count or (failed_units and not dispatcher.succeeded_count()):
            return "failed"
        if failed_units or gateway.dropped or gateway.failed:
            return "partial"
        return "success"

    def summary(self) -> Dict[str, Any]:
        return {
            "status": self.status(),
            "errors": self.context.errors.error_count,
            "failed_units": self.context.dispatcher.failed_count(),
            "failed_requests": self.context.gateway.failed,
            "dropped_requests": self.context.gateway.dropped,
            "resolved_users": self.context.store.resolved_user_count,
            "stages": {stage.value: status for stage, status in self.orchestrator.statuses.items()},
        }


async def run_migration(settings: Settings) -> Dict[str, Any]:
    """Run one migration with ``settings`` and return its summary"""
    pipeline = MigrationPipeline(settings)
    return await pipeline.run()
