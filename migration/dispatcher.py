"""
Rate-limited dispatch (push) and poll (pull) engine.

Both modes share one primitive: sleep the configured interval, then issue
one unit of work. Units are started in order but run concurrently, so
the interval is a lower bound between dispatches and response order is
free. Every unit resolves its tracker entry exactly once, success or
failure, and is counted as succeeded or failed so the run summary can
report units that never reached the destination.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, TypeVar

from migration.stages import MigrationStage
from migration.tracker import CompletionTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchAction = Callable[[List[T]], Awaitable[None]]
PageFetcher = Callable[[int], Awaitable[List[Dict[str, Any]]]]
PageHandler = Callable[[List[Dict[str, Any]]], Awaitable[None]]


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into ordered chunks of at most ``size``"""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class DispatchEngine:
    """
    Turns an entity list or a paginated source into timed, bounded requests.

    Attributes:
        batch_size: Entities per batch and records per page (data.limit)
        interval: Seconds to wait before each unit (request.interval)
    """

    def __init__(
        self,
        tracker: CompletionTracker,
        batch_size: int,
        interval: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.tracker = tracker
        self.batch_size = batch_size
        self.interval = interval
        self._sleep = sleep
        self._in_flight: Set[asyncio.Task] = set()
        self.dispatched: Dict[MigrationStage, int] = {}
        self.succeeded: Dict[MigrationStage, int] = {}
        self.failed: Dict[MigrationStage, int] = {}

    async def push(self, stage: MigrationStage, entities: Sequence[T], action: BatchAction) -> int:
        """
        Post ``entities`` in batches through ``action``.

        Returns:
            Number of batches dispatched
        """
        batches = chunked(entities, self.batch_size)
        if not batches:
            self.tracker.skip(stage, f"no {stage.label} data to migrate")
            return 0

        self.tracker.start(stage, len(batches))
        tasks = []
        for index, batch in enumerate(batches):
            await self._sleep(self.interval)
            logger.debug(f"Dispatching {stage.label} batch {index + 1}/{len(batches)} ({len(batch)} items)")
            tasks.append(self._spawn(stage, action(batch), counted=True))
            self.dispatched[stage] = self.dispatched.get(stage, 0) + len(batch)

        await asyncio.gather(*tasks, return_exceptions=True)
        return len(batches)

    async def poll(
        self,
        stage: MigrationStage,
        count: int,
        fetch_page: PageFetcher,
        on_page: PageHandler
    ) -> int:
        """
        Page through ``count`` source records, handing each page to ``on_page``.

        Returns:
            Number of counted pages
        """
        if count <= 0:
            self.tracker.skip(stage, f"no {stage.label} records in source")
            return 0

        pages = math.ceil(count / self.batch_size)
        self.tracker.start(stage, pages)

        tasks = []
        offset = 0
        index = 0
        while offset <= count:
            await self._sleep(self.interval)
            counted = index < pages

            try:
                records = await fetch_page(offset)
            except Exception as e:
                logger.error(
                    f"Failed to fetch {stage.label} page at offset {offset}: {e}",
                    extra={"error_context": {"stage": stage.value, "offset": offset}}
                )
                self._count(self.failed, stage)
                if counted:
                    self.tracker.complete(stage)
            else:
                if counted or records:
                    tasks.append(self._spawn(stage, on_page(records), counted=counted))
                    self.dispatched[stage] = self.dispatched.get(stage, 0) + len(records)

            offset += self.batch_size
            index += 1

        await asyncio.gather(*tasks, return_exceptions=True)
        return pages

    def _spawn(self, stage: MigrationStage, work: Awaitable[None], counted: bool) -> asyncio.Task:
        task = asyncio.ensure_future(self._resolve(stage, work, counted))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _resolve(self, stage: MigrationStage, work: Awaitable[None], counted: bool):
        try:
            await work
        except Exception as e:
            self._count(self.failed, stage)
            logger.error(
                f"{stage.label} unit failed: {type(e).__name__}: {e}",
                extra={"error_context": {"stage": stage.value}}
            )
        else:
            self._count(self.succeeded, stage)
        finally:
            if counted:
                self.tracker.complete(stage)

    async def cancel(self):
        """Cancel in-flight units at shutdown"""
        pending = list(self._in_flight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    def _count(counts: Dict[MigrationStage, int], stage: MigrationStage):
        counts[stage] = counts.get(stage, 0) + 1

    def dispatched_count(self, stage: MigrationStage) -> int:
        return self.dispatched.get(stage, 0)

    def failed_count(self, stage: Optional[MigrationStage] = None) -> int:
        """Units that raised or could not be fetched, for one stage or the whole run"""
        if stage is None:
            return sum(self.failed.values())
        return self.failed.get(stage, 0)

    def succeeded_count(self) -> int:
        return sum(self.succeeded.values())
