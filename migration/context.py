"""
Explicit per-run context threaded through every component
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.config import Settings
from migration.bus import ErrorSink, EventBus
from migration.dispatcher import DispatchEngine
from migration.gateway import ResilientGateway
from migration.state import RunStore
from migration.tracker import CompletionTracker

logger = logging.getLogger(__name__)


@dataclass
class MigrationContext:
    """Everything one migration run shares; nothing here is global"""
    settings: Settings
    bus: EventBus
    errors: ErrorSink
    tracker: CompletionTracker
    gateway: ResilientGateway
    dispatcher: DispatchEngine
    store: RunStore
    executor: ThreadPoolExecutor

    @classmethod
    def create(
        cls,
        settings: Settings,
        gateway: Optional[ResilientGateway] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ) -> "MigrationContext":
        bus = EventBus()
        tracker = CompletionTracker(bus)
        return cls(
            settings=settings,
            bus=bus,
            errors=ErrorSink(bus),
            tracker=tracker,
            gateway=gateway or ResilientGateway.from_settings(settings),
            dispatcher=DispatchEngine(
                tracker,
                batch_size=settings.DATA_LIMIT,
                interval=settings.request_interval_seconds,
                sleep=sleep
            ),
            store=RunStore(),
            executor=ThreadPoolExecutor(
                max_workers=settings.WORKER_POOL_SIZE,
                thread_name_prefix="migration-worker"
            )
        )

    async def run_blocking(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run blocking file work on the bounded worker pool"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(fn, *args))

    async def close(self):
        await self.dispatcher.cancel()
        await self.bus.close()
        await self.gateway.close()
        self.executor.shutdown(wait=False)
        logger.info("Migration context closed")
