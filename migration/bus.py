"""
In-process publish/subscribe bus connecting the pipeline components.

Topics are a closed enum; each topic keeps a registry of handlers.
Plain callables run synchronously inside ``publish``; coroutine handlers
are scheduled as tasks on the bus loop and tracked until they finish,
so shutdown can cancel whatever is still pending.
"""

import asyncio
import enum
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from core.exceptions import MigrationException

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]


class Topic(str, enum.Enum):
    """Bus topics (internal contract, never exposed outside the process)"""
    STAGE_COMPLETE = "stage.complete"      # payload: MigrationStage
    STAGE_COUNT = "stage.count"            # payload: {"stage": ..., "outstanding": int}
    USER_RESOLVED = "user.resolved"        # payload: {"username": str, "id": str}
    SHUTDOWN = "app.shutdown"              # payload: {"reason": str}


class EventBus:
    """Topic -> handler registry"""

    def __init__(self):
        self._handlers: Dict[Topic, List[Handler]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.on_error: Optional[Callable[[BaseException], None]] = None

    def bind(self, loop: asyncio.AbstractEventLoop):
        """Loop used for coroutine handlers published from worker threads"""
        self._loop = loop

    def subscribe(self, topic: Topic, handler: Handler):
        self._handlers[topic].append(handler)

    def unsubscribe(self, topic: Topic, handler: Handler):
        if handler in self._handlers[topic]:
            self._handlers[topic].remove(handler)

    def publish(self, topic: Topic, payload: Any = None):
        for handler in list(self._handlers[topic]):
            if inspect.iscoroutinefunction(handler):
                self._schedule(topic, handler(payload))
            else:
                try:
                    handler(payload)
                except Exception as e:
                    self._handle_error(topic, e)

    def _schedule(self, topic: Topic, coro: Awaitable[None]):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            if self._loop is None:
                coro.close()
                raise RuntimeError(f"No event loop available to deliver {topic.value}")
            asyncio.run_coroutine_threadsafe(self._track(topic, coro), self._loop)
            return

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finished(topic, t))

    async def _track(self, topic: Topic, coro: Awaitable[None]):
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finished(topic, t))
        await asyncio.wait([task])

    def _finished(self, topic: Topic, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._handle_error(topic, exc)

    def _handle_error(self, topic: Topic, exc: BaseException):
        if self.on_error is not None:
            self.on_error(exc)
        else:
            logger.error(f"Unhandled error in {topic.value} handler: {exc}")

    async def drain(self):
        """Wait until every scheduled handler (and any it spawned) has finished"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self):
        """Cancel handlers still pending at shutdown"""
        current = asyncio.current_task()
        pending = [task for task in self._pending if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._handlers.clear()


class ErrorSink:
    """
    Process-wide error sink.

    Components hand unrecoverable errors here; the sink logs them with
    their structured context and requests an orderly shutdown.
    """

    def __init__(self, bus: EventBus):
        self.bus = bus
        self.errors: List[BaseException] = []
        bus.on_error = self.report

    def report(self, exc: BaseException, stage: Optional[Any] = None):
        self.errors.append(exc)
        stage_label = f" during {stage.value}" if stage is not None else ""

        if isinstance(exc, MigrationException):
            details = exc.to_dict()
            hint = " (transient, a re-run may succeed)" if details["retryable"] else ""
            logger.error(
                f"Migration failed{stage_label}: {exc.message}{hint}",
                extra={"error_context": details}
            )
        else:
            logger.error(
                f"Unexpected error{stage_label}: {type(exc).__name__}: {exc}",
                exc_info=exc
            )

        self.bus.publish(Topic.SHUTDOWN, {"reason": str(exc)})

    @property
    def error_count(self) -> int:
        return len(self.errors)
