"""
Circuit breaker for outbound destination calls.

States:
    CLOSED     calls pass through; consecutive failures are counted
    OPEN       calls are rejected until ``reset_timeout`` elapses
    HALF_OPEN  one probe call is let through; success closes the
               breaker, failure opens it again

Failures never trigger a retry here. Every failure, and every call
rejected while open, goes to the fallback, which logs and returns None.
"""

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from core.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Failure isolation wrapper with the three classic settings.

    Attributes:
        max_failures: Consecutive failures before the circuit opens (default: 5)
        timeout: Per-call timeout in seconds (default: 30.0)
        reset_timeout: Seconds before an open circuit lets a probe through (default: 10.0)
    """

    def __init__(
        self,
        name: str,
        max_failures: int = 5,
        timeout: float = 30.0,
        reset_timeout: float = 10.0,
        fallback: Optional[Callable[[BaseException], Any]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.max_failures = max_failures
        self.timeout = timeout
        self.reset_timeout = reset_timeout
        self._fallback = fallback or self._log_failure
        self._clock = clock

        self._failures = 0
        self._open_until: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._open_until is None:
            return CircuitState.CLOSED
        if self._clock() >= self._open_until:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    @property
    def failures(self) -> int:
        return self._failures

    async def call(self, operation: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run ``operation`` under the breaker; returns the fallback value on failure"""
        state = self.state

        if state == CircuitState.OPEN or (state == CircuitState.HALF_OPEN and self._probe_in_flight):
            return self._fallback(CircuitOpenError(
                f"Circuit breaker {self.name} is open",
                context={"failures": self._failures, "reset_timeout": self.reset_timeout}
            ))

        is_probe = state == CircuitState.HALF_OPEN
        if is_probe:
            logger.info(f"Circuit breaker {self.name} half-open, probing")
            self._probe_in_flight = True

        try:
            result = await asyncio.wait_for(operation(), timeout=self.timeout)
        except Exception as e:
            self._record_failure()
            return self._fallback(e)
        finally:
            if is_probe:
                self._probe_in_flight = False

        self._record_success()
        return result

    def _record_failure(self):
        self._failures += 1

        if self.state == CircuitState.HALF_OPEN or self._failures >= self.max_failures:
            self._open_until = self._clock() + self.reset_timeout
            logger.warning(
                f"Circuit breaker {self.name} opened after {self._failures} failure(s). "
                f"Calls suppressed for {self.reset_timeout} seconds."
            )

    def _record_success(self):
        if self._open_until is not None:
            logger.info(f"Circuit breaker {self.name} closed")
        self._failures = 0
        self._open_until = None

    def _log_failure(self, exc: BaseException) -> None:
        if isinstance(exc, asyncio.TimeoutError):
            logger.error(f"SERVER ERROR: request timed out after {self.timeout} seconds")
        else:
            logger.error(f"SERVER ERROR: {type(exc).__name__}: {exc}")
        return None
