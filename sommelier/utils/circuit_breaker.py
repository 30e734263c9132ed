"""Async circuit breaker.

State is shared across concurrent requests, so every transition happens under
an asyncio.Lock. While half-open exactly one trial call runs; concurrent
callers are rejected with CircuitOpenError until the trial settles.
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from sommelier.utils.errors import CircuitOpenError
from sommelier.utils.logger import logger


T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops calling a failing dependency for a cooldown period.

    Args:
        name: Label used in logs and CircuitOpenError messages.
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds after the last failure before a trial call is allowed.
        clock: Monotonic time source in seconds, injectable for tests.
    """

    def __init__(
        self,
        name: str = "circuit",
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be at least 1, got: {failure_threshold}")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run `operation` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open, or half-open with a trial already running.
            Exception: Whatever `operation` raises.
        """
        is_trial = await self._acquire()
        try:
            result = await operation()
        except Exception:
            await self._on_failure(is_trial)
            raise
        except BaseException:
            # Cancelled trial: free the slot so the next caller can try
            if is_trial:
                self._trial_in_flight = False
            raise

        await self._on_success()
        return result

    async def reset(self) -> None:
        async with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False

    async def _acquire(self) -> bool:
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_time or 0.0)
                if elapsed < self.recovery_timeout:
                    raise CircuitOpenError(self.name)
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Circuit '{self.name}' half-open, allowing trial call")

            if self._trial_in_flight:
                raise CircuitOpenError(self.name)
            self._trial_in_flight = True
            return True

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"✓ Circuit '{self.name}' closed")
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False

    async def _on_failure(self, is_trial: bool) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            if is_trial:
                self._trial_in_flight = False
            if is_trial or self._failure_count >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        f"Circuit '{self.name}' opened after {self._failure_count} consecutive failures"
                    )
                self._state = CircuitState.OPEN
