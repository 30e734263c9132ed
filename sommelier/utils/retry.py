"""Retry with exponential backoff and jitter for async operations.

`with_retry` never raises for failures of the wrapped operation; it returns a
RetryResult describing the outcome. Cancellation is not a failure: a
CancelledError raised by the operation or by the sleep between attempts
propagates immediately.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from sommelier.utils.logger import logger


T = TypeVar("T")

JITTER_RATIO = 0.25


def _retry_everything(error: Exception) -> bool:
    return True


@dataclass(frozen=True)
class RetryOptions:
    """Backoff policy. Delays are in seconds."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retry_predicate: Callable[[Exception], bool] = field(default=_retry_everything)
    on_retry: Optional[Callable[[int, Exception], None]] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got: {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must not be negative")


@dataclass
class RetryResult(Generic[T]):
    success: bool
    value: Optional[T] = None
    error: Optional[Exception] = None
    attempts_made: int = 0


def calculate_delay(
    attempt: int,
    options: RetryOptions,
    rng: Callable[[], float] = random.random,
) -> float:
    """Compute the sleep before the next attempt.

    Args:
        attempt: The attempt that just failed (1-based).
        options: Backoff policy.
        rng: Uniform [0, 1) source, injectable for tests.

    Returns:
        float: Delay in seconds, never negative.
    """
    delay = min(options.max_delay, options.base_delay * options.exponential_base ** (attempt - 1))
    if options.jitter:
        delay += delay * JITTER_RATIO * (rng() * 2 - 1)
    return max(0.0, delay)


def _should_retry(options: RetryOptions, error: Exception) -> bool:
    try:
        return bool(options.retry_predicate(error))
    except Exception as predicate_error:
        logger.warning(f"Retry predicate failed, not retrying: {predicate_error}")
        return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> RetryResult[T]:
    """Run `operation` until it succeeds, the predicate rejects an error, or attempts run out.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        options: Backoff policy (defaults: 3 attempts, 1s base, 30s cap, x2, jitter on).
        sleep: Awaitable sleep, injectable for tests.
        rng: Jitter source, injectable for tests.

    Returns:
        RetryResult: success/value, or the last error and the number of attempts made.
    """
    options = options or RetryOptions()
    last_error: Optional[Exception] = None

    for attempt in range(1, options.max_attempts + 1):
        try:
            value = await operation()
            return RetryResult(success=True, value=value, attempts_made=attempt)
        except Exception as e:
            last_error = e

        if attempt >= options.max_attempts or not _should_retry(options, last_error):
            return RetryResult(success=False, error=last_error, attempts_made=attempt)

        if options.on_retry is not None:
            try:
                options.on_retry(attempt, last_error)
            except Exception as callback_error:
                logger.warning(f"Retry callback failed: {callback_error}")

        await sleep(calculate_delay(attempt, options, rng))

    return RetryResult(success=False, error=last_error, attempts_made=options.max_attempts)
