"""
Retry and rate-limit primitives used by every upstream call site.

retry_async() is the single "bounded attempts with exponential backoff" loop.
MinIntervalGate serializes calls behind a minimum spacing; a caller that
arrives early is delayed, never rejected.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import RateLimitError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for retry_async."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    # Rate limits wait longer than plain outages
    rate_limit_factor: float = 2.0

    def delay_for(self, attempt: int, rate_limited: bool = False) -> float:
        """Delay before retrying after the given zero-based attempt."""
        delay = self.base_delay * (self.multiplier ** attempt)
        if rate_limited:
            delay *= self.rate_limit_factor
        return min(delay, self.max_delay)


def is_retryable(error: BaseException) -> bool:
    """Classify an error as retryable (transient) or terminal."""
    return isinstance(
        error,
        (UpstreamUnavailableError, asyncio.TimeoutError, ConnectionError),
    )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    description: str = "operation",
    classify: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run an async operation with bounded retries.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Backoff settings (defaults to RetryPolicy())
        description: Label used in log messages
        classify: Returns True if an error should be retried
        sleep: Injected for tests

    Returns:
        The operation's result

    Raises:
        The last error once attempts are exhausted, or the first terminal error.
        asyncio.CancelledError is always re-raised immediately.
    """
    policy = policy or RetryPolicy()
    last_error: Optional[BaseException] = None

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not classify(e):
                raise
            last_error = e
            if attempt + 1 >= policy.max_attempts:
                break
            delay = policy.delay_for(attempt, rate_limited=isinstance(e, RateLimitError))
            logger.warning(
                f"{description} failed ({e}), retry {attempt + 1}/{policy.max_attempts - 1} "
                f"in {delay:.2f}s"
            )
            await sleep(delay)

    logger.warning(f"{description} failed after {policy.max_attempts} attempts")
    assert last_error is not None
    raise last_error


class MinIntervalGate:
    """
    Serializes callers behind a minimum spacing between acquisitions.

    Usage:
        gate = MinIntervalGate(0.1)
        await gate.wait()
        await do_request()
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def wait(self) -> None:
        """Block until at least min_interval has passed since the last caller."""
        async with self._lock:
            if self._last is not None:
                remaining = self._min_interval - (self._clock() - self._last)
                if remaining > 0:
                    await self._sleep(remaining)
            self._last = self._clock()
