"""
Tests for retry_async, RetryPolicy and MinIntervalGate.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from launch_radar.ingestion.errors import (
    DecodeError,
    RateLimitError,
    UpstreamError,
    UpstreamUnavailableError,
)
from launch_radar.ingestion.retry import (
    MinIntervalGate,
    RetryPolicy,
    is_retryable,
    retry_async,
)


class TestRetryPolicy:
    """Backoff arithmetic."""

    def test_exponential_delays(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=30.0)

        assert policy.delay_for(0) == 1.0
        assert policy.delay_for(1) == 2.0
        assert policy.delay_for(2) == 4.0

    def test_delay_capped(self):
        policy = RetryPolicy(base_delay=10.0, multiplier=10.0, max_delay=15.0)

        assert policy.delay_for(3) == 15.0

    def test_rate_limit_waits_longer(self):
        policy = RetryPolicy(base_delay=1.0, rate_limit_factor=2.0)

        assert policy.delay_for(0, rate_limited=True) == 2.0


class TestClassification:
    def test_transient_errors_retryable(self):
        assert is_retryable(UpstreamUnavailableError("down"))
        assert is_retryable(RateLimitError("slow down"))
        assert is_retryable(asyncio.TimeoutError())

    def test_terminal_errors_not_retryable(self):
        assert not is_retryable(UpstreamError("bad request", status_code=400))
        assert not is_retryable(DecodeError("garbage"))


@pytest.mark.asyncio
class TestRetryAsync:
    """Bounded attempts with backoff."""

    async def test_returns_first_success(self, no_sleep):
        operation = AsyncMock(return_value="ok")

        result = await retry_async(operation, RetryPolicy(max_attempts=3), sleep=no_sleep)

        assert result == "ok"
        assert operation.await_count == 1
        no_sleep.assert_not_awaited()

    async def test_retries_transient_then_succeeds(self, no_sleep):
        operation = AsyncMock(side_effect=[UpstreamUnavailableError("down"), "ok"])

        result = await retry_async(
            operation, RetryPolicy(max_attempts=3, base_delay=0.5), sleep=no_sleep
        )

        assert result == "ok"
        assert operation.await_count == 2
        no_sleep.assert_awaited_once_with(0.5)

    async def test_raises_last_error_when_exhausted(self, no_sleep):
        operation = AsyncMock(side_effect=RateLimitError("429", status_code=429))

        with pytest.raises(RateLimitError):
            await retry_async(operation, RetryPolicy(max_attempts=3), sleep=no_sleep)

        assert operation.await_count == 3
        # No sleep after the final attempt
        assert no_sleep.await_count == 2

    async def test_terminal_error_not_retried(self, no_sleep):
        operation = AsyncMock(side_effect=UpstreamError("bad", status_code=400))

        with pytest.raises(UpstreamError):
            await retry_async(operation, RetryPolicy(max_attempts=5), sleep=no_sleep)

        assert operation.await_count == 1

    async def test_custom_classifier(self, no_sleep):
        operation = AsyncMock(side_effect=[UpstreamUnavailableError("down"), "ok"])

        with pytest.raises(UpstreamUnavailableError):
            await retry_async(
                operation,
                RetryPolicy(max_attempts=3),
                classify=lambda e: isinstance(e, RateLimitError),
                sleep=no_sleep,
            )

    async def test_cancellation_propagates(self, no_sleep):
        operation = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await retry_async(operation, RetryPolicy(max_attempts=3), sleep=no_sleep)

        assert operation.await_count == 1


@pytest.mark.asyncio
class TestMinIntervalGate:
    """Callers are delayed, never rejected."""

    async def test_first_call_not_delayed(self, no_sleep):
        gate = MinIntervalGate(0.1, clock=lambda: 10.0, sleep=no_sleep)

        await gate.wait()

        no_sleep.assert_not_awaited()

    async def test_early_caller_waits_remaining_interval(self, no_sleep):
        times = iter([10.0, 10.04, 10.1])
        gate = MinIntervalGate(0.1, clock=lambda: next(times), sleep=no_sleep)

        await gate.wait()
        await gate.wait()

        no_sleep.assert_awaited_once()
        assert no_sleep.await_args.args[0] == pytest.approx(0.06)

    async def test_late_caller_not_delayed(self, no_sleep):
        times = iter([10.0, 10.5, 10.5])
        gate = MinIntervalGate(0.1, clock=lambda: next(times), sleep=no_sleep)

        await gate.wait()
        await gate.wait()

        no_sleep.assert_not_awaited()

    async def test_concurrent_callers_all_served(self):
        gate = MinIntervalGate(0.01)

        await asyncio.gather(*(gate.wait() for _ in range(5)))
