"""
Unit tests for the bounded retry helper
"""

import asyncio

import pytest

from core.exceptions import NotFound, RateLimitError, SourceUnavailable
from core.retry import RetryPolicy, retry_async


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestRetryPolicy:

    def test_backoff_doubles(self):
        policy = RetryPolicy(max_attempts=4, backoff_base=0.5)
        assert [policy.delay_for(i) for i in range(3)] == [0.5, 1.0, 2.0]


class TestRetryAsync:

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        calls = []

        async def operation():
            calls.append(1)
            return "ok"

        result = await retry_async(operation, RetryPolicy(max_attempts=3, backoff_base=0))
        assert result == "ok"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_retries_retryable_errors_with_backoff(self):
        sleep = RecordingSleep()
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise SourceUnavailable("upstream down")
            return "recovered"

        result = await retry_async(
            operation, RetryPolicy(max_attempts=3, backoff_base=1.0), sleep=sleep
        )

        assert result == "recovered"
        assert len(attempts) == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_raises_last_error_after_max_attempts(self):
        sleep = RecordingSleep()
        attempts = []

        async def operation():
            attempts.append(1)
            raise SourceUnavailable(f"attempt {len(attempts)}")

        with pytest.raises(SourceUnavailable) as exc_info:
            await retry_async(operation, RetryPolicy(max_attempts=3, backoff_base=0.1), sleep=sleep)

        assert exc_info.value.message == "attempt 3"
        assert len(attempts) == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_not_retried(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise NotFound("gone")

        with pytest.raises(NotFound):
            await retry_async(operation, RetryPolicy(max_attempts=5, backoff_base=0))

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_timeout_per_attempt(self):
        sleep = RecordingSleep()
        attempts = []

        async def operation():
            attempts.append(1)
            await asyncio.sleep(1)

        with pytest.raises(asyncio.TimeoutError):
            await retry_async(
                operation, RetryPolicy(max_attempts=2, backoff_base=0, timeout=0.01), sleep=sleep
            )

        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_retry_after_overrides_backoff(self):
        sleep = RecordingSleep()
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) == 1:
                raise RateLimitError("slow down", retry_after=7)
            return "ok"

        await retry_async(operation, RetryPolicy(max_attempts=2, backoff_base=1.0), sleep=sleep)
        assert sleep.delays == [7]
