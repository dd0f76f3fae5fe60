"""Tests for exponential-backoff retry."""

import asyncio

import pytest

from crewkit.retry import PermanentError, RetryConfig, TransientError, is_transient_error, retry_with_backoff


class TestRetryLogic:
    """Test exponential backoff retry logic."""

    @pytest.mark.asyncio
    async def test_retry_success_on_first_attempt(self):
        call_count = 0

        async def success_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await retry_with_backoff(success_func, RetryConfig(max_attempts=3, base_delay=0.01))

        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_success_after_failures(self):
        """Transient failures are retried until the call succeeds."""
        call_count = 0

        async def flaky_func():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise TransientError("Temporary failure")
            return "success"

        result = await retry_with_backoff(flaky_func, RetryConfig(max_attempts=5, base_delay=0.01))

        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_arguments_are_forwarded(self):
        async def add(a, b=0):
            return a + b

        assert await retry_with_backoff(add, None, 2, b=3) == 5

    @pytest.mark.asyncio
    async def test_retry_permanent_error_no_retry(self):
        call_count = 0

        async def permanent_error_func():
            nonlocal call_count
            call_count += 1
            raise PermanentError("Permanent failure")

        with pytest.raises(PermanentError):
            await retry_with_backoff(permanent_error_func, RetryConfig(max_attempts=3, base_delay=0.01))

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_non_transient_error_is_not_retried(self):
        call_count = 0

        async def bad_request():
            nonlocal call_count
            call_count += 1
            raise ValueError("invalid schema")

        with pytest.raises(ValueError):
            await retry_with_backoff(bad_request, RetryConfig(max_attempts=3, base_delay=0.01))

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_max_attempts_exceeded(self):
        call_count = 0

        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise TransientError("Always fails")

        with pytest.raises(TransientError):
            await retry_with_backoff(always_fails, RetryConfig(max_attempts=3, base_delay=0.01))

        assert call_count == 3

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        call_count = 0

        async def cancelled():
            nonlocal call_count
            call_count += 1
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await retry_with_backoff(cancelled, RetryConfig(max_attempts=3, base_delay=0.01))

        assert call_count == 1

    def test_exponential_backoff_calculation(self):
        config = RetryConfig(max_attempts=5, base_delay=1.0, exponential_base=2.0, max_delay=5.0, jitter_factor=0.0)

        # 1s, 2s, 4s, then capped at max_delay
        assert [config.delay_for(attempt) for attempt in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_bounds(self):
        config = RetryConfig(base_delay=1.0, jitter_factor=0.2)

        for _ in range(50):
            assert 0.8 <= config.delay_for(0) <= 1.2


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (TransientError("x"), True),
        (ConnectionError("reset"), True),
        (TimeoutError(), True),
        (RuntimeError("Error code: 429 - rate limit exceeded"), True),
        (RuntimeError("503 Service Unavailable"), True),
        (RuntimeError("The model is overloaded"), True),
        (ValueError("invalid api key"), False),
        (KeyError("missing"), False),
    ],
)
def test_is_transient_error(error, expected):
    assert is_transient_error(error) is expected
