"""Tests for umbrella_mailbox.retry."""

from __future__ import annotations

import pytest

from umbrella_mailbox.config import TransportRetryConfig
from umbrella_mailbox.retry import with_retry


@pytest.fixture
def fast_retry() -> TransportRetryConfig:
    return TransportRetryConfig(max_attempts=3, initial_wait_seconds=0.01, max_wait_seconds=0.05)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, fast_retry: TransportRetryConfig):
        call_count = 0

        @with_retry(fast_retry)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("transient")
            return "recovered"

        assert await fn() == "recovered"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error(self, fast_retry: TransportRetryConfig):
        call_count = 0

        @with_retry(fast_retry)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("still down")

        with pytest.raises(ConnectionError, match="still down"):
            await fn()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, fast_retry: TransportRetryConfig):
        call_count = 0

        @with_retry(fast_retry, retryable_exceptions=(ConnectionError,))
        async def fn():
            nonlocal call_count
            call_count += 1
            raise KeyError("bad")

        with pytest.raises(KeyError):
            await fn()
        assert call_count == 1
