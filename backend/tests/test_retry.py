"""
Tests for retry utilities.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import retry
from retry import RetryConfig, TransportError, async_retry, calculate_delay, retry_http_request


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(retry, "calculate_delay", lambda attempt, config: 0)


class TestCalculateDelay:
    def test_exponential(self):
        config = RetryConfig(base_delay=1.0, jitter=False)
        assert [calculate_delay(i, config) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert calculate_delay(10, config) == 5.0

    def test_jitter_bounds(self):
        config = RetryConfig(base_delay=4.0, jitter=True)
        for _ in range(50):
            assert 3.0 <= calculate_delay(0, config) <= 5.0


class TestAsyncRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, no_backoff):
        calls = []

        @async_retry(config=RetryConfig(max_retries=3))
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransportError("dropped")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up(self, no_backoff):
        retried = []

        @async_retry(config=RetryConfig(max_retries=2), on_retry=lambda attempt, e: retried.append(attempt))
        async def down():
            raise TransportError("down")

        with pytest.raises(TransportError):
            await down()
        assert retried == [0, 1]

    @pytest.mark.asyncio
    async def test_non_retryable_raised_immediately(self, no_backoff):
        calls = []

        @async_retry(config=RetryConfig(max_retries=3))
        async def broken():
            calls.append(1)
            raise KeyError("bad")

        with pytest.raises(KeyError):
            await broken()
        assert len(calls) == 1


class TestRetryHttpRequest:
    @pytest.mark.asyncio
    async def test_retries_on_status(self, no_backoff):
        busy = MagicMock(status=503)
        ok = MagicMock(status=200)
        session = MagicMock()
        session.request = AsyncMock(side_effect=[busy, ok])

        resp = await retry_http_request(session, "GET", "https://example.invalid")
        assert resp is ok
        busy.release.assert_called_once()
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_status_returned(self, no_backoff):
        missing = MagicMock(status=404)
        session = MagicMock()
        session.request = AsyncMock(return_value=missing)

        assert await retry_http_request(session, "GET", "https://example.invalid") is missing
        assert session.request.call_count == 1
