"""Tests for bounded delivery retries."""

import pytest

from httpwatch.utils import retry as retry_module
from httpwatch.utils.retry import DeliveryFailed, retry_delivery


@pytest.fixture
def sleeps(monkeypatch):
    """Record backoff delays instead of sleeping."""
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(retry_module.asyncio, "sleep", fake_sleep)
    return recorded


class TestRetryDelivery:
    """Test retry_delivery."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, sleeps):
        calls = []

        async def send():
            calls.append(1)
            return True

        await retry_delivery(send, max_retries=2, base_delay=1.0)

        assert len(calls) == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_linear_backoff_until_success(self, sleeps):
        results = [False, False, True]

        async def send():
            return results.pop(0)

        await retry_delivery(send, max_retries=2, base_delay=1.0)

        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_raises(self, sleeps):
        calls = []

        async def send():
            calls.append(1)
            raise ConnectionError("unreachable")

        with pytest.raises(DeliveryFailed) as exc_info:
            await retry_delivery(send, max_retries=2, base_delay=0.5, label="webhook")

        assert len(calls) == 3
        assert sleeps == [0.5, 1.0]
        assert "webhook failed after 3 attempts" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_zero_retries_tries_once(self, sleeps):
        calls = []

        async def send():
            calls.append(1)
            return False

        with pytest.raises(DeliveryFailed):
            await retry_delivery(send, max_retries=0)

        assert len(calls) == 1
