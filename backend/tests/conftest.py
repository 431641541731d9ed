"""Test configuration and fixtures."""

import os
import tempfile

import pytest

# Set required environment variables before the app is imported
os.environ["DATA_PATH"] = tempfile.mkdtemp(prefix="httpwatch-test-")
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["API_KEY"] = "test-api-key"
os.environ["NOTIFICATION_RETRY_DELAY_SECONDS"] = "0"
os.environ["SCHEDULER_ENABLED"] = "false"

from httpwatch.schemas.monitor import MonitorAssertions, MonitorSnapshot  # noqa: E402
from httpwatch.schemas.status import AccountContactInfo  # noqa: E402
from httpwatch.services.assertions import evaluate_assertions  # noqa: E402
from httpwatch.services.checker import ProbeOutcome  # noqa: E402
from httpwatch.services.memory_store import (  # noqa: E402
    InMemoryAccountDirectory,
    InMemoryMonitorStore,
)


def make_monitor(**overrides) -> MonitorSnapshot:
    """Build a monitor snapshot with sensible defaults."""
    data = {
        "id": "mon-1",
        "account_id": "acct-1",
        "name": "API health",
        "url": "https://api.example.com/health",
        "expected_status_codes": [200],
        "interval_seconds": 60,
        "alert_after_failures": 2,
    }
    max_response_time_ms = overrides.pop("max_response_time_ms", None)
    if max_response_time_ms is not None:
        data["assertions"] = MonitorAssertions(max_response_time_ms=max_response_time_ms)
    data.update(overrides)
    return MonitorSnapshot(**data)


def make_outcome(
    monitor: MonitorSnapshot,
    status_code: int = 200,
    response_time_ms: int = 100,
    body: str = "ok",
) -> ProbeOutcome:
    """Outcome of a response as the checker would evaluate it."""
    assertions = evaluate_assertions(
        status_code, response_time_ms, body, monitor.expected_status_codes, monitor.assertions
    )
    return ProbeOutcome(
        status="success" if assertions.passed else "failure",
        response_time_ms=response_time_ms,
        status_code=status_code,
        error=assertions.error,
        response_body=body,
        assertions=assertions,
    )


def network_failure(error: str = "Connection refused") -> ProbeOutcome:
    return ProbeOutcome(status="failure", response_time_ms=5, error=error)


class FakeChecker:
    """Returns queued outcomes per monitor id."""

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.calls = []

    async def check(self, monitor):
        self.calls.append(monitor.id)
        queued = self.outcomes.get(monitor.id)
        if callable(queued):
            return await queued(monitor)
        if isinstance(queued, list):
            return queued.pop(0)
        return queued or make_outcome(monitor)


class FakeSender:
    """Channel sender that records calls and returns a fixed result."""

    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def _send(self, *args):
        self.calls.append(args)
        if self.error:
            raise self.error
        return self.result

    async def send_email(self, *args):
        return await self._send(*args)

    async def send_to_devices(self, *args):
        return await self._send(*args)

    async def send_message(self, *args):
        return await self._send(*args)

    async def send_webhook(self, *args):
        return await self._send(*args)


@pytest.fixture
def monitor_store():
    return InMemoryMonitorStore()


@pytest.fixture
def contact():
    return AccountContactInfo(
        account_id="acct-1",
        email="ops@example.com",
        push_tokens=["a" * 64],
        chat_id="12345",
    )


@pytest.fixture
def account_directory(contact):
    return InMemoryAccountDirectory([contact])
