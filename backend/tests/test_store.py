"""Tests for the SQLAlchemy monitor store on a temporary SQLite file."""

from datetime import timedelta

import pytest
import pytest_asyncio

from conftest import make_monitor, make_outcome, network_failure

from httpwatch.database import build_engine, build_session_factory, create_tables
from httpwatch.schemas.monitor import MonitorAssertions, MonitorCreate
from httpwatch.schemas.status import AccountContactInfo
from httpwatch.services.store import MonitorNotFoundError, SqlAccountDirectory, SqlMonitorStore
from httpwatch.utils.time_utils import utcnow


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await create_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlMonitorStore(session_factory)


def create_data(**overrides):
    data = dict(
        name="API health",
        url="https://api.example.com/health",
        interval_seconds=60,
        expected_status_codes=[200],
    )
    data.update(overrides)
    return MonitorCreate(**data)


class TestSqlMonitorStore:
    """Test monitor persistence."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        created = await store.create_monitor(
            "acct-1",
            create_data(
                headers={"Authorization": "Bearer secret-token"},
                assertions=MonitorAssertions(max_response_time_ms=800, body_contains="ok"),
            ),
            monitor_id="mon-1",
        )

        fetched = await store.get_monitor("mon-1")

        assert created == fetched
        assert fetched.status == "pending"
        assert fetched.consecutive_failures == 0
        assert fetched.headers == {"Authorization": "Bearer secret-token"}
        assert fetched.assertions.max_response_time_ms == 800
        assert fetched.assertions.body_not_contains is None
        assert fetched.enabled

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get_monitor("nope") is None

    @pytest.mark.asyncio
    async def test_list_enabled_excludes_paused(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="a")
        await store.create_monitor("acct-1", create_data(enabled=False), monitor_id="b")

        assert [m.id for m in await store.list_enabled_monitors()] == ["a"]

    @pytest.mark.asyncio
    async def test_update_monitor(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="mon-1")
        now = utcnow()

        updated = await store.update_monitor(
            "mon-1",
            {"status": "down", "consecutive_failures": 2, "last_checked_at": now, "enabled": False},
        )

        assert updated.status == "down"
        assert updated.consecutive_failures == 2
        assert updated.last_checked_at == now
        assert not updated.enabled

    @pytest.mark.asyncio
    async def test_update_assertions_from_dict(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="mon-1")

        updated = await store.update_monitor("mon-1", {"assertions": {"body_not_contains": "error"}})

        assert updated.assertions.body_not_contains == "error"
        assert updated.assertions.max_response_time_ms is None

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        with pytest.raises(MonitorNotFoundError):
            await store.update_monitor("nope", {"status": "up"})

    @pytest.mark.asyncio
    async def test_check_history_newest_first(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="mon-1")
        monitor = make_monitor()
        now = utcnow()

        await store.append_check_result("mon-1", make_outcome(monitor), now - timedelta(minutes=2))
        await store.append_check_result("mon-1", network_failure(), now - timedelta(minutes=1))
        await store.append_check_result("mon-1", make_outcome(monitor, status_code=500), now)

        page = await store.list_checks("mon-1", limit=2)

        assert page.total == 3
        assert [c.status_code for c in page.items] == [500, None]
        assert page.items[1].error == "Connection refused"

    @pytest.mark.asyncio
    async def test_status_events(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="mon-1")
        now = utcnow()
        assert await store.get_last_status_event("mon-1") is None

        first = await store.append_status_event("mon-1", "down", now - timedelta(seconds=90))
        second = await store.append_status_event(
            "mon-1", "up", now, previous_event_at=first.created_at
        )

        assert first.duration_seconds is None
        assert second.duration_seconds == 90
        assert (await store.get_last_status_event("mon-1")).id == second.id
        assert [e.status for e in await store.list_status_events("mon-1")] == ["up", "down"]

    @pytest.mark.asyncio
    async def test_calculate_stats(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="mon-1")
        monitor = make_monitor()
        now = utcnow()

        await store.append_check_result("mon-1", make_outcome(monitor, response_time_ms=100), now)
        await store.append_check_result("mon-1", make_outcome(monitor, response_time_ms=200), now)
        await store.append_check_result(
            "mon-1", make_outcome(monitor, status_code=500, response_time_ms=300), now
        )
        await store.append_check_result(
            "mon-1", make_outcome(monitor), now - timedelta(days=3)
        )

        stats = await store.calculate_stats("mon-1", now - timedelta(days=1))

        assert stats.total_checks == 3
        assert stats.successful_checks == 2
        assert stats.failed_checks == 1
        assert stats.uptime_percent == 66.67
        assert stats.avg_response_time_ms == 200

    @pytest.mark.asyncio
    async def test_stats_without_checks(self, store):
        stats = await store.calculate_stats("mon-1", utcnow())
        assert stats.uptime_percent == 100.0
        assert stats.total_checks == 0

    @pytest.mark.asyncio
    async def test_delete_checks_before(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="mon-1")
        monitor = make_monitor()
        now = utcnow()
        await store.append_check_result("mon-1", make_outcome(monitor), now - timedelta(days=40))
        await store.append_check_result("mon-1", make_outcome(monitor), now)

        deleted = await store.delete_checks_before(now - timedelta(days=30))

        assert deleted == 1
        assert (await store.list_checks("mon-1")).total == 1

    @pytest.mark.asyncio
    async def test_delete_monitor_removes_history(self, store):
        await store.create_monitor("acct-1", create_data(), monitor_id="mon-1")
        now = utcnow()
        await store.append_check_result("mon-1", make_outcome(make_monitor()), now)
        await store.append_status_event("mon-1", "up", now)

        await store.delete_monitor("mon-1")

        assert await store.get_monitor("mon-1") is None
        assert (await store.list_checks("mon-1")).total == 0
        assert await store.list_status_events("mon-1") == []
        with pytest.raises(MonitorNotFoundError):
            await store.delete_monitor("mon-1")


class TestSqlAccountDirectory:
    """Test contact lookups."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, session_factory):
        directory = SqlAccountDirectory(session_factory)
        info = AccountContactInfo(
            account_id="acct-1",
            email="ops@example.com",
            push_tokens=["token-1", "token-2"],
            chat_opt_in=False,
        )

        await directory.save_account_contact_info(info)

        assert await directory.get_account_contact_info("acct-1") == info
        assert await directory.get_account_contact_info("acct-2") is None
