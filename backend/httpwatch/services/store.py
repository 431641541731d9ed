"""Monitor store and account directory.

The check engine only talks to these interfaces. ``SqlMonitorStore`` and
``SqlAccountDirectory`` back them with the async SQLAlchemy session; the
in-memory versions in ``memory_store`` are used for tests and local runs.
"""
import functools
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from ..database import async_session
from ..models import AccountContact, CheckResult, Monitor, StatusEvent
from ..schemas.monitor import MonitorAssertions, MonitorCreate, MonitorSnapshot
from ..schemas.status import (
    AccountContactInfo,
    CheckHistoryPage,
    CheckResultRead,
    MonitorStats,
    StatusEventRead,
)
from ..utils.db_utils import retry_on_lock
from .checker import ProbeOutcome
from .state_machine import seconds_between

logger = logging.getLogger(__name__)

ASSERTION_FIELDS = ("max_response_time_ms", "body_contains", "body_not_contains")


class StoreError(Exception):
    """The backing store could not complete an operation."""


class MonitorNotFoundError(StoreError):
    """No monitor exists with the requested id."""

    def __init__(self, monitor_id: str):
        super().__init__(f"Monitor {monitor_id} not found")
        self.monitor_id = monitor_id


def build_stats(total: int, successful: int, avg_response_time: Optional[float]) -> MonitorStats:
    """Uptime is 100% when there are no checks in the period."""
    return MonitorStats(
        uptime_percent=round(successful / total * 100, 2) if total else 100.0,
        avg_response_time_ms=int(round(avg_response_time)) if avg_response_time else 0,
        total_checks=total,
        successful_checks=successful,
        failed_checks=total - successful,
    )


def normalize_monitor_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce partial monitor fields to snapshot types."""
    normalized = dict(fields)
    assertions = normalized.get("assertions")
    if isinstance(assertions, dict):
        normalized["assertions"] = MonitorAssertions(**assertions)
    if "enabled" in normalized:
        normalized["enabled"] = bool(normalized["enabled"])
    return normalized


class MonitorStore(ABC):
    """Persistence operations used by the check engine and the API."""

    @abstractmethod
    async def list_enabled_monitors(self) -> List[MonitorSnapshot]:
        ...

    @abstractmethod
    async def list_monitors(self, account_id: Optional[str] = None) -> List[MonitorSnapshot]:
        ...

    @abstractmethod
    async def get_monitor(self, monitor_id: str) -> Optional[MonitorSnapshot]:
        ...

    @abstractmethod
    async def create_monitor(
        self, account_id: str, data: MonitorCreate, monitor_id: Optional[str] = None
    ) -> MonitorSnapshot:
        ...

    @abstractmethod
    async def update_monitor(self, monitor_id: str, fields: Dict[str, Any]) -> MonitorSnapshot:
        """Overwrite the given fields (last write wins).

        Raises:
            MonitorNotFoundError: if the monitor was deleted
        """

    @abstractmethod
    async def delete_monitor(self, monitor_id: str) -> None:
        """Delete a monitor together with its checks and status events."""

    @abstractmethod
    async def append_check_result(
        self, monitor_id: str, outcome: ProbeOutcome, checked_at: datetime
    ) -> CheckResultRead:
        ...

    @abstractmethod
    async def append_status_event(
        self,
        monitor_id: str,
        status: str,
        created_at: datetime,
        previous_event_at: Optional[datetime] = None,
    ) -> StatusEventRead:
        """Record a transition; duration is omitted without a previous event."""

    @abstractmethod
    async def get_last_status_event(self, monitor_id: str) -> Optional[StatusEventRead]:
        ...

    @abstractmethod
    async def list_checks(self, monitor_id: str, limit: int = 50) -> CheckHistoryPage:
        ...

    @abstractmethod
    async def list_status_events(self, monitor_id: str, limit: int = 50) -> List[StatusEventRead]:
        ...

    @abstractmethod
    async def calculate_stats(self, monitor_id: str, since: datetime) -> MonitorStats:
        ...

    @abstractmethod
    async def delete_checks_before(self, cutoff: datetime) -> int:
        """Delete check results older than cutoff and return how many went."""


class AccountDirectory(ABC):
    """Lookup of where an account wants its alerts delivered."""

    @abstractmethod
    async def get_account_contact_info(self, account_id: str) -> Optional[AccountContactInfo]:
        ...

    @abstractmethod
    async def save_account_contact_info(self, info: AccountContactInfo) -> None:
        ...


def _store_errors(func_):
    """Re-raise SQLAlchemy failures as StoreError."""

    @functools.wraps(func_)
    async def wrapper(*args, **kwargs):
        try:
            return await func_(*args, **kwargs)
        except SQLAlchemyError as e:
            raise StoreError(f"{func_.__name__} failed: {type(e).__name__}: {e}") from e

    return wrapper


def snapshot_from_row(row: Monitor) -> MonitorSnapshot:
    """Build the engine's immutable view of a monitor row."""
    assertions = None
    if any(getattr(row, name) is not None for name in ASSERTION_FIELDS):
        assertions = MonitorAssertions(
            max_response_time_ms=row.max_response_time_ms,
            body_contains=row.body_contains,
            body_not_contains=row.body_not_contains,
        )

    return MonitorSnapshot(
        id=row.id,
        account_id=row.account_id,
        name=row.name,
        url=row.url,
        method=row.method,
        headers=row.headers or {},
        body=row.body,
        content_type=row.content_type,
        expected_status_codes=row.expected_status_codes or [200, 201, 204],
        timeout_ms=row.timeout_ms,
        interval_seconds=row.interval_seconds,
        assertions=assertions,
        alert_after_failures=row.alert_after_failures,
        webhook_url=row.webhook_url,
        enabled=bool(row.enabled),
        status=row.status,
        last_checked_at=row.last_checked_at,
        last_response_time_ms=row.last_response_time_ms,
        last_status_code=row.last_status_code,
        last_error=row.last_error,
        last_response_body=row.last_response_body,
        consecutive_failures=row.consecutive_failures or 0,
        uptime_percent_24h=row.uptime_percent_24h,
        avg_response_time_24h=row.avg_response_time_24h,
    )


def _apply_fields(row: Monitor, fields: Dict[str, Any]):
    """Write snapshot-shaped fields onto a monitor row."""
    for key, value in normalize_monitor_fields(fields).items():
        if key == "assertions":
            for name in ASSERTION_FIELDS:
                setattr(row, name, getattr(value, name) if value is not None else None)
        elif key == "enabled":
            row.enabled = 1 if value else 0
        elif key == "id":
            continue
        else:
            setattr(row, key, value)


class SqlMonitorStore(MonitorStore):
    """MonitorStore on the async SQLAlchemy session."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session

    @_store_errors
    async def list_enabled_monitors(self) -> List[MonitorSnapshot]:
        async with self._session_factory() as session:
            result = await session.execute(select(Monitor).where(Monitor.enabled == 1))
            return [snapshot_from_row(row) for row in result.scalars().all()]

    @_store_errors
    async def list_monitors(self, account_id: Optional[str] = None) -> List[MonitorSnapshot]:
        async with self._session_factory() as session:
            query = select(Monitor).order_by(Monitor.created_at)
            if account_id:
                query = query.where(Monitor.account_id == account_id)
            result = await session.execute(query)
            return [snapshot_from_row(row) for row in result.scalars().all()]

    @_store_errors
    async def get_monitor(self, monitor_id: str) -> Optional[MonitorSnapshot]:
        async with self._session_factory() as session:
            row = await session.get(Monitor, monitor_id)
            return snapshot_from_row(row) if row else None

    @_store_errors
    async def create_monitor(
        self, account_id: str, data: MonitorCreate, monitor_id: Optional[str] = None
    ) -> MonitorSnapshot:
        async with self._session_factory() as session:
            row = Monitor(
                id=monitor_id or uuid.uuid4().hex,
                account_id=account_id,
                status="pending",
                consecutive_failures=0,
            )
            _apply_fields(row, data.model_dump())
            session.add(row)
            await retry_on_lock(session.commit)
            await session.refresh(row)
            return snapshot_from_row(row)

    @_store_errors
    async def update_monitor(self, monitor_id: str, fields: Dict[str, Any]) -> MonitorSnapshot:
        async with self._session_factory() as session:
            row = await session.get(Monitor, monitor_id)
            if row is None:
                raise MonitorNotFoundError(monitor_id)
            _apply_fields(row, fields)
            await retry_on_lock(session.commit)
            await session.refresh(row)
            return snapshot_from_row(row)

    @_store_errors
    async def delete_monitor(self, monitor_id: str) -> None:
        async with self._session_factory() as session:
            row = await session.get(Monitor, monitor_id)
            if row is None:
                raise MonitorNotFoundError(monitor_id)
            await session.execute(delete(CheckResult).where(CheckResult.monitor_id == monitor_id))
            await session.execute(delete(StatusEvent).where(StatusEvent.monitor_id == monitor_id))
            await session.delete(row)
            await retry_on_lock(session.commit)

    @_store_errors
    async def append_check_result(
        self, monitor_id: str, outcome: ProbeOutcome, checked_at: datetime
    ) -> CheckResultRead:
        async with self._session_factory() as session:
            row = CheckResult(
                monitor_id=monitor_id,
                checked_at=checked_at,
                status=outcome.status,
                status_code=outcome.status_code,
                response_time_ms=outcome.response_time_ms,
                error=outcome.error,
                response_body_preview=outcome.response_body,
            )
            session.add(row)
            await retry_on_lock(session.commit)
            return CheckResultRead.model_validate(row)

    @_store_errors
    async def append_status_event(
        self,
        monitor_id: str,
        status: str,
        created_at: datetime,
        previous_event_at: Optional[datetime] = None,
    ) -> StatusEventRead:
        async with self._session_factory() as session:
            row = StatusEvent(
                monitor_id=monitor_id,
                status=status,
                created_at=created_at,
                duration_seconds=seconds_between(previous_event_at, created_at),
            )
            session.add(row)
            await retry_on_lock(session.commit)
            return StatusEventRead.model_validate(row)

    @_store_errors
    async def get_last_status_event(self, monitor_id: str) -> Optional[StatusEventRead]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StatusEvent)
                .where(StatusEvent.monitor_id == monitor_id)
                .order_by(StatusEvent.created_at.desc(), StatusEvent.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return StatusEventRead.model_validate(row) if row else None

    @_store_errors
    async def list_checks(self, monitor_id: str, limit: int = 50) -> CheckHistoryPage:
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count(CheckResult.id)).where(CheckResult.monitor_id == monitor_id)
            )
            result = await session.execute(
                select(CheckResult)
                .where(CheckResult.monitor_id == monitor_id)
                .order_by(CheckResult.checked_at.desc(), CheckResult.id.desc())
                .limit(limit)
            )
            items = [CheckResultRead.model_validate(row) for row in result.scalars().all()]
            return CheckHistoryPage(items=items, total=total or 0)

    @_store_errors
    async def list_status_events(self, monitor_id: str, limit: int = 50) -> List[StatusEventRead]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StatusEvent)
                .where(StatusEvent.monitor_id == monitor_id)
                .order_by(StatusEvent.created_at.desc(), StatusEvent.id.desc())
                .limit(limit)
            )
            return [StatusEventRead.model_validate(row) for row in result.scalars().all()]

    @_store_errors
    async def calculate_stats(self, monitor_id: str, since: datetime) -> MonitorStats:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    func.count(CheckResult.id),
                    func.sum(case((CheckResult.status == "success", 1), else_=0)),
                    func.avg(CheckResult.response_time_ms),
                ).where(
                    CheckResult.monitor_id == monitor_id,
                    CheckResult.checked_at >= since,
                )
            )
            total, successful, avg_response_time = result.one()
            return build_stats(total or 0, int(successful or 0), avg_response_time)

    @_store_errors
    async def delete_checks_before(self, cutoff: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(delete(CheckResult).where(CheckResult.checked_at < cutoff))
            await retry_on_lock(session.commit)
            return result.rowcount or 0


class SqlAccountDirectory(AccountDirectory):
    """AccountDirectory on the account_contacts table."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session

    @_store_errors
    async def get_account_contact_info(self, account_id: str) -> Optional[AccountContactInfo]:
        async with self._session_factory() as session:
            row = await session.get(AccountContact, account_id)
            if row is None:
                return None
            return AccountContactInfo(
                account_id=row.account_id,
                email=row.email,
                push_tokens=row.push_tokens or [],
                chat_id=row.chat_id,
                email_opt_in=bool(row.email_opt_in),
                push_opt_in=bool(row.push_opt_in),
                chat_opt_in=bool(row.chat_opt_in),
            )

    @_store_errors
    async def save_account_contact_info(self, info: AccountContactInfo) -> None:
        async with self._session_factory() as session:
            row = await session.get(AccountContact, info.account_id)
            if row is None:
                row = AccountContact(account_id=info.account_id)
                session.add(row)
            row.email = info.email
            row.push_tokens = list(info.push_tokens)
            row.chat_id = info.chat_id
            row.email_opt_in = 1 if info.email_opt_in else 0
            row.push_opt_in = 1 if info.push_opt_in else 0
            row.chat_opt_in = 1 if info.chat_opt_in else 0
            await retry_on_lock(session.commit)


# Global instances
monitor_store = SqlMonitorStore()
account_directory = SqlAccountDirectory()
