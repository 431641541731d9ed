"""In-memory store implementations for tests and local development."""
import asyncio
import itertools
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..schemas.monitor import MonitorCreate, MonitorSnapshot
from ..schemas.status import (
    AccountContactInfo,
    CheckHistoryPage,
    CheckResultRead,
    MonitorStats,
    StatusEventRead,
)
from .checker import ProbeOutcome
from .state_machine import seconds_between
from .store import (
    AccountDirectory,
    MonitorNotFoundError,
    MonitorStore,
    build_stats,
    normalize_monitor_fields,
)


class InMemoryMonitorStore(MonitorStore):
    """Dictionary-backed MonitorStore."""

    def __init__(self, monitors: Optional[List[MonitorSnapshot]] = None):
        self._monitors: Dict[str, MonitorSnapshot] = {m.id: m for m in monitors or []}
        self._checks: Dict[str, List[CheckResultRead]] = defaultdict(list)
        self._events: Dict[str, List[StatusEventRead]] = defaultdict(list)
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def list_enabled_monitors(self) -> List[MonitorSnapshot]:
        return [m for m in self._monitors.values() if m.enabled]

    async def list_monitors(self, account_id: Optional[str] = None) -> List[MonitorSnapshot]:
        return [
            m for m in self._monitors.values()
            if account_id is None or m.account_id == account_id
        ]

    async def get_monitor(self, monitor_id: str) -> Optional[MonitorSnapshot]:
        return self._monitors.get(monitor_id)

    async def create_monitor(
        self, account_id: str, data: MonitorCreate, monitor_id: Optional[str] = None
    ) -> MonitorSnapshot:
        fields = normalize_monitor_fields(data.model_dump())
        fields["headers"] = fields.get("headers") or {}
        snapshot = MonitorSnapshot(id=monitor_id or uuid.uuid4().hex, account_id=account_id, **fields)
        async with self._lock:
            self._monitors[snapshot.id] = snapshot
        return snapshot

    async def update_monitor(self, monitor_id: str, fields: Dict[str, Any]) -> MonitorSnapshot:
        async with self._lock:
            current = self._monitors.get(monitor_id)
            if current is None:
                raise MonitorNotFoundError(monitor_id)
            updated = current.model_copy(update=normalize_monitor_fields(fields))
            self._monitors[monitor_id] = updated
            return updated

    async def delete_monitor(self, monitor_id: str) -> None:
        async with self._lock:
            if self._monitors.pop(monitor_id, None) is None:
                raise MonitorNotFoundError(monitor_id)
            self._checks.pop(monitor_id, None)
            self._events.pop(monitor_id, None)

    async def append_check_result(
        self, monitor_id: str, outcome: ProbeOutcome, checked_at: datetime
    ) -> CheckResultRead:
        record = CheckResultRead(
            id=next(self._ids),
            monitor_id=monitor_id,
            checked_at=checked_at,
            status=outcome.status,
            status_code=outcome.status_code,
            response_time_ms=outcome.response_time_ms,
            error=outcome.error,
            response_body_preview=outcome.response_body,
        )
        async with self._lock:
            if monitor_id not in self._monitors:
                raise MonitorNotFoundError(monitor_id)
            self._checks[monitor_id].append(record)
        return record

    async def append_status_event(
        self,
        monitor_id: str,
        status: str,
        created_at: datetime,
        previous_event_at: Optional[datetime] = None,
    ) -> StatusEventRead:
        event = StatusEventRead(
            id=next(self._ids),
            monitor_id=monitor_id,
            status=status,
            created_at=created_at,
            duration_seconds=seconds_between(previous_event_at, created_at),
        )
        async with self._lock:
            if monitor_id not in self._monitors:
                raise MonitorNotFoundError(monitor_id)
            self._events[monitor_id].append(event)
        return event

    async def get_last_status_event(self, monitor_id: str) -> Optional[StatusEventRead]:
        events = self._events.get(monitor_id)
        return events[-1] if events else None

    async def list_checks(self, monitor_id: str, limit: int = 50) -> CheckHistoryPage:
        checks = self._checks.get(monitor_id, [])
        return CheckHistoryPage(items=list(reversed(checks))[:limit], total=len(checks))

    async def list_status_events(self, monitor_id: str, limit: int = 50) -> List[StatusEventRead]:
        return list(reversed(self._events.get(monitor_id, [])))[:limit]

    async def calculate_stats(self, monitor_id: str, since: datetime) -> MonitorStats:
        checks = [c for c in self._checks.get(monitor_id, []) if c.checked_at >= since]
        successful = sum(1 for c in checks if c.status == "success")
        times = [c.response_time_ms for c in checks if c.response_time_ms is not None]
        return build_stats(len(checks), successful, sum(times) / len(times) if times else None)

    async def delete_checks_before(self, cutoff: datetime) -> int:
        deleted = 0
        async with self._lock:
            for monitor_id, checks in self._checks.items():
                kept = [c for c in checks if c.checked_at >= cutoff]
                deleted += len(checks) - len(kept)
                self._checks[monitor_id] = kept
        return deleted


class InMemoryAccountDirectory(AccountDirectory):
    """Dictionary-backed AccountDirectory."""

    def __init__(self, contacts: Optional[List[AccountContactInfo]] = None):
        self._contacts = {c.account_id: c for c in contacts or []}

    async def get_account_contact_info(self, account_id: str) -> Optional[AccountContactInfo]:
        return self._contacts.get(account_id)

    async def save_account_contact_info(self, info: AccountContactInfo) -> None:
        self._contacts[info.account_id] = info
