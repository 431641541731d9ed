"""History recorder - check results, status events and rolling stats."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from ..config import settings
from ..schemas.monitor import MonitorSnapshot
from ..schemas.status import CheckResultRead, StatusEventRead
from ..utils.time_utils import utcnow
from .checker import ProbeOutcome
from .state_machine import Transition
from .store import MonitorStore, StoreError

logger = logging.getLogger(__name__)

ROLLING_WINDOW = timedelta(hours=24)


class HistoryRecorder:
    """Writes a monitor's history through a MonitorStore.

    ``record_check`` raises on failure because later steps depend on it.
    The other writes are best-effort and only log.
    """

    def __init__(self, store: MonitorStore):
        self.store = store

    async def record_check(
        self, monitor: MonitorSnapshot, outcome: ProbeOutcome, checked_at: datetime
    ) -> CheckResultRead:
        return await self.store.append_check_result(monitor.id, outcome, checked_at)

    async def record_transition(
        self,
        monitor: MonitorSnapshot,
        transition: Transition,
        now: datetime,
        previous_event_at: Optional[datetime],
    ) -> Optional[StatusEventRead]:
        """Append a status event for the transition's new status."""
        try:
            return await self.store.append_status_event(
                monitor.id, transition.new_status, now, previous_event_at
            )
        except StoreError as e:
            logger.error(
                f"Failed to record status event for monitor {monitor.name} ({monitor.id}): {e}"
            )
            return None

    async def refresh_rolling_stats(self, monitor: MonitorSnapshot, now: datetime):
        """Recompute the derived 24h uptime and latency."""
        try:
            stats = await self.store.calculate_stats(monitor.id, now - ROLLING_WINDOW)
            await self.store.update_monitor(
                monitor.id,
                {
                    "uptime_percent_24h": stats.uptime_percent,
                    "avg_response_time_24h": stats.avg_response_time_ms,
                },
            )
        except StoreError as e:
            logger.warning(f"Failed to refresh stats for monitor {monitor.name} ({monitor.id}): {e}")

    async def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete check results older than the retention window."""
        days = retention_days if retention_days is not None else settings.history_retention_days
        cutoff = utcnow() - timedelta(days=days)
        deleted = await self.store.delete_checks_before(cutoff)
        logger.info(f"Cleaned up {deleted} check results older than {days} days")
        return deleted
