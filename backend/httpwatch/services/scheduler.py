"""Scheduler service - selects due monitors and runs their check pipelines.

A batch is one pass: list enabled monitors, keep the due ones, and run a
pipeline per monitor under a fixed concurrency ceiling:

    probe -> record check -> read last event -> transition
          -> update monitor -> record event -> refresh stats -> alert

Batches are started by the cron endpoint, or by the in-process
APScheduler when SCHEDULER_ENABLED is set. The time budget keeps a batch
inside the external trigger's deadline; monitors whose pipeline has not
started when it runs out are skipped and picked up by the next batch.
A started pipeline probes with its timeout cut to what is left of the
budget (never below MIN_PROBE_TIMEOUT_MS); alert delivery is not cut, so
a batch can still overrun by its notification retries.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..schemas.monitor import MonitorSnapshot
from ..utils.time_utils import isoformat_z, utcnow
from .alerter import AlerterService, MonitorAlertInfo, alerter_service
from .checker import CheckerService, ProbeOutcome, checker_service
from .history import HistoryRecorder
from .state_machine import (
    RESULT_DEGRADED,
    RESULT_DOWN,
    RESULT_RECOVERED,
    Transition,
    build_monitor_update,
    compute_transition,
)
from .store import (
    AccountDirectory,
    MonitorNotFoundError,
    MonitorStore,
    StoreError,
    account_directory,
    monitor_store,
)

logger = logging.getLogger(__name__)

MIN_PROBE_TIMEOUT_MS = 1000


def is_monitor_due(monitor: MonitorSnapshot, now: datetime) -> bool:
    """Due when never checked, or when a full interval has elapsed."""
    if monitor.last_checked_at is None:
        return True
    elapsed = (now - monitor.last_checked_at).total_seconds()
    return elapsed >= monitor.interval_seconds


def select_due_monitors(monitors: Iterable[MonitorSnapshot], now: datetime) -> List[MonitorSnapshot]:
    """Enabled monitors that should be checked now."""
    return [m for m in monitors if m.enabled and is_monitor_due(m, now)]


@dataclass
class BatchSummary:
    """Aggregate counts for one batch."""
    timestamp: datetime
    checked: int = 0
    down: int = 0
    recovered: int = 0
    degraded: int = 0
    skipped: int = 0
    duration_ms: int = 0

    def record(self, result: Optional[str]):
        if result == RESULT_DOWN:
            self.down += 1
        elif result == RESULT_RECOVERED:
            self.recovered += 1
        elif result == RESULT_DEGRADED:
            self.degraded += 1

    def as_response(self) -> Dict:
        return {
            "ok": True,
            "checked": self.checked,
            "down": self.down,
            "recovered": self.recovered,
            "degraded": self.degraded,
            "skipped": self.skipped,
            "durationMs": self.duration_ms,
            "timestamp": isoformat_z(self.timestamp),
        }


@dataclass
class _InFlight:
    """Tracks concurrently running pipelines."""
    current: int = 0
    peak: int = 0

    def enter(self):
        self.current += 1
        self.peak = max(self.peak, self.current)

    def leave(self):
        self.current -= 1


class SchedulerService:
    """Runs check batches and owns the optional in-process scheduler."""

    def __init__(
        self,
        store: Optional[MonitorStore] = None,
        accounts: Optional[AccountDirectory] = None,
        checker: Optional[CheckerService] = None,
        alerter: Optional[AlerterService] = None,
        max_concurrent: Optional[int] = None,
        time_budget_seconds: Optional[float] = None,
    ):
        self.store = store or monitor_store
        self.accounts = accounts or account_directory
        self.checker = checker or checker_service
        self.alerter = alerter or alerter_service
        self.history = HistoryRecorder(self.store)
        self.max_concurrent = max_concurrent or settings.max_concurrent_checks
        self.time_budget_seconds = (
            settings.batch_time_budget_seconds if time_budget_seconds is None else time_budget_seconds
        )
        self.last_batch_peak = 0
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Start the in-process scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self._run_checks,
            trigger=IntervalTrigger(seconds=settings.scheduler_tick_seconds),
            id="run_checks",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=settings.scheduler_tick_seconds,
        )

        self.scheduler.add_job(
            self._cleanup_old_records,
            trigger=IntervalTrigger(hours=1),
            id="cleanup_old_records",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (tick={settings.scheduler_tick_seconds}s, "
            f"max_concurrent={self.max_concurrent})"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def run_batch(self) -> BatchSummary:
        """Check every due monitor once.

        Raises whatever listing the monitors raises; nothing could be
        checked in that case. Pipeline errors are logged and counted.
        """
        started = time.monotonic()
        summary = BatchSummary(timestamp=utcnow())

        monitors = await self.store.list_enabled_monitors()
        due = select_due_monitors(monitors, summary.timestamp)

        if due:
            logger.info(f"Checking {len(due)} due monitors out of {len(monitors)} enabled")

            semaphore = asyncio.Semaphore(self.max_concurrent)
            in_flight = _InFlight()
            deadline = started + self.time_budget_seconds if self.time_budget_seconds else None

            async def check_with_limit(monitor: MonitorSnapshot):
                async with semaphore:
                    if deadline is not None and time.monotonic() >= deadline:
                        summary.skipped += 1
                        return
                    summary.checked += 1
                    in_flight.enter()
                    try:
                        summary.record(await self._process_monitor(monitor, deadline))
                    except Exception as e:
                        logger.error(
                            f"Error checking monitor {monitor.name} ({monitor.id}): "
                            f"{type(e).__name__}: {e}"
                        )
                    finally:
                        in_flight.leave()

            await asyncio.gather(*[check_with_limit(m) for m in due])
            self.last_batch_peak = in_flight.peak

            if summary.skipped:
                logger.warning(
                    f"Time budget of {self.time_budget_seconds}s exhausted, "
                    f"{summary.skipped} monitors left for the next batch"
                )

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Batch complete: checked={summary.checked} down={summary.down} "
            f"recovered={summary.recovered} degraded={summary.degraded} "
            f"in {summary.duration_ms}ms"
        )
        return summary

    def _within_budget(
        self, monitor: MonitorSnapshot, deadline: Optional[float]
    ) -> MonitorSnapshot:
        """Monitor to probe, with its timeout cut to the remaining budget."""
        if deadline is None:
            return monitor
        remaining_ms = int((deadline - time.monotonic()) * 1000)
        if remaining_ms >= monitor.timeout_ms:
            return monitor
        return monitor.model_copy(
            update={"timeout_ms": max(remaining_ms, MIN_PROBE_TIMEOUT_MS)}
        )

    async def _process_monitor(
        self, monitor: MonitorSnapshot, deadline: Optional[float] = None
    ) -> Optional[str]:
        """Run one monitor's pipeline and return the transition result.

        Returns None when the pipeline was abandoned.
        """
        # The listing may be stale; the monitor could be gone or disabled
        current = await self.store.get_monitor(monitor.id)
        if current is None or not current.enabled:
            logger.info(f"Monitor {monitor.id} removed or paused before its check, skipping")
            return None

        now = utcnow()
        outcome = await self.checker.check(self._within_budget(current, deadline))

        try:
            await self.history.record_check(current, outcome, now)
            previous_event = await self.store.get_last_status_event(current.id)
        except MonitorNotFoundError:
            logger.info(f"Monitor {current.id} deleted during its check, dropping result")
            return None
        except StoreError as e:
            logger.error(
                f"Store unavailable for monitor {current.name} ({current.id}), "
                f"abandoning this check: {e}"
            )
            return None

        previous_event_at = previous_event.created_at if previous_event else None
        transition = compute_transition(current, outcome, now, previous_event_at)

        try:
            await self.store.update_monitor(current.id, build_monitor_update(transition, outcome, now))
        except MonitorNotFoundError:
            logger.info(f"Monitor {current.id} deleted during its check, dropping result")
            return None
        except StoreError as e:
            logger.error(f"Failed to update monitor {current.name} ({current.id}): {e}")

        if transition.record_event:
            await self.history.record_transition(current, transition, now, previous_event_at)

        await self.history.refresh_rolling_stats(current, now)

        if transition.status_changed:
            logger.info(
                f"Monitor {current.name} ({current.id}): "
                f"{transition.previous_status} -> {transition.new_status}"
            )

        if transition.alert:
            await self._send_alert(current, transition, outcome, now)

        return transition.result

    async def _send_alert(
        self,
        monitor: MonitorSnapshot,
        transition: Transition,
        outcome: ProbeOutcome,
        now: datetime,
    ):
        try:
            contact = await self.accounts.get_account_contact_info(monitor.account_id)
        except StoreError as e:
            logger.error(f"Contact lookup failed for account {monitor.account_id}: {e}")
            contact = None

        info = MonitorAlertInfo(
            id=monitor.id,
            name=monitor.name,
            url=monitor.url,
            method=monitor.method,
            status=transition.new_status,
            status_code=outcome.status_code,
            response_time_ms=outcome.response_time_ms,
            error=outcome.error,
            failed_checks=transition.consecutive_failures,
            downtime_seconds=transition.downtime_seconds,
            max_response_time_ms=(
                monitor.assertions.max_response_time_ms if monitor.assertions else None
            ),
        )
        result = await self.alerter.dispatch(transition.alert, info, contact, monitor.webhook_url, now)
        logger.info(f"{transition.alert} alert for monitor {monitor.id}: {result.as_dict()}")

    async def _run_checks(self):
        """Scheduler tick."""
        try:
            await self.run_batch()
        except Exception as e:
            logger.error(f"Error running checks: {type(e).__name__}: {e}")

    async def _cleanup_old_records(self):
        """Delete check results past the retention window."""
        try:
            await self.history.cleanup()
        except Exception as e:
            logger.error(f"Error cleaning up records: {type(e).__name__}: {e}")


# Global instance
scheduler_service = SchedulerService()
