"""Health state machine for monitors.

Status is derived only from the previous status, the consecutive failure
count, the alert threshold and the latest probe. Nothing else may set it.

    pending/up/degraded --(failures >= threshold)--> down
    down --(success)--> up | degraded           (recovery alert)
    up/pending --(slow success)--> degraded     (degraded alert)
    degraded --(fast success)--> up             (no alert)
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..schemas.monitor import MonitorSnapshot
from .checker import ProbeOutcome

ALERT_DOWN = "down"
ALERT_RECOVERY = "recovery"
ALERT_DEGRADED = "degraded"

RESULT_OK = "ok"
RESULT_DOWN = "down"
RESULT_RECOVERED = "recovered"
RESULT_DEGRADED = "degraded"


@dataclass
class Transition:
    """What a single check does to a monitor's health state."""
    previous_status: str
    new_status: str
    consecutive_failures: int
    result: str = RESULT_OK
    alert: Optional[str] = None
    record_event: bool = False
    is_slow: bool = False
    downtime_seconds: Optional[int] = None

    @property
    def status_changed(self) -> bool:
        return self.new_status != self.previous_status


def is_healthy_response(outcome: ProbeOutcome) -> bool:
    """A response counts as healthy if it passed, or only missed the latency target.

    A slow-only response resets the consecutive-failure count, yet its check
    result is still stored as a failure, so 24h uptime counts degraded time
    as downtime.
    """
    if outcome.succeeded:
        return True
    return outcome.assertions is not None and outcome.assertions.only_response_time_failed


def seconds_between(earlier: Optional[datetime], later: datetime) -> Optional[int]:
    """Whole seconds from earlier to later, never negative; None without a start."""
    if earlier is None:
        return None
    return max(0, int((later - earlier).total_seconds()))


def compute_transition(
    monitor: MonitorSnapshot,
    outcome: ProbeOutcome,
    now: datetime,
    previous_event_at: Optional[datetime] = None,
) -> Transition:
    """Compute the next health state for a monitor after one check.

    Args:
        monitor: Snapshot of the monitor as it was before this check
        outcome: Probe outcome with evaluated assertions
        now: Time of the check
        previous_event_at: Timestamp of the latest status event, read
            before any event for this check is appended

    Returns:
        Transition describing the new status, counter, alert and event
    """
    current = monitor.status

    if not is_healthy_response(outcome):
        failures = monitor.consecutive_failures + 1
        transition = Transition(
            previous_status=current,
            new_status=current,
            consecutive_failures=failures,
        )
        if failures >= monitor.alert_after_failures and current != "down":
            transition.new_status = "down"
            transition.result = RESULT_DOWN
            transition.alert = ALERT_DOWN
            transition.record_event = True
        return transition

    max_response_time = monitor.assertions.max_response_time_ms if monitor.assertions else None
    is_slow = max_response_time is not None and outcome.response_time_ms > max_response_time

    transition = Transition(
        previous_status=current,
        new_status=current,
        consecutive_failures=0,
        is_slow=is_slow,
    )

    if current == "down":
        transition.new_status = "degraded" if is_slow else "up"
        transition.result = RESULT_RECOVERED
        transition.alert = ALERT_RECOVERY
        transition.record_event = True
        transition.downtime_seconds = seconds_between(previous_event_at, now)
    elif is_slow and current != "degraded":
        transition.new_status = "degraded"
        transition.result = RESULT_DEGRADED
        transition.alert = ALERT_DEGRADED
        transition.record_event = True
    elif not is_slow and current == "degraded":
        # Silent recovery from degraded
        transition.new_status = "up"
        transition.record_event = True
    elif not is_slow:
        transition.new_status = "up"

    return transition


def build_monitor_update(
    transition: Transition,
    outcome: ProbeOutcome,
    now: datetime,
) -> Dict[str, Any]:
    """Fields to write back to the monitor after a check.

    Telemetry is refreshed on every check; status only when it changed.
    """
    update: Dict[str, Any] = {
        "last_checked_at": now,
        "last_response_time_ms": outcome.response_time_ms,
        "last_status_code": outcome.status_code,
        "last_error": outcome.error,
        "last_response_body": outcome.response_body,
        "consecutive_failures": transition.consecutive_failures,
    }
    if transition.status_changed:
        update["status"] = transition.new_status
    return update
