"""Tests for the health state machine."""

from datetime import datetime, timedelta

import pytest

from conftest import make_monitor, make_outcome, network_failure
from httpwatch.services.state_machine import (
    ALERT_DEGRADED,
    ALERT_DOWN,
    ALERT_RECOVERY,
    RESULT_DEGRADED,
    RESULT_DOWN,
    RESULT_OK,
    RESULT_RECOVERED,
    build_monitor_update,
    compute_transition,
)

NOW = datetime(2024, 5, 1, 12, 0, 0)


class TestFailures:
    """Test transitions on failed probes."""

    def test_first_failure_below_threshold_keeps_status(self):
        monitor = make_monitor(status="up", alert_after_failures=2)

        transition = compute_transition(monitor, make_outcome(monitor, status_code=500), NOW)

        assert transition.new_status == "up"
        assert transition.consecutive_failures == 1
        assert transition.alert is None
        assert not transition.record_event
        assert transition.result == RESULT_OK

    def test_reaching_threshold_goes_down(self):
        monitor = make_monitor(status="up", alert_after_failures=2, consecutive_failures=1)

        transition = compute_transition(monitor, make_outcome(monitor, status_code=500), NOW)

        assert transition.new_status == "down"
        assert transition.consecutive_failures == 2
        assert transition.alert == ALERT_DOWN
        assert transition.record_event
        assert transition.result == RESULT_DOWN

    def test_pending_goes_down_with_threshold_one(self):
        monitor = make_monitor(status="pending", alert_after_failures=1)

        transition = compute_transition(monitor, network_failure(), NOW)

        assert transition.new_status == "down"
        assert transition.alert == ALERT_DOWN

    def test_degraded_goes_down(self):
        monitor = make_monitor(status="degraded", alert_after_failures=1)

        transition = compute_transition(monitor, network_failure(), NOW)

        assert transition.new_status == "down"

    def test_already_down_does_not_realert(self):
        monitor = make_monitor(status="down", consecutive_failures=5)

        transition = compute_transition(monitor, network_failure(), NOW)

        assert transition.new_status == "down"
        assert transition.consecutive_failures == 6
        assert transition.alert is None
        assert not transition.record_event

    @pytest.mark.parametrize("threshold", [2, 3, 5])
    @pytest.mark.parametrize("status", ["pending", "up", "degraded"])
    def test_no_premature_down(self, threshold, status):
        for failures in range(threshold - 1):
            monitor = make_monitor(
                status=status, alert_after_failures=threshold, consecutive_failures=failures
            )
            transition = compute_transition(monitor, network_failure(), NOW)
            assert transition.consecutive_failures < threshold
            assert transition.new_status == status


class TestSuccesses:
    """Test transitions on successful probes."""

    @pytest.mark.parametrize("status", ["pending", "up", "down", "degraded"])
    def test_success_resets_failures(self, status):
        monitor = make_monitor(status=status, consecutive_failures=7)

        transition = compute_transition(monitor, make_outcome(monitor), NOW)

        assert transition.consecutive_failures == 0

    def test_pending_becomes_up_silently(self):
        monitor = make_monitor(status="pending")

        transition = compute_transition(monitor, make_outcome(monitor), NOW)

        assert transition.new_status == "up"
        assert transition.alert is None
        assert not transition.record_event

    def test_up_stays_up_without_event(self):
        monitor = make_monitor(status="up")

        transition = compute_transition(monitor, make_outcome(monitor), NOW)

        assert transition.new_status == "up"
        assert not transition.status_changed
        assert not transition.record_event

    def test_recovery_carries_downtime(self):
        monitor = make_monitor(status="down", consecutive_failures=3, max_response_time_ms=1000)
        went_down = NOW - timedelta(minutes=5, seconds=30)

        transition = compute_transition(
            monitor, make_outcome(monitor, response_time_ms=200), NOW, previous_event_at=went_down
        )

        assert transition.new_status == "up"
        assert transition.alert == ALERT_RECOVERY
        assert transition.record_event
        assert transition.result == RESULT_RECOVERED
        assert transition.downtime_seconds == 330

    def test_recovery_without_previous_event_omits_downtime(self):
        monitor = make_monitor(status="down")

        transition = compute_transition(monitor, make_outcome(monitor), NOW)

        assert transition.alert == ALERT_RECOVERY
        assert transition.downtime_seconds is None

    def test_downtime_never_negative(self):
        monitor = make_monitor(status="down")

        transition = compute_transition(
            monitor, make_outcome(monitor), NOW, previous_event_at=NOW + timedelta(seconds=3)
        )

        assert transition.downtime_seconds == 0

    def test_slow_recovery_goes_degraded(self):
        monitor = make_monitor(status="down", max_response_time_ms=500)

        transition = compute_transition(
            monitor, make_outcome(monitor, response_time_ms=900), NOW, previous_event_at=NOW
        )

        assert transition.new_status == "degraded"
        assert transition.alert == ALERT_RECOVERY
        assert transition.is_slow

    def test_slow_response_degrades_up_monitor(self):
        monitor = make_monitor(status="up", max_response_time_ms=500, consecutive_failures=1)

        transition = compute_transition(monitor, make_outcome(monitor, response_time_ms=2500), NOW)

        assert transition.new_status == "degraded"
        assert transition.alert == ALERT_DEGRADED
        assert transition.record_event
        assert transition.result == RESULT_DEGRADED
        assert transition.consecutive_failures == 0

    def test_still_slow_does_not_realert(self):
        monitor = make_monitor(status="degraded", max_response_time_ms=500)

        transition = compute_transition(monitor, make_outcome(monitor, response_time_ms=2500), NOW)

        assert transition.new_status == "degraded"
        assert transition.alert is None
        assert not transition.record_event

    def test_fast_response_leaves_degraded_silently(self):
        monitor = make_monitor(status="degraded", max_response_time_ms=500)

        transition = compute_transition(monitor, make_outcome(monitor, response_time_ms=100), NOW)

        assert transition.new_status == "up"
        assert transition.alert is None
        assert transition.record_event

    def test_slow_with_other_failures_counts_as_failure(self):
        monitor = make_monitor(status="up", max_response_time_ms=500, alert_after_failures=1)

        transition = compute_transition(
            monitor, make_outcome(monitor, status_code=503, response_time_ms=2500), NOW
        )

        assert transition.new_status == "down"


class TestBuildMonitorUpdate:
    """Test fields written back after a check."""

    def test_telemetry_written_without_status_change(self):
        monitor = make_monitor(status="up")
        outcome = make_outcome(monitor, response_time_ms=42)
        transition = compute_transition(monitor, outcome, NOW)

        update = build_monitor_update(transition, outcome, NOW)

        assert update["last_checked_at"] == NOW
        assert update["last_response_time_ms"] == 42
        assert update["last_status_code"] == 200
        assert update["consecutive_failures"] == 0
        assert "status" not in update

    def test_status_written_on_change(self):
        monitor = make_monitor(status="up", alert_after_failures=1)
        outcome = network_failure("DNS lookup failed - hostname not found")
        transition = compute_transition(monitor, outcome, NOW)

        update = build_monitor_update(transition, outcome, NOW)

        assert update["status"] == "down"
        assert update["last_error"] == "DNS lookup failed - hostname not found"
