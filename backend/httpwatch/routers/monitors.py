"""Monitor management API endpoints."""
import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..config import settings
from ..schemas.monitor import (
    MonitorCreate,
    MonitorResponse,
    MonitorSnapshot,
    MonitorTestResponse,
    MonitorUpdate,
)
from ..schemas.status import CheckHistoryPage, MonitorStats, StatusEventRead
from ..services.checker import CheckerService, mask_sensitive_headers
from ..services.store import MonitorNotFoundError, MonitorStore
from ..utils.time_utils import utcnow
from .deps import get_checker, get_monitor_store, require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/monitors",
    tags=["monitors"],
    dependencies=[Depends(require_api_key)],
)

STATS_PERIODS = (1, 7, 30)


def to_response(monitor: MonitorSnapshot) -> MonitorResponse:
    """API view of a monitor; credentials in headers are masked."""
    data = monitor.model_dump(exclude={"body", "last_response_body", "headers"})
    return MonitorResponse(**data, headers=mask_sensitive_headers(monitor.headers))


def _check_plan_limits(interval_seconds: Optional[int], timeout_ms: Optional[int]):
    if interval_seconds is not None and interval_seconds < settings.min_interval_seconds:
        raise HTTPException(
            status_code=400,
            detail=f"Check interval must be at least {settings.min_interval_seconds} seconds",
        )
    if timeout_ms is not None and timeout_ms > settings.max_timeout_ms:
        raise HTTPException(
            status_code=400,
            detail=f"Timeout cannot exceed {settings.max_timeout_ms}ms",
        )


async def _get_or_404(store: MonitorStore, monitor_id: str) -> MonitorSnapshot:
    monitor = await store.get_monitor(monitor_id)
    if not monitor:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


@router.get("", response_model=List[MonitorResponse])
async def list_monitors(
    account_id: Optional[str] = Query(None),
    store: MonitorStore = Depends(get_monitor_store),
):
    """List monitors, optionally for one account."""
    return [to_response(m) for m in await store.list_monitors(account_id)]


@router.post("", response_model=MonitorResponse, status_code=201)
async def create_monitor(
    data: MonitorCreate,
    account_id: str = Query(..., min_length=1),
    store: MonitorStore = Depends(get_monitor_store),
):
    """Create a new monitor. It is checked on the next batch."""
    _check_plan_limits(data.interval_seconds, data.timeout_ms)
    monitor = await store.create_monitor(account_id, data)
    logger.info(f"Monitor created: {monitor.name} ({monitor.id}) for account {account_id}")
    return to_response(monitor)


@router.get("/{monitor_id}", response_model=MonitorResponse)
async def get_monitor(monitor_id: str, store: MonitorStore = Depends(get_monitor_store)):
    """Get a specific monitor."""
    return to_response(await _get_or_404(store, monitor_id))


@router.put("/{monitor_id}", response_model=MonitorResponse)
async def update_monitor(
    monitor_id: str,
    data: MonitorUpdate,
    store: MonitorStore = Depends(get_monitor_store),
):
    """Update a monitor's configuration."""
    _check_plan_limits(data.interval_seconds, data.timeout_ms)
    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        return to_response(await _get_or_404(store, monitor_id))

    try:
        monitor = await store.update_monitor(monitor_id, update_data)
    except MonitorNotFoundError:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return to_response(monitor)


@router.delete("/{monitor_id}", status_code=204)
async def delete_monitor(monitor_id: str, store: MonitorStore = Depends(get_monitor_store)):
    """Delete a monitor and its history."""
    try:
        await store.delete_monitor(monitor_id)
    except MonitorNotFoundError:
        raise HTTPException(status_code=404, detail="Monitor not found")
    logger.info(f"Monitor deleted: {monitor_id}")


@router.post("/{monitor_id}/pause")
async def pause_monitor(monitor_id: str, store: MonitorStore = Depends(get_monitor_store)):
    """Stop checking a monitor."""
    monitor = await _get_or_404(store, monitor_id)
    if not monitor.enabled:
        raise HTTPException(status_code=400, detail="Monitor is already paused")
    await store.update_monitor(monitor_id, {"enabled": False})
    return {"success": True, "enabled": False}


@router.post("/{monitor_id}/resume")
async def resume_monitor(monitor_id: str, store: MonitorStore = Depends(get_monitor_store)):
    """Resume checking a paused monitor."""
    monitor = await _get_or_404(store, monitor_id)
    if monitor.enabled:
        raise HTTPException(status_code=400, detail="Monitor is already running")
    await store.update_monitor(monitor_id, {"enabled": True})
    return {"success": True, "enabled": True}


@router.post("/{monitor_id}/test", response_model=MonitorTestResponse)
async def test_monitor(
    monitor_id: str,
    store: MonitorStore = Depends(get_monitor_store),
    checker: CheckerService = Depends(get_checker),
):
    """Probe a monitor once without recording anything."""
    monitor = await _get_or_404(store, monitor_id)
    outcome = await checker.check(monitor)
    assertions = outcome.assertions
    return MonitorTestResponse(
        status=outcome.status,
        status_code=outcome.status_code,
        response_time_ms=outcome.response_time_ms,
        error=outcome.error,
        response_body=outcome.response_body,
        status_code_passed=assertions.status_code_passed if assertions else None,
        response_time_passed=assertions.response_time_passed if assertions else None,
        body_contains_passed=assertions.body_contains_passed if assertions else None,
        body_not_contains_passed=assertions.body_not_contains_passed if assertions else None,
    )


@router.get("/{monitor_id}/checks", response_model=CheckHistoryPage)
async def list_checks(
    monitor_id: str,
    limit: int = Query(50, ge=1, le=500),
    store: MonitorStore = Depends(get_monitor_store),
):
    """Most recent check results, newest first."""
    await _get_or_404(store, monitor_id)
    return await store.list_checks(monitor_id, limit)


@router.get("/{monitor_id}/status-history", response_model=List[StatusEventRead])
async def list_status_history(
    monitor_id: str,
    limit: int = Query(50, ge=1, le=500),
    store: MonitorStore = Depends(get_monitor_store),
):
    """Health transitions, newest first."""
    await _get_or_404(store, monitor_id)
    return await store.list_status_events(monitor_id, limit)


@router.get("/{monitor_id}/stats", response_model=MonitorStats)
async def get_stats(
    monitor_id: str,
    period: int = Query(1, description="Period in days: 1, 7 or 30"),
    store: MonitorStore = Depends(get_monitor_store),
):
    """Uptime and average latency over a period."""
    if period not in STATS_PERIODS:
        raise HTTPException(status_code=400, detail="Period must be 1, 7 or 30 days")
    await _get_or_404(store, monitor_id)
    return await store.calculate_stats(monitor_id, utcnow() - timedelta(days=period))
