"""Cron trigger endpoints, called by an external scheduler with ?secret=..."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..config import settings
from ..services.history import HistoryRecorder
from ..services.scheduler import SchedulerService
from ..services.store import MonitorStore
from ..utils.time_utils import isoformat_z, utcnow
from .deps import get_monitor_store, get_scheduler, secret_matches

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


@router.get("/check-http-monitors")
async def check_http_monitors(
    secret: Optional[str] = Query(None),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Run one batch of due monitor checks."""
    if not secret_matches(secret, settings.cron_secret):
        logger.warning("Cron trigger rejected - bad or missing secret")
        return _unauthorized()

    try:
        summary = await scheduler.run_batch()
    except Exception as e:
        logger.error(f"HTTP monitor batch failed: {type(e).__name__}: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(e)},
        )

    return summary.as_response()


@router.get("/cleanup-history")
async def cleanup_history(
    secret: Optional[str] = Query(None),
    store: MonitorStore = Depends(get_monitor_store),
):
    """Delete check results older than the retention window."""
    if not secret_matches(secret, settings.cron_secret):
        logger.warning("Cleanup trigger rejected - bad or missing secret")
        return _unauthorized()

    try:
        deleted = await HistoryRecorder(store).cleanup()
    except Exception as e:
        logger.error(f"History cleanup failed: {type(e).__name__}: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(e)},
        )

    return {
        "ok": True,
        "checksDeleted": deleted,
        "retentionDays": settings.history_retention_days,
        "timestamp": isoformat_z(utcnow()),
    }
