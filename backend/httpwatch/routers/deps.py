"""Shared router dependencies."""
import secrets
from typing import Optional

from fastapi import Header, HTTPException

from ..config import settings
from ..services.checker import CheckerService, checker_service
from ..services.scheduler import SchedulerService, scheduler_service
from ..services.store import MonitorStore, monitor_store


def get_monitor_store() -> MonitorStore:
    return monitor_store


def get_scheduler() -> SchedulerService:
    return scheduler_service


def get_checker() -> CheckerService:
    return checker_service


def secret_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset secret never matches."""
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


async def require_api_key(x_api_key: Optional[str] = Header(None)):
    """Reject management requests without the configured API key."""
    if not secret_matches(x_api_key, settings.api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
