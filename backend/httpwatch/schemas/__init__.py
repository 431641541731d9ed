"""Pydantic schemas for engine snapshots and API request/response models."""
from .monitor import (
    MonitorAssertions,
    MonitorSnapshot,
    MonitorCreate,
    MonitorUpdate,
    MonitorResponse,
    MonitorTestResponse,
)
from .status import (
    CheckResultRead,
    StatusEventRead,
    MonitorStats,
    CheckHistoryPage,
    AccountContactInfo,
)

__all__ = [
    "MonitorAssertions",
    "MonitorSnapshot",
    "MonitorCreate",
    "MonitorUpdate",
    "MonitorResponse",
    "MonitorTestResponse",
    "CheckResultRead",
    "StatusEventRead",
    "MonitorStats",
    "CheckHistoryPage",
    "AccountContactInfo",
]
