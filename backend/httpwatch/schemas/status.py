"""History and statistics schemas."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class CheckResultRead(BaseModel):
    """Individual check result record."""
    id: int
    monitor_id: str
    checked_at: datetime
    status: str  # success, failure
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None
    response_body_preview: Optional[str] = None

    class Config:
        from_attributes = True


class StatusEventRead(BaseModel):
    """A recorded health transition."""
    id: int
    monitor_id: str
    status: str  # up, down, degraded
    created_at: datetime
    duration_seconds: Optional[int] = None  # Time spent in the previous status

    class Config:
        from_attributes = True


class MonitorStats(BaseModel):
    """Uptime and latency over a period."""
    uptime_percent: float
    avg_response_time_ms: int
    total_checks: int
    successful_checks: int
    failed_checks: int


class CheckHistoryPage(BaseModel):
    """Most recent checks for a monitor."""
    items: List[CheckResultRead]
    total: int


class AccountContactInfo(BaseModel):
    """Where to deliver alerts for an account, with per-channel opt-ins."""
    account_id: str
    email: Optional[str] = None
    push_tokens: List[str] = []
    chat_id: Optional[str] = None
    email_opt_in: bool = True
    push_opt_in: bool = True
    chat_opt_in: bool = True

    class Config:
        from_attributes = True
