"""Monitor schemas for the engine and the API."""
from datetime import datetime
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from ..services.url_validator import validate_monitor_url

HttpMethod = Literal["GET", "HEAD", "POST", "PUT"]
HealthStatus = Literal["pending", "up", "down", "degraded"]
ContentType = Literal["application/json", "application/x-www-form-urlencoded", "text/plain"]


class MonitorAssertions(BaseModel):
    """Optional pass/fail criteria beyond the status code."""
    max_response_time_ms: Optional[int] = Field(None, ge=1)
    body_contains: Optional[str] = Field(None, min_length=1)
    body_not_contains: Optional[str] = Field(None, min_length=1)


class MonitorSnapshot(BaseModel):
    """Immutable view of a monitor as read from the store.

    Headers and body are plaintext; decrypting them is the store's job.
    """
    id: str
    account_id: str
    name: str
    url: str
    method: HttpMethod = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    content_type: Optional[str] = None
    expected_status_codes: List[int] = Field(default_factory=lambda: [200, 201, 204], min_length=1)
    timeout_ms: int = 10000
    interval_seconds: int = 300
    assertions: Optional[MonitorAssertions] = None
    alert_after_failures: int = Field(2, ge=1)
    webhook_url: Optional[str] = None
    enabled: bool = True

    status: HealthStatus = "pending"
    last_checked_at: Optional[datetime] = None
    last_response_time_ms: Optional[int] = None
    last_status_code: Optional[int] = None
    last_error: Optional[str] = None
    last_response_body: Optional[str] = None
    consecutive_failures: int = 0
    uptime_percent_24h: Optional[float] = None
    avg_response_time_24h: Optional[int] = None

    class Config:
        frozen = True


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    result = validate_monitor_url(value)
    if not result.valid:
        raise ValueError(result.error)
    return value


def _check_status_codes(value: Optional[List[int]]) -> Optional[List[int]]:
    if value is None:
        return value
    for code in value:
        if code < 100 or code > 599:
            raise ValueError(f"Invalid HTTP status code: {code}")
    return sorted(set(value))


class MonitorCreate(BaseModel):
    """Schema for creating a new monitor."""
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=2048)
    method: HttpMethod = "GET"
    headers: Optional[Dict[str, str]] = None
    body: Optional[str] = Field(None, max_length=65536)
    content_type: Optional[ContentType] = None
    expected_status_codes: List[int] = Field(default_factory=lambda: [200, 201, 204], min_length=1)
    timeout_ms: int = Field(default=10000, ge=1000)
    interval_seconds: int = Field(..., ge=10, le=86400)
    assertions: Optional[MonitorAssertions] = None
    alert_after_failures: int = Field(default=2, ge=1, le=10)
    webhook_url: Optional[str] = None
    enabled: bool = True

    validate_urls = field_validator("url", "webhook_url")(_check_url)
    validate_status_codes = field_validator("expected_status_codes")(_check_status_codes)


class MonitorUpdate(BaseModel):
    """Schema for updating a monitor. Only config fields are editable."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1, max_length=2048)
    method: Optional[HttpMethod] = None
    headers: Optional[Dict[str, str]] = None
    body: Optional[str] = Field(None, max_length=65536)
    content_type: Optional[ContentType] = None
    expected_status_codes: Optional[List[int]] = Field(None, min_length=1)
    timeout_ms: Optional[int] = Field(None, ge=1000)
    interval_seconds: Optional[int] = Field(None, ge=10, le=86400)
    assertions: Optional[MonitorAssertions] = None
    alert_after_failures: Optional[int] = Field(None, ge=1, le=10)
    webhook_url: Optional[str] = None

    validate_urls = field_validator("url", "webhook_url")(_check_url)
    validate_status_codes = field_validator("expected_status_codes")(_check_status_codes)


class MonitorResponse(BaseModel):
    """Schema for a monitor in API responses (sensitive headers masked)."""
    id: str
    account_id: str
    name: str
    url: str
    method: str
    headers: Dict[str, str] = Field(default_factory=dict)
    content_type: Optional[str] = None
    expected_status_codes: List[int]
    timeout_ms: int
    interval_seconds: int
    assertions: Optional[MonitorAssertions] = None
    alert_after_failures: int
    webhook_url: Optional[str] = None
    enabled: bool
    status: str
    last_checked_at: Optional[datetime] = None
    last_response_time_ms: Optional[int] = None
    last_status_code: Optional[int] = None
    last_error: Optional[str] = None
    consecutive_failures: int
    uptime_percent_24h: Optional[float] = None
    avg_response_time_24h: Optional[int] = None


class MonitorTestResponse(BaseModel):
    """Response from a one-off probe of a monitor."""
    status: str  # success, failure
    status_code: Optional[int] = None
    response_time_ms: int
    error: Optional[str] = None
    response_body: Optional[str] = None
    status_code_passed: Optional[bool] = None
    response_time_passed: Optional[bool] = None
    body_contains_passed: Optional[bool] = None
    body_not_contains_passed: Optional[bool] = None
