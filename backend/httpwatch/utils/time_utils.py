"""Time helpers.

All timestamps are stored as naive UTC datetimes.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    """ISO-8601 with a trailing Z for a naive UTC datetime."""
    return value.isoformat(timespec="milliseconds") + "Z"
