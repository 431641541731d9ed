"""Database models."""
from .monitor import Monitor
from .check_result import CheckResult
from .status_event import StatusEvent
from .account import AccountContact

__all__ = ["Monitor", "CheckResult", "StatusEvent", "AccountContact"]
