"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')

TRANSIENT_DB_ERRORS = (
    "database is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient_db_error(exc: Exception) -> bool:
    """Whether a driver error is worth retrying."""
    error_str = str(exc).lower()
    return any(msg in error_str for msg in TRANSIENT_DB_ERRORS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.1,
) -> T:
    """Run a database operation, retrying transient errors with exponential backoff.

    Covers SQLite lock contention between concurrent check pipelines and
    PostgreSQL connection churn under load.

    Args:
        coro_func: Zero-argument callable returning a coroutine
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)

    Raises:
        OperationalError/InterfaceError: if the error is not transient or
            every attempt failed
    """
    for attempt in range(max_retries):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient_db_error(e) or attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Database transient error, retrying in {delay}s "
                f"(attempt {attempt + 1}/{max_retries}): {e}"
            )
            await asyncio.sleep(delay)
    raise RuntimeError("retry_on_lock called with max_retries < 1")
