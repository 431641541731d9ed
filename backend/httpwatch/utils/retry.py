"""Bounded retry with linearly increasing backoff for alert delivery."""
import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class DeliveryFailed(Exception):
    """Every attempt to deliver a notification failed."""


async def retry_delivery(
    send: Callable[[], Awaitable[bool]],
    max_retries: int = 2,
    base_delay: float = 1.0,
    label: str = "notification",
) -> None:
    """Call ``send`` until it returns True.

    A False return or an exception counts as a failed attempt. Attempt
    ``n`` (0-based) is followed by a ``base_delay * (n + 1)`` second pause.

    Raises:
        DeliveryFailed: after ``max_retries + 1`` failed attempts
    """
    last_error = None
    for attempt in range(max_retries + 1):
        try:
            if await send():
                return
            last_error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            logger.debug(f"{label} attempt {attempt + 1} raised {type(e).__name__}: {e}")

        if attempt < max_retries:
            await asyncio.sleep(base_delay * (attempt + 1))

    reason = f"{type(last_error).__name__}: {last_error}" if last_error else "rejected"
    raise DeliveryFailed(f"{label} failed after {max_retries + 1} attempts ({reason})") from last_error
