"""Checker service - probes HTTP endpoints and evaluates the response."""
import asyncio
import logging
import socket
import ssl
import time
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

import httpx

from ..config import settings
from ..schemas.monitor import MonitorSnapshot
from .assertions import AssertionResult, evaluate_assertions
from .url_validator import validate_monitor_url

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... (truncated)"

# Header names whose values are masked in API responses and logs
SENSITIVE_HEADERS = [
    "authorization",
    "x-api-key",
    "api-key",
    "cookie",
    "x-auth-token",
    "bearer",
    "x-access-token",
    "x-secret",
    "password",
    "token",
    "secret",
]


@dataclass
class ProbeOutcome:
    """Result of probing a monitor once."""
    status: str  # success, failure
    response_time_ms: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    response_body: Optional[str] = None  # Truncated preview
    assertions: Optional[AssertionResult] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class BlockedRedirectError(Exception):
    """A redirect pointed at a URL the validator refuses."""


def truncate_response_body(body: str, max_length: int = 500) -> str:
    """Clip a response body for storage, marking it when clipped."""
    if len(body) <= max_length:
        return body
    return body[:max_length] + TRUNCATION_MARKER


def mask_sensitive_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Mask values of headers that look like credentials."""
    masked = {}
    for key, value in (headers or {}).items():
        lower_key = key.lower()
        if any(name in lower_key for name in SENSITIVE_HEADERS):
            if len(value) > 8:
                masked[key] = value[:4] + "****" + value[-4:]
            else:
                masked[key] = "********"
        else:
            masked[key] = value
    return masked


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield an exception and the exceptions it was raised from."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_network_error(exc: Exception, timeout_ms: int) -> str:
    """Turn a request exception into a stable, human-readable error."""
    if isinstance(exc, BlockedRedirectError):
        return str(exc)
    if isinstance(exc, httpx.ConnectTimeout):
        return "Connection timed out"
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return f"Timeout after {timeout_ms}ms"

    chain = list(_exception_chain(exc))
    messages = " ".join(str(e) for e in chain)
    lowered = messages.lower()

    if any(isinstance(e, ssl.SSLError) for e in chain) or any(
        hint in lowered for hint in ("certificate", "[ssl", "ssl:", " tls")
    ):
        return f"SSL/TLS error: {exc}"
    if any(isinstance(e, socket.gaierror) for e in chain) or any(
        hint in lowered
        for hint in (
            "name or service not known",
            "nodename nor servname",
            "temporary failure in name resolution",
            "getaddrinfo failed",
            "no address associated",
        )
    ):
        return "DNS lookup failed - hostname not found"
    if any(isinstance(e, ConnectionRefusedError) for e in chain) or "connection refused" in lowered:
        return "Connection refused"
    if any(isinstance(e, TimeoutError) for e in chain) or "timed out" in lowered:
        return "Connection timed out"
    if isinstance(exc, httpx.ConnectError):
        return f"Connection error: {exc}" if str(exc) else "Connection error"

    text = str(exc)
    return text if text else type(exc).__name__


class CheckerService:
    """Service for probing HTTP monitors."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        preview_length: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent or settings.probe_user_agent
        self.preview_length = preview_length or settings.response_preview_length
        self._transport = transport

    def _build_headers(self, monitor: MonitorSnapshot) -> Dict[str, str]:
        """Merge monitor headers with the fixed User-Agent."""
        headers = {
            key: value
            for key, value in (monitor.headers or {}).items()
            if key.lower() != "user-agent"
        }
        headers["User-Agent"] = self.user_agent

        if monitor.method in ("POST", "PUT") and monitor.body and monitor.content_type:
            headers = {k: v for k, v in headers.items() if k.lower() != "content-type"}
            headers["Content-Type"] = monitor.content_type
        return headers

    async def _refuse_internal_redirects(self, request: httpx.Request):
        """Event hook: validate every hop, including redirects."""
        result = validate_monitor_url(str(request.url))
        if not result.valid:
            raise BlockedRedirectError(f"Redirect blocked: {result.error}")

    async def check(self, monitor: MonitorSnapshot) -> ProbeOutcome:
        """Probe a monitor once and evaluate its assertions.

        Never raises for network or validation problems; those come back
        as failure outcomes with a classified error.
        """
        start = time.monotonic()

        validation = validate_monitor_url(monitor.url)
        if not validation.valid:
            return ProbeOutcome(
                status="failure",
                response_time_ms=int((time.monotonic() - start) * 1000),
                error=validation.error or "Invalid URL",
            )

        timeout_seconds = monitor.timeout_ms / 1000
        content = None
        if monitor.method in ("POST", "PUT") and monitor.body:
            content = monitor.body.encode("utf-8")

        try:
            start = time.monotonic()
            status_code, body = await asyncio.wait_for(
                self._send(monitor, content, timeout_seconds),
                timeout=timeout_seconds,
            )
            response_time = int((time.monotonic() - start) * 1000)
        except Exception as e:
            response_time = int((time.monotonic() - start) * 1000)
            error = classify_network_error(e, monitor.timeout_ms)
            logger.debug(f"Probe of {monitor.name} ({monitor.id}) failed: {error}")
            return ProbeOutcome(status="failure", response_time_ms=response_time, error=error)

        assertions = evaluate_assertions(
            status_code,
            response_time,
            body,
            monitor.expected_status_codes,
            monitor.assertions,
        )

        return ProbeOutcome(
            status="success" if assertions.passed else "failure",
            response_time_ms=response_time,
            status_code=status_code,
            error=assertions.error,
            response_body=truncate_response_body(body, self.preview_length),
            assertions=assertions,
        )

    async def _send(
        self,
        monitor: MonitorSnapshot,
        content: Optional[bytes],
        timeout_seconds: float,
    ) -> Tuple[int, str]:
        """Issue the request and read the body best-effort."""
        async with httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
            event_hooks={"request": [self._refuse_internal_redirects]},
        ) as client:
            request = client.build_request(
                monitor.method,
                monitor.url,
                headers=self._build_headers(monitor),
                content=content,
            )
            response = await client.send(request, stream=True)
            try:
                try:
                    await response.aread()
                    body = response.text
                except (httpx.HTTPError, UnicodeDecodeError) as e:
                    # Status code is enough; the body is only a preview
                    logger.debug(f"Could not read body from {monitor.url}: {e}")
                    body = ""
            finally:
                await response.aclose()
            return response.status_code, body


# Global instance
checker_service = CheckerService()
