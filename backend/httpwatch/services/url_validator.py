"""URL validation for monitors - refuses targets on internal networks.

Only literal hostnames are inspected. DNS is not resolved, so a public
name that resolves to a private address is not caught here.
"""
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTNAMES = {
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
}

# Private/internal IPv4 ranges, matched on dotted-quad hostnames
BLOCKED_IP_PATTERNS = [
    re.compile(r"^10\.\d{1,3}\.\d{1,3}\.\d{1,3}$"),  # 10.0.0.0/8
    re.compile(r"^172\.(1[6-9]|2\d|3[01])\.\d{1,3}\.\d{1,3}$"),  # 172.16.0.0/12
    re.compile(r"^192\.168\.\d{1,3}\.\d{1,3}$"),  # 192.168.0.0/16
    re.compile(r"^169\.254\.\d{1,3}\.\d{1,3}$"),  # Link-local
    re.compile(r"^100\.(6[4-9]|[7-9]\d|1[01]\d|12[0-7])\.\d{1,3}\.\d{1,3}$"),  # Carrier-grade NAT
]

BLOCKED_SUFFIXES = (".local", ".internal", ".localhost", ".lan")


@dataclass
class UrlValidationResult:
    """Outcome of validating a monitor URL."""
    valid: bool
    error: Optional[str] = None


def validate_monitor_url(url: str) -> UrlValidationResult:
    """Validate a URL before it is probed.

    Rules are applied in order and the first failing rule decides the
    error message.
    """
    try:
        parsed = urlsplit(url.strip())
        hostname = parsed.hostname
        parsed.port  # Raises ValueError on a malformed port
    except (ValueError, AttributeError):
        return UrlValidationResult(False, "Invalid URL format")

    if not parsed.scheme or not parsed.netloc:
        return UrlValidationResult(False, "Invalid URL format")

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return UrlValidationResult(False, "URL must use HTTP or HTTPS protocol")

    if not hostname:
        return UrlValidationResult(False, "Invalid hostname")

    if hostname in BLOCKED_HOSTNAMES:
        return UrlValidationResult(False, "Cannot monitor localhost or loopback addresses")

    for pattern in BLOCKED_IP_PATTERNS:
        if pattern.match(hostname):
            return UrlValidationResult(False, "Cannot monitor private or internal IP addresses")

    if hostname.endswith(BLOCKED_SUFFIXES):
        return UrlValidationResult(False, f"Cannot monitor internal hostname: {hostname}")

    return UrlValidationResult(True)
