"""Tests for the probe executor."""

import asyncio

import httpx
import pytest

from conftest import make_monitor
from httpwatch.schemas.monitor import MonitorAssertions
from httpwatch.services.checker import (
    CheckerService,
    classify_network_error,
    mask_sensitive_headers,
    truncate_response_body,
)


def checker_for(handler) -> CheckerService:
    return CheckerService(user_agent="httpwatch-test/1.0", transport=httpx.MockTransport(handler))


class TestCheckerService:
    """Test probing monitors through a mocked transport."""

    @pytest.mark.asyncio
    async def test_successful_probe(self):
        checker = checker_for(lambda request: httpx.Response(200, text="all good"))

        outcome = await checker.check(make_monitor())

        assert outcome.succeeded
        assert outcome.status_code == 200
        assert outcome.error is None
        assert outcome.response_body == "all good"
        assert outcome.response_time_ms >= 0

    @pytest.mark.asyncio
    async def test_unexpected_status_is_failure_with_reason(self):
        checker = checker_for(lambda request: httpx.Response(500, text="oops"))

        outcome = await checker.check(make_monitor())

        assert outcome.status == "failure"
        assert outcome.status_code == 500
        assert outcome.error == "Unexpected status code 500 (expected: 200)"

    @pytest.mark.asyncio
    async def test_user_agent_cannot_be_overridden(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200)

        monitor = make_monitor(headers={"User-Agent": "spoofed", "X-Trace": "abc"})
        await checker_for(handler).check(monitor)

        assert seen["headers"]["user-agent"] == "httpwatch-test/1.0"
        assert seen["headers"]["x-trace"] == "abc"

    @pytest.mark.asyncio
    async def test_post_sends_body_with_content_type(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["content"] = request.content
            seen["content_type"] = request.headers.get("content-type")
            return httpx.Response(201)

        monitor = make_monitor(
            method="POST",
            body='{"ping": true}',
            content_type="application/json",
            expected_status_codes=[201],
        )
        outcome = await checker_for(handler).check(monitor)

        assert outcome.succeeded
        assert seen["method"] == "POST"
        assert seen["content"] == b'{"ping": true}'
        assert seen["content_type"] == "application/json"

    @pytest.mark.asyncio
    async def test_body_ignored_for_get(self):
        seen = {}

        def handler(request):
            seen["content"] = request.content
            return httpx.Response(200)

        await checker_for(handler).check(make_monitor(body="ignored"))

        assert seen["content"] == b""

    @pytest.mark.asyncio
    async def test_preview_truncated_but_assertions_see_full_body(self):
        body = "x" * 600 + "READY"
        checker = checker_for(lambda request: httpx.Response(200, text=body))
        monitor = make_monitor(assertions=MonitorAssertions(body_contains="READY"))

        outcome = await checker.check(monitor)

        assert outcome.succeeded
        assert outcome.response_body == "x" * 500 + "... (truncated)"

    @pytest.mark.asyncio
    async def test_invalid_url_fails_without_network_call(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        outcome = await checker_for(handler).check(make_monitor(url="http://localhost:8080/"))

        assert outcome.status == "failure"
        assert outcome.error == "Cannot monitor localhost or loopback addresses"
        assert outcome.status_code is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_redirect_to_internal_address_is_blocked(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(302, headers={"Location": "http://169.254.169.254/latest"})

        outcome = await checker_for(handler).check(make_monitor())

        assert outcome.status == "failure"
        assert outcome.error == "Redirect blocked: Cannot monitor private or internal IP addresses"
        assert calls == ["https://api.example.com/health"]

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200)

        outcome = await checker_for(handler).check(make_monitor(timeout_ms=50))

        assert outcome.status == "failure"
        assert outcome.error == "Timeout after 50ms"

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        outcome = await checker_for(handler).check(make_monitor())

        assert outcome.error == "Connection refused"

    @pytest.mark.asyncio
    async def test_body_read_failure_keeps_status_verdict(self):
        class DroppedStream(httpx.AsyncByteStream):
            async def __aiter__(self):
                yield b"partial"
                raise httpx.ReadError("Connection reset by peer")

        checker = checker_for(lambda request: httpx.Response(200, stream=DroppedStream()))

        outcome = await checker.check(make_monitor())

        assert outcome.status == "success"
        assert outcome.status_code == 200
        assert outcome.response_body == ""
        assert outcome.error is None


class TestClassifyNetworkError:
    """Test network error classification."""

    def _request(self):
        return httpx.Request("GET", "https://api.example.com/")

    def test_read_timeout(self):
        exc = httpx.ReadTimeout("timed out", request=self._request())
        assert classify_network_error(exc, 10000) == "Timeout after 10000ms"

    def test_connect_timeout(self):
        exc = httpx.ConnectTimeout("timed out", request=self._request())
        assert classify_network_error(exc, 10000) == "Connection timed out"

    def test_dns_failure(self):
        exc = httpx.ConnectError("[Errno -2] Name or service not known", request=self._request())
        assert classify_network_error(exc, 10000) == "DNS lookup failed - hostname not found"

    def test_tls_failure(self):
        exc = httpx.ConnectError(
            "[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed", request=self._request()
        )
        assert classify_network_error(exc, 10000).startswith("SSL/TLS error:")

    def test_generic_connect_error(self):
        exc = httpx.ConnectError("boom", request=self._request())
        assert classify_network_error(exc, 10000) == "Connection error: boom"

    def test_fallback_uses_exception_name(self):
        assert classify_network_error(RuntimeError(), 10000) == "RuntimeError"


class TestHelpers:
    """Test body truncation and header masking."""

    def test_short_body_untouched(self):
        assert truncate_response_body("short", 500) == "short"

    def test_long_body_marked(self):
        assert truncate_response_body("abcdef", 3) == "abc... (truncated)"

    def test_mask_sensitive_headers(self):
        masked = mask_sensitive_headers(
            {
                "Authorization": "Bearer abcdefghijkl",
                "X-Api-Key": "short",
                "Accept": "application/json",
            }
        )
        assert masked["Authorization"] == "Bear****ijkl"
        assert masked["X-Api-Key"] == "********"
        assert masked["Accept"] == "application/json"
