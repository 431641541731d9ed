"""Alerter service - fans alerts out to email, push, chat and webhook channels.

Each channel is attempted on its own with bounded retries. A channel that
fails never stops the others, and dispatch never raises to its caller.
"""
import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..config import settings
from ..schemas.status import AccountContactInfo
from ..utils.retry import DeliveryFailed, retry_delivery
from ..utils.time_utils import isoformat_z, utcnow
from .email_sender import EmailSenderService, email_sender_service
from .push_sender import PushSenderService, push_sender_service
from .state_machine import ALERT_DEGRADED, ALERT_DOWN, ALERT_RECOVERY
from .telegram_sender import TelegramSenderService, telegram_sender_service
from .url_validator import validate_monitor_url
from .webhook_sender import (
    EVENT_DOWN,
    EVENT_RECOVERY,
    EVENT_UP,
    WebhookSenderService,
    build_webhook_payload,
    webhook_sender_service,
)

logger = logging.getLogger(__name__)

CHANNEL_EMAIL = "email"
CHANNEL_PUSH = "push"
CHANNEL_CHAT = "chat"
CHANNEL_WEBHOOK = "webhook"

# Degraded is still a responding service, so it goes out as check.up
WEBHOOK_EVENTS = {
    ALERT_DOWN: EVENT_DOWN,
    ALERT_RECOVERY: EVENT_RECOVERY,
    ALERT_DEGRADED: EVENT_UP,
}


@dataclass
class MonitorAlertInfo:
    """Public-safe details about a monitor for alert messages."""
    id: str
    name: str
    url: str
    method: str = "GET"
    status: str = "down"
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None
    failed_checks: Optional[int] = None
    downtime_seconds: Optional[int] = None
    max_response_time_ms: Optional[int] = None


@dataclass
class ChannelResult:
    """Delivery outcome for one channel."""
    channel: str
    delivered: bool


@dataclass
class NotificationResult:
    """Per-channel outcomes of one dispatch. Skipped channels are absent."""
    kind: str
    channels: List[ChannelResult] = field(default_factory=list)

    def as_dict(self) -> Dict[str, bool]:
        return {result.channel: result.delivered for result in self.channels}

    @property
    def any_delivered(self) -> bool:
        return any(result.delivered for result in self.channels)


def format_duration(seconds: int) -> str:
    """Format a duration in seconds for humans."""
    if seconds < 60:
        return f"{seconds} seconds"
    if seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes > 1 else ''}"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    hours_str = f"{hours} hour{'s' if hours > 1 else ''}"
    if minutes > 0:
        return f"{hours_str} {minutes} minute{'s' if minutes > 1 else ''}"
    return hours_str


class AlerterService:
    """Service for dispatching monitor alerts across channels."""

    def __init__(
        self,
        email_sender: Optional[EmailSenderService] = None,
        push_sender: Optional[PushSenderService] = None,
        telegram_sender: Optional[TelegramSenderService] = None,
        webhook_sender: Optional[WebhookSenderService] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.email_sender = email_sender or email_sender_service
        self.push_sender = push_sender or push_sender_service
        self.telegram_sender = telegram_sender or telegram_sender_service
        self.webhook_sender = webhook_sender or webhook_sender_service
        self.max_retries = settings.notification_max_retries if max_retries is None else max_retries
        self.retry_delay = (
            settings.notification_retry_delay_seconds if retry_delay is None else retry_delay
        )

    # Message building

    def _headline(self, kind: str, monitor: MonitorAlertInfo) -> str:
        if kind == ALERT_DOWN:
            return f'Monitor "{monitor.name}" is DOWN'
        if kind == ALERT_RECOVERY:
            return f'Monitor "{monitor.name}" is BACK UP'
        return f'Monitor "{monitor.name}" is SLOW'

    def _detail_lines(self, kind: str, monitor: MonitorAlertInfo) -> List[str]:
        """Kind-specific facts shared by every channel."""
        lines = []
        if kind == ALERT_DOWN:
            status_text = str(monitor.status_code) if monitor.status_code else "Connection failed"
            lines.append(f"Status: {status_text}")
            if monitor.failed_checks:
                lines.append(f"Failed checks: {monitor.failed_checks}")
            if monitor.error:
                lines.append(f"Reason: {monitor.error}")
        elif kind == ALERT_RECOVERY:
            if monitor.status_code:
                lines.append(f"Status: {monitor.status_code}")
            if monitor.response_time_ms is not None:
                lines.append(f"Response time: {monitor.response_time_ms}ms")
            if monitor.downtime_seconds is not None:
                lines.append(f"Downtime: {format_duration(monitor.downtime_seconds)}")
        elif kind == ALERT_DEGRADED:
            lines.append(
                f"Response time: {monitor.response_time_ms}ms "
                f"(threshold: {monitor.max_response_time_ms}ms)"
            )
        return lines

    def _build_email_subject(self, kind: str, monitor: MonitorAlertInfo) -> str:
        label = {ALERT_DOWN: "DOWN", ALERT_RECOVERY: "RECOVERED", ALERT_DEGRADED: "DEGRADED"}[kind]
        return f"{label} - {monitor.name}"

    def _build_email_body(self, kind: str, monitor: MonitorAlertInfo, now: datetime) -> str:
        lines = [
            self._headline(kind, monitor),
            "=" * 40,
            "",
            f"Monitor: {monitor.name}",
            f"URL: {monitor.method} {monitor.url}",
            f"Time: {now.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ]
        lines.extend(self._detail_lines(kind, monitor))
        lines.append("")
        lines.append("--")
        lines.append(f"httpwatch - {settings.dashboard_url}")
        return "\n".join(lines)

    def _build_email_html(self, kind: str, monitor: MonitorAlertInfo) -> str:
        color = {ALERT_DOWN: "#ef4444", ALERT_RECOVERY: "#22c55e", ALERT_DEGRADED: "#eab308"}[kind]
        details = "".join(
            f"<li>{html.escape(line)}</li>" for line in self._detail_lines(kind, monitor)
        )
        return (
            '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
            f'<h1 style="color: {color};">{html.escape(self._headline(kind, monitor))}</h1>'
            f"<p>{html.escape(monitor.method)} {html.escape(monitor.url)}</p>"
            f"<ul>{details}</ul>"
            f'<p><a href="{html.escape(settings.dashboard_url)}">View Dashboard</a></p>'
            "</div>"
        )

    def _build_push(self, kind: str, monitor: MonitorAlertInfo) -> Tuple[str, str]:
        if kind == ALERT_DOWN:
            title = f"🔴 {monitor.name} is DOWN"
            body = f'HTTP monitor "{monitor.name}" is not responding. {monitor.error or ""}'.strip()
        elif kind == ALERT_RECOVERY:
            title = f"🟢 {monitor.name} is BACK UP"
            body = f'HTTP monitor "{monitor.name}" has recovered and is now responding normally.'
            if monitor.downtime_seconds is not None:
                body += f" Downtime: {format_duration(monitor.downtime_seconds)}"
        else:
            title = f"🟡 {monitor.name} is SLOW"
            body = (
                f'HTTP monitor "{monitor.name}" is responding slowly '
                f"({monitor.response_time_ms}ms, threshold: {monitor.max_response_time_ms}ms)"
            )
        return title, body

    def _build_chat(self, kind: str, monitor: MonitorAlertInfo) -> Tuple[str, str]:
        label = {ALERT_DOWN: "DOWN", ALERT_RECOVERY: "RECOVERED", ALERT_DEGRADED: "SLOW"}[kind]
        lines = [f"URL: {monitor.method} {monitor.url}"]
        lines.extend(self._detail_lines(kind, monitor))
        return f"[{label}] {monitor.name}", "\n".join(lines)

    def _build_webhook_message(self, kind: str, monitor: MonitorAlertInfo) -> str:
        message = self._headline(kind, monitor)
        if kind == ALERT_DOWN and monitor.error:
            message += f" - {monitor.error}"
        elif kind == ALERT_RECOVERY and monitor.downtime_seconds is not None:
            message += f" after {format_duration(monitor.downtime_seconds)}"
        elif kind == ALERT_DEGRADED:
            message += (
                f" - {monitor.response_time_ms}ms "
                f"(threshold: {monitor.max_response_time_ms}ms)"
            )
        return message

    # Delivery

    async def _attempt(
        self,
        result: NotificationResult,
        channel: str,
        send: Callable[[], Awaitable[bool]],
        monitor: MonitorAlertInfo,
        account_id: Optional[str],
    ):
        """Deliver through one channel with retries and record the outcome."""
        try:
            await retry_delivery(
                send,
                max_retries=self.max_retries,
                base_delay=self.retry_delay,
                label=f"{channel} {result.kind} alert",
            )
        except DeliveryFailed as e:
            result.channels.append(ChannelResult(channel, False))
            logger.error(
                f"Notification failed via {channel} for monitor {monitor.name} "
                f"({monitor.id}), account {account_id}: {e}"
            )
            return

        result.channels.append(ChannelResult(channel, True))
        logger.info(
            f"Notification sent via {channel} for monitor {monitor.name} "
            f"({monitor.id}), account {account_id}"
        )

    async def _dispatch_email(self, result, kind, monitor, contact, now, account_id):
        subject = self._build_email_subject(kind, monitor)
        text_body = self._build_email_body(kind, monitor, now)
        html_body = self._build_email_html(kind, monitor)
        await self._attempt(
            result,
            CHANNEL_EMAIL,
            lambda: self.email_sender.send_email(contact.email, subject, text_body, html_body),
            monitor,
            account_id,
        )

    async def _dispatch_push(self, result, kind, monitor, contact, now, account_id):
        title, body = self._build_push(kind, monitor)
        data = {
            "monitor_id": monitor.id,
            "monitor_name": monitor.name,
            "type": f"http_monitor_{kind}",
        }
        await self._attempt(
            result,
            CHANNEL_PUSH,
            lambda: self.push_sender.send_to_devices(
                contact.push_tokens, title, body, data, 0 if kind == ALERT_RECOVERY else 1
            ),
            monitor,
            account_id,
        )

    async def _dispatch_chat(self, result, kind, monitor, contact, now, account_id):
        title, body = self._build_chat(kind, monitor)
        await self._attempt(
            result,
            CHANNEL_CHAT,
            lambda: self.telegram_sender.send_message(contact.chat_id, title, body, kind),
            monitor,
            account_id,
        )

    async def dispatch(
        self,
        kind: str,
        monitor: MonitorAlertInfo,
        contact: Optional[AccountContactInfo],
        webhook_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> NotificationResult:
        """Send an alert of the given kind through every configured channel.

        Channels are skipped when they have no address or the account opted
        out. An error in one channel is recorded as a failed delivery and
        does not stop the others. Never raises.
        """
        now = now or utcnow()
        result = NotificationResult(kind=kind)
        account_id = contact.account_id if contact else None

        channels = []
        if contact and contact.email and contact.email_opt_in:
            channels.append((CHANNEL_EMAIL, self._dispatch_email))
        if contact and contact.push_tokens and contact.push_opt_in:
            channels.append((CHANNEL_PUSH, self._dispatch_push))
        if contact and contact.chat_id and contact.chat_opt_in:
            channels.append((CHANNEL_CHAT, self._dispatch_chat))

        for channel, send in channels:
            try:
                await send(result, kind, monitor, contact, now, account_id)
            except Exception as e:
                self._record_unexpected(result, channel, kind, monitor, e)

        if webhook_url:
            try:
                await self._dispatch_webhook(result, kind, monitor, webhook_url, now, account_id)
            except Exception as e:
                self._record_unexpected(result, CHANNEL_WEBHOOK, kind, monitor, e)

        return result

    def _record_unexpected(
        self,
        result: NotificationResult,
        channel: str,
        kind: str,
        monitor: MonitorAlertInfo,
        error: Exception,
    ):
        result.channels.append(ChannelResult(channel, False))
        logger.error(
            f"Unexpected error sending {kind} alert via {channel} for monitor "
            f"{monitor.id}: {type(error).__name__}: {error}"
        )

    async def _dispatch_webhook(
        self,
        result: NotificationResult,
        kind: str,
        monitor: MonitorAlertInfo,
        webhook_url: str,
        now: datetime,
        account_id: Optional[str],
    ):
        validation = validate_monitor_url(webhook_url)
        if not validation.valid:
            result.channels.append(ChannelResult(CHANNEL_WEBHOOK, False))
            logger.warning(
                f"Webhook for monitor {monitor.id} refused: {validation.error}"
            )
            return

        payload = build_webhook_payload(
            event=WEBHOOK_EVENTS[kind],
            monitor_id=monitor.id,
            name=monitor.name,
            url=monitor.url,
            status=monitor.status,
            timestamp=isoformat_z(now),
            message=self._build_webhook_message(kind, monitor),
        )
        await self._attempt(
            result,
            CHANNEL_WEBHOOK,
            lambda: self.webhook_sender.send_webhook(webhook_url, payload),
            monitor,
            account_id,
        )


# Global instance
alerter_service = AlerterService()
