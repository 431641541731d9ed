"""Webhook sender service - POSTs alert payloads to monitor webhooks."""
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

EVENT_HEADER = "X-HttpWatch-Event"
WEBHOOK_USER_AGENT = "httpwatch-webhook/1.0"

EVENT_DOWN = "check.down"
EVENT_UP = "check.up"
EVENT_RECOVERY = "check.recovery"


def build_webhook_payload(
    event: str,
    monitor_id: str,
    name: str,
    url: str,
    status: str,
    timestamp: str,
    message: str,
) -> Dict[str, Any]:
    """Build the generic webhook body."""
    return {
        "event": event,
        "check": {
            "id": monitor_id,
            "name": name,
            "url": url,
            "status": status,
        },
        "timestamp": timestamp,
        "message": message,
    }


# Emoji and colour per alert tone
STYLE_DOWN = ("🔴", 0xDC2626)
STYLE_DEGRADED = ("🟡", 0xCA8A04)
STYLE_UP = ("🟢", 0x16A34A)


def alert_style(payload: Dict[str, Any]) -> Tuple[str, int]:
    """Degraded alerts go out as check.up, so the check status decides."""
    if payload["event"] == EVENT_DOWN:
        return STYLE_DOWN
    if payload["check"]["status"] == "degraded":
        return STYLE_DEGRADED
    return STYLE_UP


def is_slack_webhook(url: str) -> bool:
    return "hooks.slack.com" in url


def is_discord_webhook(url: str) -> bool:
    return "discord.com/api/webhooks" in url


def format_payload_for_service(url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Adapt the payload to Slack or Discord when the URL belongs to them."""
    emoji, color = alert_style(payload)
    check = payload["check"]

    if is_slack_webhook(url):
        return {
            "attachments": [
                {
                    "color": f"#{color:06x}",
                    "blocks": [
                        {
                            "type": "section",
                            "text": {"type": "mrkdwn", "text": f"{emoji} *{payload['message']}*"},
                        },
                        {
                            "type": "context",
                            "elements": [
                                {
                                    "type": "mrkdwn",
                                    "text": (
                                        f"Monitor: `{check['name']}` | Status: `{check['status']}` "
                                        f"| {payload['timestamp']}"
                                    ),
                                }
                            ],
                        },
                    ],
                }
            ]
        }

    if is_discord_webhook(url):
        return {
            "embeds": [
                {
                    "title": payload["message"],
                    "color": color,
                    "fields": [
                        {"name": "Monitor", "value": check["name"], "inline": True},
                        {"name": "Status", "value": check["status"], "inline": True},
                    ],
                    "timestamp": payload["timestamp"],
                    "footer": {"text": "httpwatch"},
                }
            ]
        }

    return payload


class WebhookSenderService:
    """Service for delivering webhook alerts."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout or settings.webhook_timeout_seconds
        self._transport = transport

    async def send_webhook(self, url: str, payload: Dict[str, Any]) -> bool:
        """POST a payload to a webhook URL.

        Only a 2xx response counts as delivered. Redirects are not followed.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    url,
                    json=format_payload_for_service(url, payload),
                    headers={
                        "Content-Type": "application/json",
                        "User-Agent": WEBHOOK_USER_AGENT,
                        EVENT_HEADER: payload["event"],
                    },
                )
        except httpx.TimeoutException:
            logger.warning(f"Webhook timeout: {url}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Webhook error for {url}: {type(e).__name__}: {e}")
            return False

        if 200 <= response.status_code < 300:
            logger.info(f"Webhook sent: {payload['event']} for {payload['check']['name']}")
            return True

        logger.warning(f"Webhook returned {response.status_code} for {url}")
        return False


# Global instance
webhook_sender_service = WebhookSenderService()
