"""Telegram sender service - chat-bot alerts via the Bot API."""
import logging
import re
from typing import Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot"

KIND_EMOJI = {
    "down": "🔴",
    "recovery": "🟢",
    "degraded": "🟡",
}

_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!])")


def escape_markdown(text: str) -> str:
    """Escape characters with meaning in Telegram MarkdownV2."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


class TelegramSenderService:
    """Service for sending messages to a Telegram chat."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ):
        self._bot_token = bot_token
        self._transport = transport
        self.timeout = timeout

    @property
    def bot_token(self) -> Optional[str]:
        return self._bot_token or settings.telegram_bot_token

    async def send_message(self, chat_id: str, title: str, body: str, kind: str) -> bool:
        """Send a formatted alert to a chat.

        Returns True when the Bot API reports ok.
        """
        token = self.bot_token
        if not token:
            logger.error("TELEGRAM_BOT_TOKEN not configured")
            return False

        emoji = KIND_EMOJI.get(kind, "📢")
        text = f"{emoji} *{escape_markdown(title)}*\n\n{escape_markdown(body)}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{TELEGRAM_API_URL}{token}/sendMessage",
                    json={"chat_id": chat_id, "text": text, "parse_mode": "MarkdownV2"},
                )
            if response.status_code != 200:
                logger.error(f"Telegram API error {response.status_code}: {response.text[:200]}")
                return False
            return bool(response.json().get("ok"))
        except (httpx.HTTPError, ValueError) as e:
            # Error text can include the request URL, which embeds the token
            message = f"{type(e).__name__}: {e}".replace(token, "<redacted>")
            logger.error(f"Failed to send Telegram message: {message}")
            return False


# Global instance
telegram_sender_service = TelegramSenderService()
