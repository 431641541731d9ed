"""Push notification sender service using APNs for iOS."""
import logging
from dataclasses import dataclass
from typing import List, Optional

from aioapns import APNs, NotificationRequest, PushType

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class PushConfig:
    """APNs configuration."""
    key_path: str = ""  # Path to .p8 key file
    key_id: str = ""
    team_id: str = ""
    bundle_id: str = ""
    use_sandbox: bool = True  # Use sandbox for development

    @classmethod
    def from_settings(cls) -> "PushConfig":
        return cls(
            key_path=settings.apns_key_path or "",
            key_id=settings.apns_key_id or "",
            team_id=settings.apns_team_id or "",
            bundle_id=settings.apns_bundle_id or "",
            use_sandbox=settings.apns_use_sandbox,
        )

    @property
    def complete(self) -> bool:
        return all([self.key_path, self.key_id, self.team_id, self.bundle_id])


class PushSenderService:
    """Service for sending push notifications via APNs."""

    def __init__(self, config: Optional[PushConfig] = None):
        self._config = config
        self._client: Optional[APNs] = None

    def _get_client(self) -> Optional[APNs]:
        """Create the APNs client on first use."""
        if self._client is not None:
            return self._client

        config = self._config or PushConfig.from_settings()
        if not config.complete:
            logger.warning("Push notifications requested but APNs not fully configured")
            return None

        self._client = APNs(
            key=config.key_path,
            key_id=config.key_id,
            team_id=config.team_id,
            topic=config.bundle_id,
            use_sandbox=config.use_sandbox,
        )
        logger.info(f"APNs client configured (sandbox={config.use_sandbox})")
        return self._client

    async def send_notification(
        self,
        device_token: str,
        title: str,
        body: str,
        data: Optional[dict] = None,
        badge: Optional[int] = None,
    ) -> bool:
        """Send a push notification to a single device.

        Returns:
            True if APNs accepted the notification
        """
        client = self._get_client()
        if client is None:
            return False

        aps = {"alert": {"title": title, "body": body}, "sound": "default"}
        if badge is not None:
            aps["badge"] = badge

        payload = {"aps": aps}
        if data:
            payload.update(data)

        request = NotificationRequest(
            device_token=device_token,
            message=payload,
            push_type=PushType.ALERT,
        )
        response = await client.send_notification(request)

        if response.is_successful:
            logger.info(f"Push notification sent to {device_token[:16]}...")
            return True

        logger.warning(
            f"Push notification failed: {response.description} "
            f"(token: {device_token[:16]}...)"
        )
        return False

    async def send_to_devices(
        self,
        device_tokens: List[str],
        title: str,
        body: str,
        data: Optional[dict] = None,
        badge: Optional[int] = None,
    ) -> bool:
        """Send a notification to every token of an account.

        Returns:
            True if at least one device accepted it
        """
        success_count = 0
        failure_count = 0

        for token in device_tokens:
            try:
                delivered = await self.send_notification(token, title, body, data, badge)
            except Exception as e:
                logger.error(f"Failed to send push notification: {type(e).__name__}: {e}")
                delivered = False

            if delivered:
                success_count += 1
            else:
                failure_count += 1

        logger.info(
            f"Push notifications sent: {success_count} success, {failure_count} failed"
        )
        return success_count > 0


# Global instance
push_sender_service = PushSenderService()
