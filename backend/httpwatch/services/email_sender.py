"""Email sender service - sends alerts via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""

    @classmethod
    def from_settings(cls) -> "EmailConfig":
        return cls(
            host=settings.smtp_host or "",
            port=settings.smtp_port,
            username=settings.smtp_username or "",
            password=settings.smtp_password or "",
            use_tls=settings.smtp_use_tls,
            from_address=settings.alert_email_from or "",
        )


class EmailSenderService:
    """Service for sending email alerts via SMTP."""

    def __init__(self, config: Optional[EmailConfig] = None):
        self._config = config

    @property
    def config(self) -> EmailConfig:
        return self._config or EmailConfig.from_settings()

    @property
    def configured(self) -> bool:
        return bool(self.config.host)

    async def send_email(
        self,
        to_address: str,
        subject: str,
        text_body: str,
        html_body: Optional[str] = None,
    ) -> bool:
        """Send an email using SMTP.

        The blocking SMTP session runs in the default executor.
        Returns True on success, False on failure.
        """
        config = self.config
        if not config.host or not to_address:
            logger.warning("Email not configured - missing SMTP host or recipient")
            return False

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._send_blocking, config, to_address, subject, text_body, html_body
        )

    def _send_blocking(
        self,
        config: EmailConfig,
        to_address: str,
        subject: str,
        text_body: str,
        html_body: Optional[str],
    ) -> bool:
        from_addr = config.from_address or config.username

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = to_address
        msg.attach(MIMEText(text_body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(config.host, config.port, timeout=30) as server:
                if config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if config.username and config.password:
                    server.login(config.username, config.password)
                server.sendmail(from_addr, [to_address], msg.as_string())

            logger.info(f"Email sent to {to_address}: {subject}")
            return True

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            return False
        except smtplib.SMTPConnectError as e:
            logger.error(f"Failed to connect to SMTP server {config.host}:{config.port}: {e}")
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused by server: {e}")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {type(e).__name__}: {e}")
            return False
        except (ConnectionRefusedError, TimeoutError) as e:
            logger.error(f"Could not reach {config.host}:{config.port}: {e}")
            return False
        except OSError as e:
            logger.error(f"Unexpected error sending email: {type(e).__name__}: {e}")
            return False


# Global instance
email_sender_service = EmailSenderService()
