"""Email sender service - sends alert emails via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..config import settings
from ..exceptions import NotificationError

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""
    timeout: float = 10.0

    @classmethod
    def from_settings(cls) -> Optional["EmailConfig"]:
        """Build from application settings, or None if SMTP is not configured."""
        if not settings.smtp_host:
            return None
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or "",
            password=settings.smtp_password or "",
            use_tls=settings.smtp_use_tls,
            from_address=settings.alert_email_from or "",
            timeout=settings.notification_timeout_seconds,
        )


class EmailSenderService:
    """Service for sending email alerts via SMTP."""

    def __init__(self, config: Optional[EmailConfig] = None):
        self.config = config

    @property
    def configured(self) -> bool:
        return self.config is not None and bool(self.config.host)

    async def send_email(self, to_address: str, subject: str, body: str):
        """Send a plain-text email.

        smtplib is blocking, so the exchange runs in a worker thread. The
        socket timeout applies per operation, so the whole exchange is also
        bounded by ``config.timeout``; the thread is abandoned past that.
        Raises ``NotificationError`` on any SMTP or socket failure.
        """
        if not self.configured:
            raise NotificationError("SMTP is not configured")

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send, to_address, subject, body),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError as e:
            raise NotificationError(
                f"SMTP exchange with {self.config.host}:{self.config.port} "
                f"timed out after {self.config.timeout}s",
                cause=e,
            )
        logger.info(f"Email sent to {to_address}: {subject}")

    def _send(self, to_address: str, subject: str, body: str):
        config = self.config
        from_addr = config.from_address or config.username

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = to_address
        msg.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(config.host, config.port, timeout=config.timeout) as server:
                if config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if config.username and config.password:
                    server.login(config.username, config.password)
                server.sendmail(from_addr, [to_address], msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            raise NotificationError(
                f"SMTP authentication failed for user '{config.username}': {e}", cause=e
            )
        except smtplib.SMTPException as e:
            raise NotificationError(f"SMTP error: {type(e).__name__}: {e}", cause=e)
        except OSError as e:
            raise NotificationError(
                f"Could not reach SMTP server {config.host}:{config.port}: {e}", cause=e
            )
