"""Notifier service - fans a fired alert out to email, Slack and Discord."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional

import httpx

from ..exceptions import NotificationError
from ..schemas import Alert, Channel, NotificationSettings, Severity
from .email_sender import EmailSenderService

logger = logging.getLogger(__name__)


# Same RGB on every channel; Slack takes the hex string, Discord the integer
SEVERITY_COLORS = {
    Severity.LOW: "#36a64f",
    Severity.MEDIUM: "#ffa500",
    Severity.HIGH: "#ff6b6b",
    Severity.CRITICAL: "#8b0000",
}

CHANNEL_ORDER = (Channel.EMAIL, Channel.SLACK, Channel.DISCORD)


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ChannelResult:
    """What happened on one channel for one alert."""
    channel: Channel
    outcome: DeliveryOutcome
    reason: Optional[str] = None


def alert_title(severity: Severity) -> str:
    return f"Uptime Alert - {Severity(severity).value.upper()}"


def discord_color(severity: Severity) -> int:
    return int(SEVERITY_COLORS[Severity(severity)].lstrip("#"), 16)


def build_slack_payload(alert: Alert, now: datetime) -> dict:
    return {
        "attachments": [
            {
                "color": SEVERITY_COLORS[alert.severity],
                "title": alert_title(alert.severity),
                "text": alert.message,
                "ts": int(now.timestamp()),
            }
        ]
    }


def build_discord_payload(alert: Alert, now: datetime) -> dict:
    return {
        "embeds": [
            {
                "title": alert_title(alert.severity),
                "description": alert.message,
                "color": discord_color(alert.severity),
                "timestamp": now.isoformat(),
            }
        ]
    }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotifierService:
    """Service for sending alert notifications.

    ``dispatch`` never raises: each channel is attempted independently and
    reported as sent, skipped or failed.
    """

    def __init__(
        self,
        email_sender: Optional[EmailSenderService] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.email_sender = email_sender or EmailSenderService()
        self.timeout = timeout
        self._transport = transport
        self._now = now

    async def dispatch(
        self,
        alert: Alert,
        channels: Iterable[Channel],
        settings: Optional[NotificationSettings],
        recipient: Optional[str] = None,
    ) -> List[ChannelResult]:
        """Send ``alert`` on each requested channel."""
        requested = {Channel(c) for c in channels}
        results = []

        for channel in CHANNEL_ORDER:
            if channel not in requested:
                continue
            try:
                result = await self._send_channel(channel, alert, settings, recipient)
            except NotificationError as e:
                logger.error(f"Failed to send {channel.value} notification for alert {alert.id}: {e.message}")
                result = ChannelResult(channel, DeliveryOutcome.FAILED, e.message)
            except Exception as e:
                logger.error(
                    f"Unexpected error sending {channel.value} notification for alert {alert.id}: "
                    f"{type(e).__name__}: {e}"
                )
                result = ChannelResult(channel, DeliveryOutcome.FAILED, f"{type(e).__name__}: {e}")

            if result.outcome == DeliveryOutcome.SKIPPED:
                logger.info(f"Skipped {channel.value} notification for alert {alert.id}: {result.reason}")
            results.append(result)

        return results

    async def _send_channel(
        self,
        channel: Channel,
        alert: Alert,
        settings: Optional[NotificationSettings],
        recipient: Optional[str],
    ) -> ChannelResult:
        if settings is None:
            return ChannelResult(channel, DeliveryOutcome.SKIPPED, "No notification settings")

        if channel == Channel.EMAIL:
            return await self._send_email(alert, settings, recipient)
        if channel == Channel.SLACK:
            return await self._send_webhook(
                channel, settings.slack_webhook_url, build_slack_payload(alert, self._now())
            )
        return await self._send_webhook(
            channel, settings.discord_webhook_url, build_discord_payload(alert, self._now())
        )

    async def _send_email(
        self,
        alert: Alert,
        settings: NotificationSettings,
        recipient: Optional[str],
    ) -> ChannelResult:
        if not settings.email_enabled:
            return ChannelResult(Channel.EMAIL, DeliveryOutcome.SKIPPED, "Email alerts disabled")
        if not recipient:
            return ChannelResult(Channel.EMAIL, DeliveryOutcome.SKIPPED, "No recipient address")
        if not self.email_sender.configured:
            return ChannelResult(Channel.EMAIL, DeliveryOutcome.SKIPPED, "SMTP is not configured")

        subject = f"[{alert.severity.value.upper()}] {alert_title(alert.severity)}"
        body = "\n".join([
            alert_title(alert.severity),
            "=" * 40,
            "",
            alert.message,
            "",
            f"Target: {alert.target_id}",
            f"Triggered: {alert.triggered_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ])
        await self.email_sender.send_email(recipient, subject, body)
        return ChannelResult(Channel.EMAIL, DeliveryOutcome.SENT)

    async def _send_webhook(
        self,
        channel: Channel,
        url: Optional[str],
        payload: dict,
    ) -> ChannelResult:
        if not url:
            return ChannelResult(channel, DeliveryOutcome.SKIPPED, "No webhook URL configured")

        try:
            # httpx timeouts are per phase; wait_for bounds the whole post
            response = await asyncio.wait_for(self._post(url, payload), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise NotificationError(
                f"{channel.value} webhook timed out after {self.timeout}s", cause=e
            )
        except httpx.HTTPError as e:
            raise NotificationError(f"{channel.value} webhook error: {type(e).__name__}: {e}", cause=e)

        if response.status_code >= 400:
            raise NotificationError(f"{channel.value} webhook returned {response.status_code}")

        logger.info(f"{channel.value.capitalize()} notification sent")
        return ChannelResult(channel, DeliveryOutcome.SENT)

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
