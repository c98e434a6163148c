"""Notification channel implementations."""

import asyncio
import html
import smtplib
import ssl
import time
from email.message import EmailMessage
from typing import List, Optional, Protocol

import httpx

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from ...exceptions import DispatchError
from .models import (
    ChatWebhookConfig,
    DeliveryStatus,
    EmailChannelConfig,
    NotificationChannel,
    NotificationPayload,
    NotificationResult,
)
from .recipients import sanitize_recipients

logger = get_logger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


class NotificationChannelProtocol(Protocol):
    """Protocol for notification channel implementations."""

    channel: NotificationChannel

    async def send_notification(
        self, payload: NotificationPayload, config
    ) -> NotificationResult:
        """Send notification through this channel."""
        ...


class SmtpTransport:
    """Blocking SMTP submission; run it off the event loop."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["SmtpTransport"]:
        """Transport for the configured relay, or None when SMTP is not set up."""
        if not settings.smtp_configured():
            return None
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )

    def send(self, message: EmailMessage) -> None:
        if self.port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=self.timeout
            ) as server:
                self._login(server)
                server.send_message(message)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                self._login(server)
                server.send_message(message)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.username and self.password:
            server.login(self.username, self.password)


class EmailNotificationChannel:
    """Email notification channel implementation."""

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        transport: Optional[SmtpTransport] = None,
        sender: Optional[str] = None,
        blocked_domains: Optional[List[str]] = None,
        blocked_addresses: Optional[List[str]] = None,
    ):
        settings = get_settings()
        self.transport = transport
        self.sender = sender or settings.smtp_from
        self.blocked_domains = (
            blocked_domains if blocked_domains is not None else settings.get_blocked_domains()
        )
        self.blocked_addresses = (
            blocked_addresses
            if blocked_addresses is not None
            else settings.get_blocked_addresses()
        )
        self.logger = logger.bind(channel="email")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EmailNotificationChannel":
        settings = settings or get_settings()
        return cls(transport=SmtpTransport.from_settings(settings))

    def build_message(
        self, payload: NotificationPayload, recipients: List[str]
    ) -> EmailMessage:
        """Render a multipart text/HTML email for the payload."""
        text = payload.body
        if payload.link:
            text += f"\nLink: {payload.link}"

        body_html = f"<p>{html.escape(payload.body).replace(chr(10), '<br/>')}</p>"
        if payload.link:
            body_html += f'<p><a href="{html.escape(payload.link, quote=True)}">Open</a></p>'

        message = EmailMessage()
        message["Subject"] = f"[CI/CD] {payload.title}"
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        message.set_content(text)
        message.add_alternative(body_html, subtype="html")
        return message

    async def send_notification(
        self, payload: NotificationPayload, config: EmailChannelConfig
    ) -> NotificationResult:
        """
        Send notification via SMTP.

        Missing transport or an empty recipient list after sanitization are
        skips, not failures.
        """
        start = time.monotonic()

        if self.transport is None:
            self.logger.warning("SMTP not configured; skipping email send")
            return NotificationResult(
                channel=self.channel,
                status=DeliveryStatus.SKIPPED,
                detail="smtp_not_configured",
            )

        recipients = sanitize_recipients(
            config.to, self.blocked_domains, self.blocked_addresses
        )
        if not recipients:
            self.logger.warning(
                "No valid email recipients after sanitization; skipping email send",
                configured=config.to,
            )
            return NotificationResult(
                channel=self.channel,
                status=DeliveryStatus.SKIPPED,
                detail="no_valid_recipients",
            )

        try:
            message = self.build_message(payload, recipients)
            await asyncio.to_thread(self.transport.send, message)
        except Exception as e:
            error = DispatchError(self.channel.value, str(e))
            self.logger.error(
                "Failed to send email notification",
                recipients=len(recipients),
                error=error.message,
                exc_info=True,
            )
            return NotificationResult(
                channel=self.channel,
                status=DeliveryStatus.FAILED,
                error=error.message,
                delivery_time_ms=_elapsed_ms(start),
            )

        delivery_time = _elapsed_ms(start)
        self.logger.info(
            "Email notification sent successfully",
            recipients=len(recipients),
            delivery_time_ms=delivery_time,
        )
        return NotificationResult(
            channel=self.channel,
            status=DeliveryStatus.DELIVERED,
            delivery_time_ms=delivery_time,
            detail=f"{len(recipients)} recipient(s)",
        )


class ChatWebhookNotificationChannel:
    """Chat webhook channel: POSTs a JSON payload to an incoming-webhook URL."""

    channel = NotificationChannel.CHAT_WEBHOOK

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = (
            timeout if timeout is not None else get_settings().webhook_timeout_seconds
        )
        self.logger = logger.bind(channel="chat_webhook")

    @staticmethod
    def build_payload(payload: NotificationPayload) -> dict:
        text = f"*{payload.title}*\n{payload.body}"
        if payload.link:
            text += f"\n<{payload.link}|Open>"
        return {
            "text": text,
            "title": payload.title,
            "message": payload.message,
            "details": list(payload.details),
            "link": payload.link,
        }

    async def send_notification(
        self, payload: NotificationPayload, config: ChatWebhookConfig
    ) -> NotificationResult:
        start = time.monotonic()

        if not config.webhook_url:
            self.logger.warning("Chat webhook URL missing; skipping webhook send")
            return NotificationResult(
                channel=self.channel,
                status=DeliveryStatus.SKIPPED,
                detail="webhook_url_missing",
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    config.webhook_url, json=self.build_payload(payload)
                )
            if not response.is_success:
                raise DispatchError(
                    self.channel.value, f"webhook returned HTTP {response.status_code}"
                )
        except (httpx.HTTPError, DispatchError) as e:
            message = e.message if isinstance(e, DispatchError) else str(e) or type(e).__name__
            self.logger.error(
                "Failed to send chat webhook notification",
                error=message,
            )
            return NotificationResult(
                channel=self.channel,
                status=DeliveryStatus.FAILED,
                error=message,
                delivery_time_ms=_elapsed_ms(start),
            )

        delivery_time = _elapsed_ms(start)
        self.logger.info(
            "Chat webhook notification sent successfully",
            status_code=response.status_code,
            delivery_time_ms=delivery_time,
        )
        return NotificationResult(
            channel=self.channel,
            status=DeliveryStatus.DELIVERED,
            delivery_time_ms=delivery_time,
        )
