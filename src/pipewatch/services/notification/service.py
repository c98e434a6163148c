"""Main notification service orchestration."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from .channels import (
    ChatWebhookNotificationChannel,
    EmailNotificationChannel,
    NotificationChannelProtocol,
)
from .models import (
    AlertChannels,
    DeliveryStatus,
    DispatchReport,
    NotificationChannel,
    NotificationPayload,
    NotificationResult,
)

logger = get_logger(__name__)


class NotificationService:
    """Fans a notification out to every channel configured on an alert."""

    def __init__(
        self,
        channels: Optional[Dict[NotificationChannel, NotificationChannelProtocol]] = None,
        settings: Optional[Settings] = None,
    ):
        self.logger = logger.bind(service="notification_service")
        settings = settings or get_settings()

        if channels is None:
            channels = {
                NotificationChannel.EMAIL: EmailNotificationChannel.from_settings(settings),
                NotificationChannel.CHAT_WEBHOOK: ChatWebhookNotificationChannel(
                    timeout=settings.webhook_timeout_seconds
                ),
            }
        self.channels = channels

    def _channel_jobs(
        self, config: AlertChannels
    ) -> Tuple[List[NotificationChannel], List[Any]]:
        jobs = []
        if config.email is not None:
            jobs.append((NotificationChannel.EMAIL, config.email))
        if config.chat is not None:
            jobs.append((NotificationChannel.CHAT_WEBHOOK, config.chat))

        kinds = [kind for kind, _ in jobs]
        return kinds, jobs

    async def dispatch(
        self, channels_config: Any, payload: NotificationPayload
    ) -> DispatchReport:
        """
        Deliver one payload through the configured channels concurrently.

        A failing channel never prevents the others from being attempted.

        Args:
            channels_config: AlertChannels or the raw channel JSON of an alert
            payload: Title, message and link to deliver

        Returns:
            DispatchReport with one result per configured channel
        """
        config = AlertChannels.parse(channels_config)
        kinds, jobs = self._channel_jobs(config)

        results: List[NotificationResult] = []
        tasks = []
        task_channels = []
        for kind, channel_config in jobs:
            implementation = self.channels.get(kind)
            if implementation is None:
                results.append(
                    NotificationResult(
                        channel=kind,
                        status=DeliveryStatus.SKIPPED,
                        detail="channel_not_available",
                    )
                )
                continue
            tasks.append(implementation.send_notification(payload, channel_config))
            task_channels.append(kind)

        if tasks:
            channel_results = await asyncio.gather(*tasks, return_exceptions=True)

            for kind, result in zip(task_channels, channel_results):
                if isinstance(result, Exception):
                    self.logger.error(
                        "Channel delivery raised exception",
                        channel=kind.value,
                        error=str(result),
                        exc_info=result,
                    )
                    results.append(
                        NotificationResult(
                            channel=kind,
                            status=DeliveryStatus.FAILED,
                            error=str(result) or type(result).__name__,
                        )
                    )
                else:
                    results.append(result)

        report = DispatchReport(results=results)
        self.logger.info(
            "Notification dispatch completed",
            title=payload.title,
            channels=[kind.value for kind in kinds],
            delivered=sum(1 for r in results if r.success),
            failed=len(report.failed_channels),
            skipped=sum(1 for r in results if not r.attempted),
        )
        return report

    async def send_test_notification(
        self,
        channels_config: Any,
        title: str = "Test notification",
        text: str = "This is a test notification from the CI/CD alert evaluator.",
        link: Optional[str] = None,
    ) -> DispatchReport:
        """Deliver an ad-hoc message without touching notification history."""
        self.logger.info("Sending test notification", title=title)
        payload = NotificationPayload(title=title, message=text, link=link)
        return await self.dispatch(channels_config, payload)

    def get_channel_status(self) -> Dict[str, Dict[str, Any]]:
        """
        Get status of all notification channels.

        Returns:
            Dictionary with channel status information
        """
        status = {}
        for channel_type, implementation in self.channels.items():
            available = True
            if isinstance(implementation, EmailNotificationChannel):
                available = implementation.transport is not None
            status[channel_type.value] = {
                "available": available,
                "implementation": type(implementation).__name__,
                "last_checked": datetime.now(timezone.utc).isoformat(),
            }
        return status

