"""Notification delivery over email and chat webhooks."""

from .channels import (
    ChatWebhookNotificationChannel,
    EmailNotificationChannel,
    NotificationChannelProtocol,
    SmtpTransport,
)
from .models import (
    AlertChannels,
    ChatWebhookConfig,
    DeliveryStatus,
    DispatchReport,
    EmailChannelConfig,
    NotificationChannel,
    NotificationPayload,
    NotificationResult,
)
from .recipients import sanitize_recipients
from .service import NotificationService

__all__ = [
    "AlertChannels",
    "ChatWebhookConfig",
    "ChatWebhookNotificationChannel",
    "DeliveryStatus",
    "DispatchReport",
    "EmailChannelConfig",
    "EmailNotificationChannel",
    "NotificationChannel",
    "NotificationChannelProtocol",
    "NotificationPayload",
    "NotificationResult",
    "NotificationService",
    "SmtpTransport",
    "sanitize_recipients",
]
