"""Data models for notification delivery."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ...exceptions import ConfigurationError


class NotificationChannel(Enum):
    """Available notification channels."""

    EMAIL = "email"
    CHAT_WEBHOOK = "chat_webhook"


class DeliveryStatus(Enum):
    """Outcome of one channel delivery."""

    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NotificationPayload:
    """Content shared by every channel for one notification."""

    title: str
    message: str
    link: Optional[str] = None
    details: List[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        """Message followed by one line per detail."""
        return "\n".join([self.message, *self.details])


class EmailChannelConfig(BaseModel):
    """Email channel section: ``{"to": "a@b.com, c@d.com"}`` or a list."""

    model_config = ConfigDict(extra="ignore")

    to: Union[str, List[str]] = ""


class ChatWebhookConfig(BaseModel):
    """Chat webhook section: ``{"webhookUrl": "https://..."}``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    webhook_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("webhookUrl", "webhook_url", "url"),
    )


class AlertChannels(BaseModel):
    """Channel configuration attached to an alert definition."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    email: Optional[EmailChannelConfig] = None
    chat: Optional[ChatWebhookConfig] = Field(
        default=None,
        validation_alias=AliasChoices("slack", "webhook", "chat"),
    )

    @classmethod
    def parse(cls, raw: Optional[Dict[str, Any]]) -> "AlertChannels":
        """Validate stored channel JSON, reporting problems as configuration errors."""
        if isinstance(raw, AlertChannels):
            return raw
        try:
            return cls.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigurationError("channels", str(e))

    def configured(self) -> List[NotificationChannel]:
        channels = []
        if self.email is not None:
            channels.append(NotificationChannel.EMAIL)
        if self.chat is not None:
            channels.append(NotificationChannel.CHAT_WEBHOOK)
        return channels


@dataclass
class NotificationResult:
    """Result of notification delivery attempt."""

    channel: NotificationChannel
    status: DeliveryStatus
    error: Optional[str] = None
    delivery_time_ms: float = 0
    detail: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    @property
    def attempted(self) -> bool:
        return self.status != DeliveryStatus.SKIPPED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "error": self.error,
            "detail": self.detail,
            "delivery_time_ms": round(self.delivery_time_ms, 2),
        }


@dataclass
class DispatchReport:
    """Per-channel results for one notification."""

    results: List[NotificationResult] = field(default_factory=list)

    @property
    def attempted(self) -> bool:
        return any(result.attempted for result in self.results)

    @property
    def delivered(self) -> bool:
        return any(result.success for result in self.results)

    @property
    def failed_channels(self) -> List[str]:
        return [
            result.channel.value
            for result in self.results
            if result.status == DeliveryStatus.FAILED
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "delivered": self.delivered,
            "results": [result.to_dict() for result in self.results],
        }
