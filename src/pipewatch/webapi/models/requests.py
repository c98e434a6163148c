"""Request models for the pipewatch API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class NotificationTestRequest(BaseModel):
    """Request model for sending an ad-hoc test notification."""

    channels: Dict[str, Any] = Field(
        ...,
        description='Channel configuration, e.g. {"email": {"to": "a@b.com"}, '
        '"slack": {"webhookUrl": "https://..."}}',
    )
    title: str = Field(
        "Test notification", description="Notification title", min_length=1, max_length=200
    )
    text: str = Field(
        "This is a test notification from the CI/CD alert evaluator.",
        description="Notification body",
        min_length=1,
        max_length=4000,
    )
    link: Optional[str] = Field(None, description="Optional link to include")

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v):
        """At least one channel section must be present."""
        known = {"email", "slack", "webhook", "chat"}
        if not known.intersection(v):
            raise ValueError(f"channels must contain one of: {', '.join(sorted(known))}")
        return v
