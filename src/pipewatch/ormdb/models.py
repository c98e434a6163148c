"""SQLAlchemy ORM models for the alert evaluation engine."""

import datetime
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from .database import Base


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the storage convention for every DateTime column."""
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class AlertDefinition(Base):
    """Alert rule describing when and where a notification should fire."""

    __tablename__ = "alerts"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="BUILD_FAILURE", index=True)
    conditions = Column(JSON, nullable=False, default=dict)
    channels = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Back-references only; the engine never deletes history
    events = relationship("NotificationEvent", back_populates="alert")

    def __repr__(self):
        return f"<AlertDefinition(id='{self.id}', name='{self.name}', active={self.is_active})>"


class ProviderIntegration(Base):
    """Configured connection to one instance of an external CI system."""

    __tablename__ = "provider_integrations"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    kind = Column(String, nullable=False, index=True)  # JENKINS or GITHUB_ACTIONS
    base_url = Column(String, nullable=True)
    username = Column(String, nullable=True)
    secret = Column(String, nullable=True)  # password or API token
    owner = Column(String, nullable=True)
    repo = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ProviderIntegration(id='{self.id}', kind='{self.kind}', name='{self.name}')>"


class NotificationEvent(Base):
    """Append-only record of one dispatch attempt; also the dedup fingerprint source."""

    __tablename__ = "notification_events"
    __table_args__ = (
        Index("ix_notification_events_fingerprint", "alert_id", "message", "sent_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    alert_id = Column(String, ForeignKey("alerts.id"), nullable=False, index=True)
    status = Column(String, nullable=False)  # SENT or FAILED
    message = Column(Text, nullable=False)
    integration_id = Column(String, nullable=True)
    target_name = Column(String, nullable=True)
    run_number = Column(String, nullable=True)
    link = Column(Text, nullable=True)
    sent_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    alert = relationship("AlertDefinition", back_populates="events")

    def __repr__(self):
        return f"<NotificationEvent(alert_id='{self.alert_id}', status='{self.status}')>"
