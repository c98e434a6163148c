"""Repository classes for database operations using SQLAlchemy ORM."""

from .alert_definition import AlertDefinitionRepository
from .base import BaseRepository
from .notification_event import NotificationEventRepository
from .provider_integration import ProviderIntegrationRepository

__all__ = [
    "BaseRepository",
    "AlertDefinitionRepository",
    "NotificationEventRepository",
    "ProviderIntegrationRepository",
]
