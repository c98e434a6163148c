"""Database module for SQLAlchemy ORM integration."""

from .database import (
    Base,
    check_database_health,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from .models import AlertDefinition, NotificationEvent, ProviderIntegration
from .repositories import (
    AlertDefinitionRepository,
    NotificationEventRepository,
    ProviderIntegrationRepository,
)

__all__ = [
    # Database components
    "Base",
    "check_database_health",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    # Models
    "AlertDefinition",
    "NotificationEvent",
    "ProviderIntegration",
    # Repositories
    "AlertDefinitionRepository",
    "NotificationEventRepository",
    "ProviderIntegrationRepository",
]
