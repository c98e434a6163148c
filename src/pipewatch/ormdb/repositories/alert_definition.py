"""Repository for alert definition lookups."""

from typing import List, Optional

from ..models import AlertDefinition
from .base import BaseRepository


class AlertDefinitionRepository(BaseRepository):
    """Read access to alert definitions owned by the management surface."""

    def list_active(self) -> List[AlertDefinition]:
        """Get all active alerts, oldest first so pass order is stable."""
        return (
            self.session.query(AlertDefinition)
            .filter(AlertDefinition.is_active.is_(True))
            .order_by(AlertDefinition.created_at, AlertDefinition.id)
            .all()
        )

    def get_by_id(self, alert_id: str) -> Optional[AlertDefinition]:
        return self.session.get(AlertDefinition, alert_id)

    def add(self, alert: AlertDefinition) -> AlertDefinition:
        """Persist an alert definition (used by seeding and tests)."""
        self.session.add(alert)
        self.session.commit()
        self.session.refresh(alert)
        return alert
