"""Repository for provider integration lookups."""

from typing import List, Optional

from ..models import ProviderIntegration
from .base import BaseRepository


class ProviderIntegrationRepository(BaseRepository):
    """Read access to configured CI provider integrations."""

    def list_active(self) -> List[ProviderIntegration]:
        """Get active integrations in creation order."""
        query = self.session.query(ProviderIntegration).filter(
            ProviderIntegration.is_active.is_(True)
        )
        return query.order_by(ProviderIntegration.created_at).all()

    def get_by_id(self, integration_id: str) -> Optional[ProviderIntegration]:
        return self.session.get(ProviderIntegration, integration_id)

    def add(self, integration: ProviderIntegration) -> ProviderIntegration:
        """Persist an integration (used by seeding and tests)."""
        self.session.add(integration)
        self.session.commit()
        self.session.refresh(integration)
        return integration
