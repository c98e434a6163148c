"""API routers for pipewatch."""

from .alerts import router as alerts_router
from .integrations import router as integrations_router

__all__ = ["alerts_router", "integrations_router"]
