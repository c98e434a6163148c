"""Base class for CI provider clients."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional

import httpx

from ..config.logging import get_logger
from ..config.settings import get_settings
from ..exceptions import UpstreamError
from .models import IntegrationConfig, ProviderKind, RunRecord, Target

logger = get_logger(__name__)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ProviderClient(ABC):
    """
    Common capability set for CI providers.

    Subclasses are selected by ``kind`` and share one lazily created
    ``httpx.AsyncClient`` per instance. Transport failures and non-2xx
    responses surface as ``UpstreamError``.
    """

    kind: ProviderKind

    def __init__(self, config: IntegrationConfig, timeout: Optional[float] = None):
        self.config = config
        self._timeout = (
            timeout if timeout is not None else get_settings().provider_timeout_seconds
        )
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = logger.bind(
            provider=self.kind.value,
            integration_id=config.id,
            integration=config.name,
        )

    @property
    def label(self) -> str:
        return self.kind.label

    @abstractmethod
    def _build_client(self) -> httpx.AsyncClient:
        """Create the HTTP client with base URL and credentials."""

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        allowed_statuses: tuple = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Perform a request, mapping failures onto ``UpstreamError``."""
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamError(self.label, operation, f"timed out: {e}")
        except httpx.HTTPError as e:
            raise UpstreamError(self.label, operation, str(e) or type(e).__name__)

        if response.is_success or response.status_code in allowed_statuses:
            return response

        raise UpstreamError(
            self.label,
            operation,
            f"HTTP {response.status_code} from {response.request.url.path}",
            upstream_status=response.status_code,
        )

    async def _get_json(self, url: str, operation: str, **kwargs: Any) -> Any:
        response = await self._request("GET", url, operation, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(self.label, operation, f"invalid JSON payload: {e}")

    @abstractmethod
    async def list_targets(self) -> List[Target]:
        """List every monitorable target."""

    @abstractmethod
    async def resolve_target(self, name: str) -> Optional[Target]:
        """Resolve a target named in configuration, or None when it does not exist."""

    @abstractmethod
    async def get_latest_run_for(self, target: Target) -> Optional[RunRecord]:
        """Latest run for an already resolved target, or None when it has never run."""

    async def get_latest_run(self, target: str) -> Optional[RunRecord]:
        """Latest run for a target given by name."""
        resolved = await self.resolve_target(target)
        if resolved is None:
            self.logger.warning("Target not found", target=target)
            return None
        return await self.get_latest_run_for(resolved)

    @abstractmethod
    async def list_recent_runs(
        self, limit: int = 20, target: Optional[str] = None
    ) -> List[RunRecord]:
        """Most recent runs, newest first, optionally for one target."""

    @abstractmethod
    async def get_log_text(self, run: RunRecord) -> str:
        """Plain-text log for a run."""
