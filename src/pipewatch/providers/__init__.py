"""CI provider clients and the factory that selects one per integration."""

from typing import Optional

from ..config.settings import get_settings
from .base import ProviderClient
from .github_actions import GitHubActionsClient
from .jenkins import JenkinsClient
from .models import (
    IntegrationConfig,
    ProviderKind,
    RunOutcome,
    RunRecord,
    RunStatus,
    Target,
    WorkflowSummary,
)


def create_provider_client(
    config: IntegrationConfig, timeout: Optional[float] = None
) -> ProviderClient:
    """
    Build the client for an integration's provider kind.

    Raises:
        ConfigurationError: when the integration lacks required parameters
    """
    settings = get_settings()
    timeout = timeout if timeout is not None else settings.provider_timeout_seconds

    if config.kind is ProviderKind.JENKINS:
        return JenkinsClient(
            config, timeout=timeout, build_limit=settings.jenkins_build_limit
        )
    if config.kind is ProviderKind.GITHUB_ACTIONS:
        return GitHubActionsClient(
            config, timeout=timeout, api_url=settings.github_api_url
        )
    raise ValueError(f"Unsupported provider kind: {config.kind}")


__all__ = [
    "GitHubActionsClient",
    "IntegrationConfig",
    "JenkinsClient",
    "ProviderClient",
    "ProviderKind",
    "RunOutcome",
    "RunRecord",
    "RunStatus",
    "Target",
    "WorkflowSummary",
    "create_provider_client",
]
