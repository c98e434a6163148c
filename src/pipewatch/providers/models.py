"""Normalized data models shared by all CI provider clients."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError


class ProviderKind(Enum):
    """Supported CI provider families."""

    JENKINS = "JENKINS"
    GITHUB_ACTIONS = "GITHUB_ACTIONS"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value: str) -> "ProviderKind":
        """Accept the stored enum value as well as the short tags used in alert conditions."""
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return _ALIASES[key]
        except KeyError:
            raise ConfigurationError("provider", f"unknown provider '{value}'")


_LABELS = {
    ProviderKind.JENKINS: "Jenkins",
    ProviderKind.GITHUB_ACTIONS: "GitHub Actions",
}

_ALIASES = {
    "jenkins": ProviderKind.JENKINS,
    "github": ProviderKind.GITHUB_ACTIONS,
    "github_actions": ProviderKind.GITHUB_ACTIONS,
    "githubactions": ProviderKind.GITHUB_ACTIONS,
    "gha": ProviderKind.GITHUB_ACTIONS,
}


class RunStatus(Enum):
    """Lifecycle state of a run."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class RunOutcome(Enum):
    """Terminal result of a completed run."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    UNSTABLE = "UNSTABLE"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"
    SKIPPED = "SKIPPED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_failure(self) -> bool:
        return self in (RunOutcome.FAILURE, RunOutcome.TIMED_OUT)

    @property
    def verb(self) -> str:
        """Past-tense word used in notification messages."""
        return _OUTCOME_VERBS[self]


_OUTCOME_VERBS = {
    RunOutcome.SUCCESS: "succeeded",
    RunOutcome.FAILURE: "failed",
    RunOutcome.UNSTABLE: "unstable",
    RunOutcome.CANCELLED: "cancelled",
    RunOutcome.TIMED_OUT: "timed out",
    RunOutcome.SKIPPED: "skipped",
    RunOutcome.UNKNOWN: "completed",
}


@dataclass(frozen=True)
class IntegrationConfig:
    """Resolved connection parameters for one provider integration."""

    id: str
    name: str
    kind: ProviderKind
    base_url: Optional[str] = None
    username: Optional[str] = None
    secret: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_model(cls, integration) -> "IntegrationConfig":
        """Build from a ``ProviderIntegration`` ORM row."""
        return cls(
            id=integration.id,
            name=integration.name,
            kind=ProviderKind.parse(integration.kind),
            base_url=integration.base_url or None,
            username=integration.username or None,
            secret=integration.secret or None,
            owner=integration.owner or None,
            repo=integration.repo or None,
            is_active=bool(integration.is_active),
        )

    def __repr__(self) -> str:
        # Never render the secret
        return (
            f"IntegrationConfig(id={self.id!r}, name={self.name!r}, "
            f"kind={self.kind.value})"
        )


@dataclass
class Target:
    """A monitored unit: a Jenkins job or a GitHub Actions workflow."""

    name: str
    target_id: Optional[str] = None
    url: Optional[str] = None
    status_hint: Optional[str] = None
    path: Optional[str] = None


@dataclass
class RunRecord:
    """One run or build, fetched fresh on every pass."""

    provider: ProviderKind
    integration_id: str
    target: str
    run_id: str
    number: Optional[int]
    status: RunStatus
    outcome: Optional[RunOutcome] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    url: Optional[str] = None
    branch: Optional[str] = None
    display_title: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status == RunStatus.COMPLETED and self.outcome is not None

    @property
    def last_activity_at(self) -> Optional[datetime]:
        """Timestamp used for the recency window: update time, else start time."""
        return self.updated_at or self.started_at

    @property
    def display_number(self) -> str:
        return str(self.number) if self.number is not None else self.run_id


@dataclass
class WorkflowSummary:
    """Per-workflow statistics over the most recent runs."""

    target: Target
    last_status: Optional[str] = None
    last_run_at: Optional[datetime] = None
    success_rate: int = 0
    avg_duration_seconds: int = 0
    completed_runs: int = 0
