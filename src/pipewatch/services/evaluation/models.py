"""Data models for alert evaluation."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ...exceptions import ConfigurationError
from ...providers.models import ProviderKind, RunOutcome, RunRecord
from ..notification.models import AlertChannels, DispatchReport, NotificationPayload


class AlertType(Enum):
    """Category tag of an alert definition."""

    BUILD_FAILURE = "BUILD_FAILURE"
    DEPLOYMENT_FAILURE = "DEPLOYMENT_FAILURE"
    PERFORMANCE_DEGRADATION = "PERFORMANCE_DEGRADATION"
    SECURITY_ISSUE = "SECURITY_ISSUE"
    CUSTOM = "CUSTOM"


class AlertEvent(Enum):
    """Which terminal outcomes an alert reacts to."""

    FAILURE = "FAILURE"
    SUCCESS = "SUCCESS"
    COMPLETED = "COMPLETED"


class AlertConditions(BaseModel):
    """Validated ``conditions`` JSON of an alert definition."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event: AlertEvent = AlertEvent.FAILURE
    recent_minutes: Optional[int] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("recentMinutes", "recent_minutes"),
    )
    provider: Optional[ProviderKind] = None
    integration_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("integrationId", "integration_id"),
    )
    target: Optional[str] = None

    @field_validator("event", mode="before")
    @classmethod
    def normalize_event(cls, v):
        if v is None or v == "":
            return AlertEvent.FAILURE
        return str(v).strip().upper() if not isinstance(v, AlertEvent) else v

    @field_validator("provider", mode="before")
    @classmethod
    def parse_provider(cls, v):
        if v is None or v == "" or isinstance(v, ProviderKind):
            return v or None
        try:
            return ProviderKind.parse(v)
        except ConfigurationError as e:
            raise ValueError(e.message)

    @field_validator("integration_id", "target", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @classmethod
    def parse(cls, raw: Optional[Dict[str, Any]]) -> "AlertConditions":
        try:
            return cls.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigurationError("conditions", str(e))

    def window_minutes(self, default: int) -> int:
        return self.recent_minutes or default


@dataclass(frozen=True)
class AlertRule:
    """Snapshot of an active alert definition, detached from its session."""

    id: str
    name: str
    type: str
    conditions: AlertConditions
    channels: AlertChannels

    @classmethod
    def from_model(cls, alert) -> "AlertRule":
        """
        Validate an ``AlertDefinition`` row.

        Raises:
            ConfigurationError: when conditions or channels are malformed
        """
        return cls(
            id=alert.id,
            name=alert.name,
            type=str(alert.type or AlertType.BUILD_FAILURE.value).upper(),
            conditions=AlertConditions.parse(alert.conditions),
            channels=AlertChannels.parse(alert.channels),
        )

    @property
    def is_deployment_alert(self) -> bool:
        return self.type == AlertType.DEPLOYMENT_FAILURE.value


@dataclass
class CandidateNotification:
    """A matched run that should be notified, pending dedup."""

    alert_id: str
    title: str
    message: str
    link: Optional[str]
    integration_id: str
    target: str
    run_number: str
    outcome: RunOutcome
    run: Optional[RunRecord] = None
    details: List[str] = field(default_factory=list)

    def to_payload(self) -> NotificationPayload:
        return NotificationPayload(
            title=self.title,
            message=self.message,
            link=self.link,
            details=list(self.details),
        )


@dataclass
class AlertOutcome:
    """What one pass did for one alert."""

    alert_id: str
    alert_name: str
    success: bool = True
    candidates: int = 0
    dispatched: int = 0
    suppressed: int = 0
    errors: List[str] = field(default_factory=list)
    reports: List[DispatchReport] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "alert_name": self.alert_name,
            "success": self.success,
            "candidates": self.candidates,
            "dispatched": self.dispatched,
            "suppressed": self.suppressed,
            "errors": list(self.errors),
        }


@dataclass
class EvaluationPassSummary:
    """Per-alert results of one evaluation pass."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    trigger: str = "manual"
    alerts: List[AlertOutcome] = field(default_factory=list)

    @property
    def evaluated(self) -> int:
        return len(self.alerts)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.alerts if not outcome.success)

    @property
    def dispatched(self) -> int:
        return sum(outcome.dispatched for outcome in self.alerts)

    @property
    def suppressed(self) -> int:
        return sum(outcome.suppressed for outcome in self.alerts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "evaluated": self.evaluated,
            "failed": self.failed,
            "dispatched": self.dispatched,
            "suppressed": self.suppressed,
            "alerts": [outcome.to_dict() for outcome in self.alerts],
        }
