"""Evaluation pass orchestration."""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from ...exceptions import ConfigurationError, UpstreamError
from ...ormdb.repositories import (
    AlertDefinitionRepository,
    ProviderIntegrationRepository,
)
from ...providers import create_provider_client
from ...providers.base import ProviderClient
from ...providers.models import IntegrationConfig
from ..history import HistoryRecorder
from ..notification import NotificationService
from .dedup import DedupGuard, get_dedup_guard
from .evaluator import ConditionEvaluator
from .models import AlertOutcome, AlertRule, CandidateNotification, EvaluationPassSummary

logger = get_logger(__name__)

ClientFactory = Callable[[IntegrationConfig], ProviderClient]


class AlertEvaluationService:
    """Runs evaluation passes: alerts → providers → conditions → dedup → dispatch → history."""

    def __init__(
        self,
        notification_service: Optional[NotificationService] = None,
        client_factory: Optional[ClientFactory] = None,
        dedup_guard: Optional[DedupGuard] = None,
        history: Optional[HistoryRecorder] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.logger = logger.bind(service="alert_evaluation_service")

        self.notification_service = notification_service or NotificationService(
            settings=self.settings
        )
        self.client_factory = client_factory or create_provider_client
        self.dedup_guard = dedup_guard or get_dedup_guard()
        self.history = history or HistoryRecorder()
        self.evaluator = ConditionEvaluator(
            default_window_minutes=self.settings.alert_dedup_window_minutes
        )

    def _load_active_alerts(self) -> List:
        with AlertDefinitionRepository() as repo:
            return repo.list_active()

    def _load_integrations(self, rule: AlertRule) -> List[IntegrationConfig]:
        """Integrations selected by the alert's provider tag and integration id."""
        with ProviderIntegrationRepository() as repo:
            if rule.conditions.integration_id:
                row = repo.get_by_id(rule.conditions.integration_id)
                rows = [row] if row is not None and row.is_active else []
            else:
                rows = repo.list_active()

        integrations = []
        for row in rows:
            try:
                # Stored kinds may use aliases such as "github"
                config = IntegrationConfig.from_model(row)
            except ConfigurationError as e:
                self.logger.warning(
                    "Skipping integration with unknown kind",
                    integration_id=row.id,
                    error=e.message,
                )
                continue
            if rule.conditions.provider and config.kind is not rule.conditions.provider:
                continue
            integrations.append(config)
        return integrations

    async def run_pass(self, trigger: str = "manual") -> EvaluationPassSummary:
        """
        Evaluate every active alert once, sequentially.

        A failure in one alert is recorded in its outcome and never aborts
        the rest of the pass.
        """
        summary = EvaluationPassSummary(started_at=datetime.now(timezone.utc), trigger=trigger)
        log = self.logger.bind(trigger=trigger)

        alerts = self._load_active_alerts()
        log.info("Evaluation pass started", active_alerts=len(alerts))

        for alert in alerts:
            try:
                outcome = await self.evaluate_alert(alert)
            except Exception as e:
                log.error(
                    "Alert evaluation failed",
                    alert_id=alert.id,
                    error=str(e),
                    exc_info=True,
                )
                outcome = AlertOutcome(
                    alert_id=alert.id,
                    alert_name=alert.name,
                    success=False,
                    errors=[str(e)],
                )
            summary.alerts.append(outcome)

        summary.finished_at = datetime.now(timezone.utc)
        log.info(
            "Evaluation pass completed",
            evaluated=summary.evaluated,
            failed=summary.failed,
            dispatched=summary.dispatched,
            suppressed=summary.suppressed,
        )
        return summary

    async def evaluate_alert(self, alert) -> AlertOutcome:
        """Evaluate one alert definition against its selected integrations."""
        outcome = AlertOutcome(alert_id=alert.id, alert_name=alert.name)
        log = self.logger.bind(alert_id=alert.id, alert_name=alert.name)

        if not alert.is_active:
            log.debug("Alert inactive; skipping")
            return outcome

        try:
            rule = AlertRule.from_model(alert)
        except ConfigurationError as e:
            log.warning("Invalid alert definition", error=e.message)
            outcome.success = False
            outcome.errors.append(e.message)
            return outcome

        if not rule.channels.configured():
            log.info("Alert has no notification channels configured")

        integrations = self._load_integrations(rule)
        if not integrations:
            log.info("No active integrations match alert")
            return outcome

        now = datetime.now(timezone.utc)
        for integration in integrations:
            candidates = await self._evaluate_integration(rule, integration, now, outcome)
            outcome.candidates += len(candidates)
            for candidate in candidates:
                await self._notify(rule, candidate, outcome)

        return outcome

    async def _evaluate_integration(
        self,
        rule: AlertRule,
        integration: IntegrationConfig,
        now: datetime,
        outcome: AlertOutcome,
    ) -> List[CandidateNotification]:
        log = self.logger.bind(
            alert_id=rule.id,
            integration_id=integration.id,
            provider=integration.kind.value,
        )
        try:
            client = self.client_factory(integration)
        except ConfigurationError as e:
            log.warning("Integration not configured; skipping", error=e.message)
            outcome.errors.append(e.message)
            return []

        try:
            return await self.evaluator.evaluate(rule, integration, client, now=now)
        except (ConfigurationError, UpstreamError) as e:
            log.warning("Provider unavailable; no matching run this pass", error=e.message)
            outcome.errors.append(e.message)
            return []
        finally:
            await client.aclose()

    async def _notify(
        self,
        rule: AlertRule,
        candidate: CandidateNotification,
        outcome: AlertOutcome,
    ) -> None:
        window = rule.conditions.window_minutes(self.settings.alert_dedup_window_minutes)

        with self.dedup_guard.claim(rule.id, candidate.message, window) as claim:
            if claim.duplicate:
                outcome.suppressed += 1
                return

            report = await self.notification_service.dispatch(
                rule.channels, candidate.to_payload()
            )
            outcome.reports.append(report)
            if report.attempted:
                outcome.dispatched += 1

            self.history.record(claim, candidate, report)
