"""Condition evaluation: match an alert's conditions against fresh run data."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ...config.logging import get_logger
from ...exceptions import UpstreamError
from ...providers.base import ProviderClient
from ...providers.models import IntegrationConfig, RunOutcome, RunRecord, Target
from .models import AlertConditions, AlertEvent, AlertRule, CandidateNotification

logger = get_logger(__name__)

_EVENT_TITLES = {
    AlertEvent.FAILURE: "Build Failure",
    AlertEvent.SUCCESS: "Build Succeeded",
    AlertEvent.COMPLETED: "Build Completed",
}


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def run_in_window(run: RunRecord, recent_minutes: int, now: datetime) -> bool:
    """True when the run's last activity falls in ``[now - recent_minutes, now]``."""
    activity = run.last_activity_at
    if activity is None:
        return False
    activity = _as_aware(activity)
    now = _as_aware(now)
    return now - timedelta(minutes=recent_minutes) <= activity <= now


def outcome_matches(event: AlertEvent, run: RunRecord) -> bool:
    if not run.is_terminal:
        return False
    if event is AlertEvent.FAILURE:
        return run.outcome.is_failure
    if event is AlertEvent.SUCCESS:
        return run.outcome is RunOutcome.SUCCESS
    return True


def run_matches(
    conditions: AlertConditions,
    run: RunRecord,
    now: datetime,
    default_window_minutes: int = 60,
) -> bool:
    """Apply the recency window, then the event semantics."""
    window = conditions.window_minutes(default_window_minutes)
    return run_in_window(run, window, now) and outcome_matches(conditions.event, run)


def format_message(integration: IntegrationConfig, run: RunRecord) -> str:
    """
    Render the notification message.

    The string is also the dedup fingerprint, so it only contains stable
    parts: provider, integration, target, run number and outcome.
    """
    outcome = run.outcome or RunOutcome.UNKNOWN
    return (
        f"[{integration.kind.label}:{integration.name}] "
        f"{run.target} #{run.display_number} {outcome.verb}"
    )


def format_title(event: AlertEvent, integration: IntegrationConfig) -> str:
    return f"{_EVENT_TITLES[event]} ({integration.kind.label})"


def format_details(run: RunRecord) -> List[str]:
    """Run context for the notification body; never part of the fingerprint."""
    details = []
    if run.duration_seconds:
        details.append(f"Duration: {round(run.duration_seconds)}s")
    when = run.started_at or run.updated_at
    if when is not None:
        when = _as_aware(when).astimezone(timezone.utc)
        details.append(f"When: {when.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    if run.branch:
        details.append(f"Branch: {run.branch}")
    return details


class ConditionEvaluator:
    """Produces candidate notifications for one alert against one integration."""

    def __init__(self, default_window_minutes: int = 60):
        self.default_window_minutes = default_window_minutes
        self.logger = logger.bind(component="condition_evaluator")

    async def _select_targets(
        self, rule: AlertRule, client: ProviderClient
    ) -> List[Target]:
        """
        Targets to check, each resolved once per pass.

        Listed targets are used as returned so that two workflows sharing a
        display name are still checked separately. Only an explicit
        ``target`` condition goes through name resolution.
        """
        if rule.conditions.target:
            resolved = await client.resolve_target(rule.conditions.target)
            if resolved is None:
                self.logger.warning(
                    "Configured target not found",
                    alert_id=rule.id,
                    target=rule.conditions.target,
                )
                return []
            return [resolved]

        targets = await client.list_targets()
        if rule.is_deployment_alert:
            targets = [t for t in targets if "deploy" in t.name.lower()]
        return targets

    async def evaluate(
        self,
        rule: AlertRule,
        integration: IntegrationConfig,
        client: ProviderClient,
        now: Optional[datetime] = None,
    ) -> List[CandidateNotification]:
        """
        Check the latest run of every applicable target.

        Upstream failures for a single target are logged and treated as
        "no matching run"; failures listing targets propagate so the caller
        can skip the whole integration.

        Returns:
            One candidate per matching target
        """
        now = now or datetime.now(timezone.utc)
        log = self.logger.bind(alert_id=rule.id, integration_id=integration.id)

        targets = await self._select_targets(rule, client)
        log.debug("Evaluating targets", targets=len(targets))

        candidates: List[CandidateNotification] = []
        for target in targets:
            try:
                run = await client.get_latest_run_for(target)
            except UpstreamError as e:
                log.warning(
                    "Could not fetch latest run; treating as no match",
                    target=target.name,
                    error=e.message,
                )
                continue

            if run is None:
                continue
            if not run_matches(rule.conditions, run, now, self.default_window_minutes):
                continue

            candidate = CandidateNotification(
                alert_id=rule.id,
                title=format_title(rule.conditions.event, integration),
                message=format_message(integration, run),
                link=run.url,
                integration_id=integration.id,
                target=run.target,
                run_number=run.display_number,
                outcome=run.outcome,
                run=run,
                details=format_details(run),
            )
            log.info(
                "Run matched alert conditions",
                target=target.name,
                message=candidate.message,
            )
            candidates.append(candidate)

        return candidates
