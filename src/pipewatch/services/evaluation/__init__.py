"""Alert condition evaluation and pass orchestration."""

from .dedup import DedupClaim, DedupGuard, get_dedup_guard
from .evaluator import ConditionEvaluator, format_details, format_message, run_matches
from .models import (
    AlertConditions,
    AlertEvent,
    AlertOutcome,
    AlertRule,
    AlertType,
    CandidateNotification,
    EvaluationPassSummary,
)
from .service import AlertEvaluationService

__all__ = [
    "AlertConditions",
    "AlertEvaluationService",
    "AlertEvent",
    "AlertOutcome",
    "AlertRule",
    "AlertType",
    "CandidateNotification",
    "ConditionEvaluator",
    "DedupClaim",
    "DedupGuard",
    "EvaluationPassSummary",
    "format_details",
    "format_message",
    "get_dedup_guard",
    "run_matches",
]
