"""Service layer for business logic encapsulation."""

from .evaluation import AlertEvaluationService
from .history import HistoryRecorder
from .notification import NotificationService

__all__ = [
    "AlertEvaluationService",
    "HistoryRecorder",
    "NotificationService",
]
