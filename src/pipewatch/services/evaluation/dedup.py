"""Duplicate-notification suppression backed by notification history."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional, Set, Tuple

from ...config.logging import get_logger
from ...ormdb.repositories import NotificationEventRepository

logger = get_logger(__name__)


@dataclass
class DedupClaim:
    """Result of a dedup check, held while the candidate is dispatched."""

    alert_id: str
    message: str
    window_minutes: int
    since: datetime
    duplicate: bool
    reason: Optional[str] = None


class DedupGuard:
    """
    Suppresses a notification already sent for the same alert and message.

    A fingerprint is claimed for the duration of dispatch and recording.
    Every evaluation service in the process shares one guard through
    ``get_dedup_guard``, so two evaluations holding the same fingerprint
    cannot both send it. The history lookup only counts SENT events; a
    FAILED attempt does not block the next pass.
    """

    def __init__(self, repository_factory=NotificationEventRepository):
        self._repository_factory = repository_factory
        self._in_flight: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()
        self.logger = logger.bind(component="dedup_guard")

    def _acquire(self, key: Tuple[str, str]) -> bool:
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def _release(self, key: Tuple[str, str]) -> None:
        with self._lock:
            self._in_flight.discard(key)

    def seen_recently(self, alert_id: str, message: str, since: datetime) -> bool:
        with self._repository_factory() as repo:
            return repo.has_recent(alert_id, message, since, status="SENT")

    @contextmanager
    def claim(
        self,
        alert_id: str,
        message: str,
        window_minutes: int,
        now: Optional[datetime] = None,
    ) -> Iterator[DedupClaim]:
        """
        Claim a fingerprint for dispatch.

        Yields a DedupClaim whose ``duplicate`` flag tells the caller to skip
        dispatch. A history read failure counts as a duplicate.
        """
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(minutes=window_minutes)
        key = (alert_id, message)

        if not self._acquire(key):
            self.logger.info(
                "Notification already in flight; suppressing",
                alert_id=alert_id,
                message=message,
            )
            yield DedupClaim(
                alert_id, message, window_minutes, since, True, reason="in_flight"
            )
            return

        try:
            try:
                duplicate = self.seen_recently(alert_id, message, since)
                reason = "recently_sent" if duplicate else None
            except Exception as e:
                self.logger.error(
                    "History lookup failed; suppressing dispatch",
                    alert_id=alert_id,
                    error=str(e),
                    exc_info=True,
                )
                duplicate, reason = True, "history_unavailable"

            if duplicate and reason == "recently_sent":
                self.logger.info(
                    "Duplicate notification suppressed",
                    alert_id=alert_id,
                    message=message,
                    window_minutes=window_minutes,
                )

            yield DedupClaim(alert_id, message, window_minutes, since, duplicate, reason)
        finally:
            self._release(key)


def get_dedup_guard() -> DedupGuard:
    """Get or create the process-wide dedup guard."""
    if not hasattr(get_dedup_guard, "_guard"):
        get_dedup_guard._guard = DedupGuard()

    return get_dedup_guard._guard
