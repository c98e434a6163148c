"""Tests for duplicate-notification suppression."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from pipewatch.ormdb.repositories import NotificationEventRepository
from pipewatch.services.evaluation import (
    AlertEvaluationService,
    DedupGuard,
    get_dedup_guard,
)

MESSAGE = "[Jenkins:ci] svc-ci #42 failed"


@pytest.fixture
def alert(make_alert):
    return make_alert()


def record(alert_id, status="SENT", minutes_ago=5, message=MESSAGE):
    with NotificationEventRepository() as repo:
        repo.append(
            alert_id=alert_id,
            status=status,
            message=message,
            sent_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        )


class TestHistoryLookup:
    """Suppression decided from notification history."""

    def test_fresh_fingerprint_is_not_duplicate(self, alert):
        with DedupGuard().claim(alert.id, MESSAGE, 60) as claim:
            assert not claim.duplicate
            assert claim.reason is None

    def test_sent_event_inside_window_suppresses(self, alert):
        record(alert.id, minutes_ago=30)

        with DedupGuard().claim(alert.id, MESSAGE, 60) as claim:
            assert claim.duplicate
            assert claim.reason == "recently_sent"

    def test_sent_event_outside_window_does_not_suppress(self, alert):
        record(alert.id, minutes_ago=90)

        with DedupGuard().claim(alert.id, MESSAGE, 60) as claim:
            assert not claim.duplicate

    def test_failed_event_does_not_suppress(self, alert):
        record(alert.id, status="FAILED", minutes_ago=1)

        with DedupGuard().claim(alert.id, MESSAGE, 60) as claim:
            assert not claim.duplicate

    def test_other_message_does_not_suppress(self, alert):
        record(alert.id, message="[Jenkins:ci] svc-ci #41 failed")

        with DedupGuard().claim(alert.id, MESSAGE, 60) as claim:
            assert not claim.duplicate

    def test_history_failure_suppresses_dispatch(self):
        factory = MagicMock()
        repo = factory.return_value.__enter__.return_value
        repo.has_recent.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        with DedupGuard(repository_factory=factory).claim("alert-1", MESSAGE, 60) as claim:
            assert claim.duplicate
            assert claim.reason == "history_unavailable"


class TestInFlight:
    """Concurrent claims on one fingerprint."""

    def test_second_claim_while_first_is_held_is_refused(self, alert):
        guard = DedupGuard()

        with guard.claim(alert.id, MESSAGE, 60) as first:
            with guard.claim(alert.id, MESSAGE, 60) as second:
                assert not first.duplicate
                assert second.duplicate
                assert second.reason == "in_flight"

    def test_claim_released_after_use(self, alert):
        guard = DedupGuard()

        with guard.claim(alert.id, MESSAGE, 60):
            pass

        with guard.claim(alert.id, MESSAGE, 60) as again:
            assert not again.duplicate

    def test_claim_released_when_body_raises(self, alert):
        guard = DedupGuard()

        with pytest.raises(RuntimeError):
            with guard.claim(alert.id, MESSAGE, 60):
                raise RuntimeError("dispatch exploded")

        with guard.claim(alert.id, MESSAGE, 60) as again:
            assert again.reason != "in_flight"

    def test_claim_window_start(self, alert):
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

        with DedupGuard().claim(alert.id, MESSAGE, 15, now=now) as claim:
            assert claim.since == now - timedelta(minutes=15)

    def test_evaluation_services_share_one_guard(self, alert):
        first = AlertEvaluationService(notification_service=MagicMock())
        second = AlertEvaluationService(notification_service=MagicMock())

        assert first.dedup_guard is second.dedup_guard is get_dedup_guard()

        with first.dedup_guard.claim(alert.id, MESSAGE, 60):
            with second.dedup_guard.claim(alert.id, MESSAGE, 60) as other:
                assert other.reason == "in_flight"
