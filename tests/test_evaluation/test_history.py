"""Tests for notification history recording."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from pipewatch.ormdb.models import NotificationEvent
from pipewatch.providers.models import RunOutcome
from pipewatch.services.evaluation import CandidateNotification, DedupClaim
from pipewatch.services.history import HistoryRecorder
from pipewatch.services.notification import (
    DeliveryStatus,
    DispatchReport,
    NotificationChannel,
    NotificationResult,
)

MESSAGE = "[Jenkins:ci] svc-ci #42 failed"


def report(*statuses):
    channels = [NotificationChannel.EMAIL, NotificationChannel.CHAT_WEBHOOK]
    return DispatchReport(
        results=[
            NotificationResult(channel=channel, status=status)
            for channel, status in zip(channels, statuses)
        ]
    )


@pytest.fixture
def alert(make_alert):
    return make_alert()


@pytest.fixture
def candidate(alert):
    return CandidateNotification(
        alert_id=alert.id,
        title="Build Failure (Jenkins)",
        message=MESSAGE,
        link="http://jenkins.local/job/svc-ci/42/",
        integration_id="int-1",
        target="svc-ci",
        run_number="42",
        outcome=RunOutcome.FAILURE,
    )


@pytest.fixture
def claim(alert):
    since = datetime.now(timezone.utc) - timedelta(minutes=60)
    return DedupClaim(alert.id, MESSAGE, 60, since, duplicate=False)


def events(db_session):
    return db_session.query(NotificationEvent).all()


class TestStatusFor:
    """Aggregation of channel results into one event status."""

    def test_any_delivery_is_sent(self):
        assert (
            HistoryRecorder.status_for(report(DeliveryStatus.FAILED, DeliveryStatus.DELIVERED))
            == "SENT"
        )

    def test_all_attempted_failed(self):
        assert (
            HistoryRecorder.status_for(report(DeliveryStatus.FAILED, DeliveryStatus.SKIPPED))
            == "FAILED"
        )

    def test_nothing_attempted(self):
        assert HistoryRecorder.status_for(report(DeliveryStatus.SKIPPED)) is None
        assert HistoryRecorder.status_for(DispatchReport()) is None


class TestRecord:
    """Writing events after dispatch."""

    def test_sent_event_written(self, claim, candidate, db_session):
        status = HistoryRecorder().record(claim, candidate, report(DeliveryStatus.DELIVERED))

        assert status == "SENT"
        [event] = events(db_session)
        assert event.message == MESSAGE
        assert event.target_name == "svc-ci"
        assert event.run_number == "42"
        assert event.link == "http://jenkins.local/job/svc-ci/42/"

    def test_concurrent_sent_event_not_duplicated(self, claim, candidate, db_session):
        recorder = HistoryRecorder()
        delivered = report(DeliveryStatus.DELIVERED)

        assert recorder.record(claim, candidate, delivered) == "SENT"
        assert recorder.record(claim, candidate, delivered) is None
        assert len(events(db_session)) == 1

    def test_failed_events_always_appended(self, claim, candidate, db_session):
        recorder = HistoryRecorder()
        failed = report(DeliveryStatus.FAILED)

        recorder.record(claim, candidate, failed)
        recorder.record(claim, candidate, failed)

        assert [event.status for event in events(db_session)] == ["FAILED", "FAILED"]

    def test_nothing_attempted_writes_nothing(self, claim, candidate, db_session):
        assert HistoryRecorder().record(claim, candidate, report(DeliveryStatus.SKIPPED)) is None
        assert events(db_session) == []

    def test_persistence_failure_is_contained(self, claim, candidate):
        factory = MagicMock()
        factory.return_value.__enter__.return_value.append_if_absent.side_effect = (
            RuntimeError("disk full")
        )

        recorder = HistoryRecorder(repository_factory=factory)

        assert recorder.record(claim, candidate, report(DeliveryStatus.DELIVERED)) is None


class TestListEvents:
    """History paging."""

    def test_newest_first_with_filters(self, alert, make_alert, claim, candidate):
        other = make_alert(name="other")
        recorder = HistoryRecorder()
        recorder.record(claim, candidate, report(DeliveryStatus.FAILED))
        recorder.record(claim, candidate, report(DeliveryStatus.DELIVERED))
        other_candidate = CandidateNotification(
            **{**candidate.__dict__, "alert_id": other.id}
        )
        other_claim = DedupClaim(other.id, MESSAGE, 60, claim.since, duplicate=False)
        recorder.record(other_claim, other_candidate, report(DeliveryStatus.DELIVERED))

        page = recorder.list_events(alert_id=alert.id)
        assert page["total"] == 2
        assert page["items"][0]["status"] == "SENT"
        assert page["items"][0]["sent_at"].endswith("Z")

        sent = recorder.list_events(status="SENT", limit=1)
        assert sent["total"] == 2
        assert len(sent["items"]) == 1
        assert sent["limit"] == 1

        assert recorder.list_events(alert_id=alert.id, page=2, limit=1)["items"][0][
            "status"
        ] == "FAILED"
