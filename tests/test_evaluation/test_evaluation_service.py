"""Tests for evaluation pass orchestration."""

import smtplib
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
import respx

from pipewatch.exceptions import UpstreamError
from pipewatch.ormdb.models import NotificationEvent
from pipewatch.providers.models import Target
from pipewatch.services.evaluation import AlertEvaluationService
from pipewatch.services.notification import (
    EmailNotificationChannel,
    NotificationChannel,
    NotificationService,
)

JENKINS = "http://jenkins.local"


def email_service(transport):
    return NotificationService(
        channels={NotificationChannel.EMAIL: EmailNotificationChannel(transport=transport)}
    )


def fake_client(targets=None, runs=None, list_error=None):
    client = Mock()
    if list_error is not None:
        client.list_targets = AsyncMock(side_effect=list_error)
    else:
        client.list_targets = AsyncMock(
            return_value=[Target(name=name) for name in (targets or [])]
        )
    client.get_latest_run_for = AsyncMock(
        side_effect=lambda target: (runs or {}).get(target.name)
    )
    client.aclose = AsyncMock()
    return client


def jenkins_routes(router, minutes_ago=10):
    finished = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    started_ms = int((finished - timedelta(seconds=60)).timestamp() * 1000)
    router.get(f"{JENKINS}/api/json").mock(
        return_value=httpx.Response(
            200,
            json={"jobs": [{"name": "svc-ci", "_class": "hudson.model.FreeStyleProject"}]},
        )
    )
    router.get(f"{JENKINS}/job/svc-ci/lastBuild/api/json").mock(
        return_value=httpx.Response(
            200,
            json={
                "number": 42,
                "result": "FAILURE",
                "building": False,
                "timestamp": started_ms,
                "duration": 60000,
                "url": f"{JENKINS}/job/svc-ci/42/",
            },
        )
    )


def all_events(db_session):
    db_session.expire_all()
    return db_session.query(NotificationEvent).order_by(NotificationEvent.id).all()


@pytest.mark.asyncio
async def test_inactive_alerts_touch_no_provider(make_alert, make_integration):
    make_alert(is_active=False)
    make_integration()
    client_factory = Mock()

    service = AlertEvaluationService(
        notification_service=email_service(Mock()), client_factory=client_factory
    )
    summary = await service.run_pass()

    assert summary.evaluated == 0
    client_factory.assert_not_called()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_build_notified_once_then_suppressed(
    make_alert, make_integration, smtp_transport, db_session
):
    alert = make_alert(
        conditions={"event": "FAILURE", "recentMinutes": 120},
        channels={"email": {"to": "x@y.com"}},
    )
    make_integration(name="ci")
    service = AlertEvaluationService(notification_service=email_service(smtp_transport))

    with respx.mock() as router:
        jenkins_routes(router)
        first = await service.run_pass()
        second = await service.run_pass(trigger="scheduled")

    assert first.dispatched == 1 and first.suppressed == 0
    assert second.dispatched == 0 and second.suppressed == 1
    assert smtp_transport.send.call_count == 1

    [event] = all_events(db_session)
    assert event.alert_id == alert.id
    assert event.status == "SENT"
    assert "svc-ci" in event.message and "#42" in event.message
    assert event.link == f"{JENKINS}/job/svc-ci/42/"

    sent = smtp_transport.send.call_args[0][0]
    body = sent.get_body(preferencelist=("plain",)).get_content()
    assert body.startswith(event.message + "\nDuration: 60s\nWhen: ")
    assert "Duration" not in event.message


@pytest.mark.asyncio
async def test_run_outside_window_is_not_notified(
    make_alert, make_integration, smtp_transport, db_session
):
    make_alert(conditions={"event": "FAILURE", "recentMinutes": 5})
    make_integration()
    service = AlertEvaluationService(notification_service=email_service(smtp_transport))

    with respx.mock() as router:
        jenkins_routes(router, minutes_ago=10)
        summary = await service.run_pass()

    assert summary.alerts[0].candidates == 0
    smtp_transport.send.assert_not_called()
    assert all_events(db_session) == []


@pytest.mark.asyncio
async def test_failed_delivery_does_not_suppress_retry(
    make_alert, make_integration, make_run, smtp_transport, db_session
):
    make_alert()
    integration = make_integration(name="ci")
    smtp_transport.send.side_effect = smtplib.SMTPException("relay down")
    run = make_run(target="svc-ci", integration_id=integration.id)

    service = AlertEvaluationService(
        notification_service=email_service(smtp_transport),
        client_factory=lambda config: fake_client(["svc-ci"], {"svc-ci": run}),
    )
    first = await service.run_pass()
    second = await service.run_pass()

    assert first.dispatched == 1 and second.dispatched == 1
    assert second.suppressed == 0
    assert [event.status for event in all_events(db_session)] == ["FAILED", "FAILED"]


@pytest.mark.asyncio
async def test_upstream_error_isolated_to_one_integration(
    make_alert, make_integration, make_run, smtp_transport
):
    make_alert()
    make_integration(name="broken")
    make_integration(name="healthy")
    run = make_run(target="svc-ci")

    def client_factory(config):
        if config.name == "broken":
            return fake_client(
                list_error=UpstreamError("Jenkins", "list jobs", "HTTP 502", 502)
            )
        return fake_client(["svc-ci"], {"svc-ci": run})

    service = AlertEvaluationService(
        notification_service=email_service(smtp_transport),
        client_factory=client_factory,
    )
    summary = await service.run_pass()

    outcome = summary.alerts[0]
    assert outcome.dispatched == 1
    assert len(outcome.errors) == 1
    assert "HTTP 502" in outcome.errors[0]
    message = smtp_transport.send.call_args[0][0]
    assert "[CI/CD] Build Failure (Jenkins)" == message["Subject"]


@pytest.mark.asyncio
async def test_invalid_alert_does_not_abort_pass(
    make_alert, make_integration, make_run, smtp_transport
):
    bad = make_alert(name="bad", conditions={"event": "EXPLODED"})
    good = make_alert(name="good")
    make_integration()
    run = make_run()

    service = AlertEvaluationService(
        notification_service=email_service(smtp_transport),
        client_factory=lambda config: fake_client(["svc-ci"], {"svc-ci": run}),
    )
    summary = await service.run_pass()

    outcomes = {outcome.alert_id: outcome for outcome in summary.alerts}
    assert not outcomes[bad.id].success
    assert outcomes[good.id].success
    assert outcomes[good.id].dispatched == 1
    assert summary.failed == 1


@pytest.mark.asyncio
async def test_provider_tag_selects_integrations(make_alert, make_integration, make_run):
    make_alert(conditions={"event": "FAILURE", "provider": "github"})
    make_integration(name="ci", kind="JENKINS")
    make_integration(name="shop", kind="GITHUB_ACTIONS")
    seen = []

    def client_factory(config):
        seen.append(config.name)
        return fake_client([])

    service = AlertEvaluationService(
        notification_service=email_service(Mock()), client_factory=client_factory
    )
    await service.run_pass()

    assert seen == ["shop"]


@pytest.mark.asyncio
async def test_provider_tag_matches_aliased_stored_kind(make_alert, make_integration):
    make_alert(conditions={"event": "FAILURE", "provider": "jenkins"})
    make_integration(name="legacy", kind="jenkins", base_url="http://jenkins.local")
    make_integration(name="shop", kind="github")
    seen = []

    def client_factory(config):
        seen.append(config.name)
        return fake_client([])

    service = AlertEvaluationService(
        notification_service=email_service(Mock()), client_factory=client_factory
    )
    await service.run_pass()

    assert seen == ["legacy"]


@pytest.mark.asyncio
async def test_client_closed_after_evaluation(make_alert, make_integration):
    make_alert()
    make_integration()
    client = fake_client([])

    service = AlertEvaluationService(
        notification_service=email_service(Mock()), client_factory=lambda config: client
    )
    await service.run_pass()

    client.aclose.assert_awaited_once()
