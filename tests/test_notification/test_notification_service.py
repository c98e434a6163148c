"""Tests for notification channels and concurrent dispatch."""

import json
import smtplib
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
import respx

from pipewatch.services.notification import (
    AlertChannels,
    ChatWebhookNotificationChannel,
    DeliveryStatus,
    EmailNotificationChannel,
    NotificationChannel,
    NotificationPayload,
    NotificationResult,
    NotificationService,
)

WEBHOOK_URL = "https://hooks.chat.io/services/T000/B000"


@pytest.fixture
def payload():
    return NotificationPayload(
        title="Build Failure (Jenkins)",
        message="[Jenkins:ci] svc-ci #42 failed",
        link="http://jenkins.local/job/svc-ci/42/",
    )


def make_service(transport=None, webhook_timeout=5):
    return NotificationService(
        channels={
            NotificationChannel.EMAIL: EmailNotificationChannel(transport=transport),
            NotificationChannel.CHAT_WEBHOOK: ChatWebhookNotificationChannel(
                timeout=webhook_timeout
            ),
        }
    )


def result_for(report, channel):
    return next(result for result in report.results if result.channel == channel)


class TestChannelParsing:
    """Alert channel configuration."""

    def test_slack_alias_and_url_key(self):
        channels = AlertChannels.parse({"slack": {"url": WEBHOOK_URL}})
        assert channels.chat.webhook_url == WEBHOOK_URL
        assert channels.configured() == [NotificationChannel.CHAT_WEBHOOK]

    def test_empty_configuration(self):
        assert AlertChannels.parse(None).configured() == []


class TestDispatch:
    """Concurrent delivery with per-channel isolation."""

    @pytest.mark.asyncio
    async def test_webhook_delivered_while_email_without_transport_is_skipped(self, payload):
        service = make_service(transport=None)

        with respx.mock() as router:
            route = router.post(WEBHOOK_URL).mock(return_value=httpx.Response(200))
            report = await service.dispatch(
                {"email": {"to": "x@y.com"}, "slack": {"webhookUrl": WEBHOOK_URL}},
                payload,
            )

        body = json.loads(route.calls.last.request.content)
        assert body["title"] == payload.title
        assert body["message"] == payload.message
        assert body["link"] == payload.link
        assert body["details"] == []
        assert "<http://jenkins.local/job/svc-ci/42/|Open>" in body["text"]

        assert result_for(report, NotificationChannel.CHAT_WEBHOOK).status == DeliveryStatus.DELIVERED
        email = result_for(report, NotificationChannel.EMAIL)
        assert email.status == DeliveryStatus.SKIPPED
        assert email.error is None
        assert report.delivered

    @pytest.mark.asyncio
    async def test_email_failure_does_not_block_webhook(self, payload, smtp_transport):
        smtp_transport.send.side_effect = smtplib.SMTPServerDisconnected("gone")
        service = make_service(transport=smtp_transport)

        with respx.mock() as router:
            router.post(WEBHOOK_URL).mock(return_value=httpx.Response(204))
            report = await service.dispatch(
                {"email": {"to": "x@y.com"}, "webhook": {"webhookUrl": WEBHOOK_URL}},
                payload,
            )

        email = result_for(report, NotificationChannel.EMAIL)
        assert email.status == DeliveryStatus.FAILED
        assert "gone" in email.error
        assert result_for(report, NotificationChannel.CHAT_WEBHOOK).success
        assert report.failed_channels == ["email"]

    @pytest.mark.asyncio
    async def test_webhook_error_status_is_failure(self, payload):
        service = make_service()

        with respx.mock() as router:
            router.post(WEBHOOK_URL).mock(return_value=httpx.Response(500))
            report = await service.dispatch({"slack": {"webhookUrl": WEBHOOK_URL}}, payload)

        webhook = result_for(report, NotificationChannel.CHAT_WEBHOOK)
        assert webhook.status == DeliveryStatus.FAILED
        assert "500" in webhook.error
        assert report.attempted and not report.delivered

    @pytest.mark.asyncio
    async def test_webhook_without_url_is_skipped(self, payload):
        report = await make_service().dispatch({"slack": {}}, payload)

        webhook = result_for(report, NotificationChannel.CHAT_WEBHOOK)
        assert webhook.status == DeliveryStatus.SKIPPED
        assert not report.attempted

    @pytest.mark.asyncio
    async def test_channel_exception_is_contained(self, payload):
        exploding = Mock()
        exploding.send_notification = AsyncMock(side_effect=RuntimeError("boom"))
        webhook = Mock()
        webhook.send_notification = AsyncMock(
            return_value=NotificationResult(
                channel=NotificationChannel.CHAT_WEBHOOK,
                status=DeliveryStatus.DELIVERED,
            )
        )
        service = NotificationService(
            channels={
                NotificationChannel.EMAIL: exploding,
                NotificationChannel.CHAT_WEBHOOK: webhook,
            }
        )

        report = await service.dispatch(
            {"email": {"to": "x@y.com"}, "slack": {"webhookUrl": WEBHOOK_URL}}, payload
        )

        email = result_for(report, NotificationChannel.EMAIL)
        assert email.status == DeliveryStatus.FAILED
        assert email.error == "boom"
        assert report.delivered


class TestEmailChannel:
    """SMTP email delivery."""

    @pytest.mark.asyncio
    async def test_sends_to_sanitized_recipients(self, payload, smtp_transport):
        channel = EmailNotificationChannel(transport=smtp_transport)
        config = AlertChannels.parse(
            {"email": {"to": "x@y.com, bad-address, qa@example.com"}}
        ).email

        result = await channel.send_notification(payload, config)

        assert result.status == DeliveryStatus.DELIVERED
        message = smtp_transport.send.call_args[0][0]
        assert message["To"] == "x@y.com"
        assert message["Subject"] == "[CI/CD] Build Failure (Jenkins)"
        assert "Link: http://jenkins.local/job/svc-ci/42/" in message.get_body(
            ("plain",)
        ).get_content()

    @pytest.mark.asyncio
    async def test_body_lists_run_details_after_message(self, payload, smtp_transport):
        payload.details = ["Duration: 60s", "Branch: main"]
        channel = EmailNotificationChannel(transport=smtp_transport)
        config = AlertChannels.parse({"email": {"to": "x@y.com"}}).email

        await channel.send_notification(payload, config)

        text = smtp_transport.send.call_args[0][0].get_body(("plain",)).get_content()
        assert text.startswith(
            "[Jenkins:ci] svc-ci #42 failed\nDuration: 60s\nBranch: main\nLink: "
        )

    @pytest.mark.asyncio
    async def test_no_valid_recipients_is_skipped(self, payload, smtp_transport):
        channel = EmailNotificationChannel(transport=smtp_transport)
        config = AlertChannels.parse({"email": {"to": "dev@build.local"}}).email

        result = await channel.send_notification(payload, config)

        assert result.status == DeliveryStatus.SKIPPED
        smtp_transport.send.assert_not_called()


@pytest.mark.asyncio
async def test_send_test_notification_uses_dispatch(payload):
    service = make_service()

    with respx.mock() as router:
        route = router.post(WEBHOOK_URL).mock(return_value=httpx.Response(200))
        report = await service.send_test_notification(
            {"slack": {"webhookUrl": WEBHOOK_URL}}, title="Hello", text="World"
        )

    assert report.delivered
    assert json.loads(route.calls.last.request.content)["title"] == "Hello"
