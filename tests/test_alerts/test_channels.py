"""Tests for notification channels and the circuit breaker."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx

from src.alerts.channels import (
    SLACK_MAX_ALERTS,
    CircuitBreaker,
    CircuitState,
    DeliveryResult,
    EmailChannel,
    NotificationChannel,
    NotificationContext,
    SlackChannel,
    WebhookChannel,
    sign_payload,
)
from src.alerts.schemas import AlertSeverity
from src.workspaces.schemas import SlackConfig, WebhookConfig

WEBHOOK_URL = "https://hooks.example.com/rabbit"
SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXX"


@pytest.fixture
def context():
    return NotificationContext(
        workspace_id="ws-1",
        workspace_name="Acme",
        server_id="srv-1",
        server_name="Production",
        contact_email="ops@acme.test",
    )


@pytest.fixture
def webhook_config():
    return WebhookConfig(id="wh-1", workspace_id="ws-1", url=WEBHOOK_URL, secret="s3cret")


@pytest.fixture
def slack_config():
    return SlackConfig(id="sl-1", workspace_id="ws-1", webhook_url=SLACK_URL)


# ── EmailChannel ────────────────────────────────────────


class TestEmailSubject:
    def test_critical_count_wins(self, alert_factory):
        alerts = [
            alert_factory(severity=AlertSeverity.CRITICAL),
            alert_factory(severity=AlertSeverity.CRITICAL),
            alert_factory(severity=AlertSeverity.WARNING),
        ]
        assert EmailChannel.build_subject(alerts, "Production") == (
            "2 Critical Alerts on Production"
        )

    def test_single_warning(self, alert_factory):
        alerts = [alert_factory(severity=AlertSeverity.WARNING)]
        assert EmailChannel.build_subject(alerts, "Production") == (
            "1 Warning Alert on Production"
        )

    def test_info_only(self, alert_factory):
        alerts = [alert_factory(severity=AlertSeverity.INFO)] * 3
        assert EmailChannel.build_subject(alerts, "Production") == "3 Alerts on Production"


class TestEmailChannel:
    @pytest.mark.asyncio
    async def test_sends_over_smtp(self, critical_alert, context):
        channel = EmailChannel(
            host="smtp.example.com",
            username="user",
            password="pass",
            sender="alerts@example.com",
            frontend_url="https://app.example.com/",
        )

        with patch("src.alerts.channels.smtplib.SMTP") as smtp_cls:
            server = MagicMock()
            smtp_cls.return_value.__enter__.return_value = server

            result = await channel.send([critical_alert], context)

        assert result.success is True
        assert result.channel == "email"
        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pass")

        message = server.send_message.call_args.args[0]
        assert message["To"] == "ops@acme.test"
        assert message["From"] == "alerts@example.com"
        assert message["Subject"] == "1 Critical Alert on Production"
        text = message.get_payload()[0].get_payload()
        assert "[CRITICAL] Critical Memory Usage" in text
        assert "https://app.example.com/alerts?serverId=srv-1" in text

    @pytest.mark.asyncio
    async def test_no_recipient(self, critical_alert, context):
        context.contact_email = None
        channel = EmailChannel(host="smtp.example.com")

        with patch("src.alerts.channels.smtplib.SMTP") as smtp_cls:
            result = await channel.send([critical_alert], context)

        assert result.success is False
        assert result.error == "no recipient"
        smtp_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_smtp_failure_reported(self, critical_alert, context):
        channel = EmailChannel(host="smtp.example.com", use_tls=False)

        with patch("src.alerts.channels.smtplib.SMTP", side_effect=OSError("refused")):
            result = await channel.send([critical_alert], context)

        assert result.success is False
        assert result.error == "refused"


# ── WebhookChannel ──────────────────────────────────────


class TestWebhookChannel:
    def test_payload_shape(self, webhook_config, critical_alert, queue_alert, context, now):
        channel = WebhookChannel(webhook_config)

        payload = channel.build_payload([critical_alert, queue_alert], context, timestamp=now)

        assert payload["version"] == "v1"
        assert payload["event"] == "alert.notification"
        assert payload["timestamp"] == now.isoformat()
        assert payload["workspace"] == {"id": "ws-1", "name": "Acme"}
        assert payload["server"] == {"id": "srv-1", "name": "Production"}
        assert payload["summary"] == {"total": 2, "critical": 1, "warning": 1, "info": 0}
        assert payload["alerts"][1]["vhost"] == "/"

    def test_signature_header(self, webhook_config, critical_alert, context):
        channel = WebhookChannel(webhook_config)
        payload = channel.build_payload([critical_alert], context)
        body = json.dumps(payload).encode("utf-8")

        headers = channel.build_headers(payload, body)

        assert headers["X-Alert-Signature"] == f"sha256={sign_payload(body, 's3cret')}"
        assert headers["X-Alert-Event"] == "alert.notification"
        assert headers["User-Agent"] == "RabbitMQ-Alerts-Webhook/1.0"

    def test_no_signature_without_secret(self, critical_alert, context):
        channel = WebhookChannel(WebhookConfig(id="wh-2", workspace_id="ws-1", url=WEBHOOK_URL))
        payload = channel.build_payload([critical_alert], context)

        headers = channel.build_headers(payload, b"{}")

        assert "X-Alert-Signature" not in headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_successful_send(self, webhook_config, critical_alert, context):
        route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(200))
        channel = WebhookChannel(webhook_config)

        result = await channel.send([critical_alert], context)

        assert result.success is True
        assert result.target_id == "wh-1"
        assert result.status_code == 200

        request = route.calls.last.request
        assert request.headers["X-Alert-Signature"] == (
            f"sha256={sign_payload(request.content, 's3cret')}"
        )
        assert json.loads(request.content)["server"]["id"] == "srv-1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error(self, webhook_config, critical_alert, context):
        respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(503))

        result = await WebhookChannel(webhook_config).send([critical_alert], context)

        assert result.success is False
        assert result.status_code == 503
        assert result.error == "HTTP 503"

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, webhook_config, critical_alert, context):
        respx.post(WEBHOOK_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        result = await WebhookChannel(webhook_config).send([critical_alert], context)

        assert result.success is False
        assert result.error == "timeout"

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self, webhook_config, critical_alert, context):
        respx.post(WEBHOOK_URL).mock(side_effect=httpx.ConnectError("refused"))

        result = await WebhookChannel(webhook_config).send([critical_alert], context)

        assert result.success is False
        assert "refused" in result.error


# ── SlackChannel ────────────────────────────────────────


class TestSlackChannel:
    def test_format_message(self, slack_config, critical_alert, queue_alert, context):
        channel = SlackChannel(slack_config, frontend_url="https://app.example.com")

        payload = channel.format_message([critical_alert, queue_alert], context)

        assert payload["username"] == "RabbitMQ Alerts"
        assert payload["icon_emoji"] == ":rabbit:"
        assert "*2 alerts*" in payload["text"]
        summary, first, second = payload["attachments"]
        assert summary["color"] == "danger"
        assert first["title"] == "CRITICAL: Critical Memory Usage"
        assert {"title": "Virtual Host", "value": "/", "short": True} in second["fields"]

        button = payload["blocks"][1]["elements"][0]
        assert button["url"] == "https://app.example.com/alerts?serverId=srv-1&vhost=%2F"

    def test_no_blocks_without_frontend(self, slack_config, critical_alert, context):
        payload = SlackChannel(slack_config).format_message([critical_alert], context)
        assert "blocks" not in payload

    def test_truncates_long_batches(self, slack_config, alert_factory, context):
        alerts = [alert_factory(source_name=f"rabbit@n{i}") for i in range(SLACK_MAX_ALERTS + 3)]

        payload = SlackChannel(slack_config).format_message(alerts, context)

        # Summary, ten alerts, then the overflow line
        assert len(payload["attachments"]) == SLACK_MAX_ALERTS + 2
        assert payload["attachments"][-1]["text"] == "... and 3 more alerts"

    @pytest.mark.asyncio
    @respx.mock
    async def test_successful_send(self, slack_config, critical_alert, context):
        route = respx.post(SLACK_URL).mock(return_value=httpx.Response(200, text="ok"))

        result = await SlackChannel(slack_config).send([critical_alert], context)

        assert result.success is True
        assert result.target_id == "sl-1"
        assert json.loads(route.calls.last.request.content)["username"] == "RabbitMQ Alerts"

    @pytest.mark.asyncio
    @respx.mock
    async def test_failure(self, slack_config, critical_alert, context):
        respx.post(SLACK_URL).mock(return_value=httpx.Response(404, text="no_service"))

        result = await SlackChannel(slack_config).send([critical_alert], context)

        assert result.success is False
        assert result.error == "HTTP 404"


# ── CircuitBreaker ──────────────────────────────────────


class _StubChannel(NotificationChannel):
    def __init__(self, results: list[bool]) -> None:
        self._results = list(results)
        self.calls = 0

    @property
    def name(self) -> str:
        return "stub"

    async def send(self, alerts, context) -> DeliveryResult:
        self.calls += 1
        ok = self._results.pop(0) if self._results else True
        return DeliveryResult(channel=self.name, success=ok, error=None if ok else "boom")


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, critical_alert, context):
        stub = _StubChannel([False, False, False])
        breaker = CircuitBreaker(stub, failure_threshold=3, recovery_timeout=60)

        for _ in range(3):
            await breaker.send([critical_alert], context)

        assert breaker.state is CircuitState.OPEN
        result = await breaker.send([critical_alert], context)
        assert result.error == "circuit open"
        assert stub.calls == 3

    @pytest.mark.asyncio
    async def test_half_open_probe_recovers(self, critical_alert, context):
        stub = _StubChannel([False, True])
        breaker = CircuitBreaker(stub, failure_threshold=1, recovery_timeout=30)

        with patch("src.alerts.channels.time.monotonic", return_value=100.0):
            await breaker.send([critical_alert], context)
        assert breaker.state is CircuitState.OPEN

        with patch("src.alerts.channels.time.monotonic", return_value=131.0):
            result = await breaker.send([critical_alert], context)

        assert result.success is True
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_probe_reopens(self, critical_alert, context):
        stub = _StubChannel([False, False])
        breaker = CircuitBreaker(stub, failure_threshold=1, recovery_timeout=30)

        with patch("src.alerts.channels.time.monotonic", return_value=100.0):
            await breaker.send([critical_alert], context)
        with patch("src.alerts.channels.time.monotonic", return_value=131.0):
            await breaker.send([critical_alert], context)

        assert breaker.state is CircuitState.OPEN
        assert stub.calls == 2

    @pytest.mark.asyncio
    async def test_success_resets_failures(self, critical_alert, context):
        stub = _StubChannel([False, True, False])
        breaker = CircuitBreaker(stub, failure_threshold=2)

        for _ in range(3):
            await breaker.send([critical_alert], context)

        assert breaker.state is CircuitState.CLOSED

    def test_delegates_identity(self, webhook_config):
        breaker = CircuitBreaker(WebhookChannel(webhook_config))
        assert breaker.name == "webhook"
        assert breaker.target_id == "wh-1"

    @pytest.mark.asyncio
    async def test_rebind_swaps_channel(self, critical_alert, context):
        breaker = CircuitBreaker(_StubChannel([False]))
        replacement = AsyncMock(spec=NotificationChannel)
        replacement.send.return_value = DeliveryResult(channel="stub", success=True)

        breaker.rebind(replacement)
        result = await breaker.send([critical_alert], context)

        assert result.success is True
        replacement.send.assert_awaited_once()
