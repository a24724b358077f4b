"""Notification channel implementations for alert delivery.

Provides an ABC for notification channels plus concrete implementations
for email, webhooks and Slack. Each channel delivers one batch of alerts
for one server and reports a ``DeliveryResult``; channels never raise. A
CircuitBreaker decorator wraps any channel to stop hammering a target
that keeps failing.

Pattern: Decorator (CircuitBreaker wraps any NotificationChannel).
"""

import asyncio
import enum
import hashlib
import hmac
import json
import logging
import smtplib
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any
from urllib.parse import urlencode

import httpx

from src.alerts.schemas import AlertCandidate, AlertSeverity, AlertSummary
from src.workspaces.schemas import SlackConfig, WebhookConfig

logger = logging.getLogger(__name__)

WEBHOOK_EVENT = "alert.notification"
SLACK_MAX_ALERTS = 10


@dataclass
class NotificationContext:
    """Who is being notified, and about which server."""

    workspace_id: str
    workspace_name: str
    server_id: str
    server_name: str
    contact_email: str | None = None
    vhost: str | None = None


@dataclass
class DeliveryResult:
    """Outcome of one channel delivery."""

    channel: str
    success: bool
    target_id: str | None = None
    status_code: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "success": self.success,
            "target_id": self.target_id,
            "status_code": self.status_code,
            "error": self.error,
        }


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel identifier (e.g. 'email', 'webhook', 'slack')."""

    @property
    def target_id(self) -> str | None:
        """Identifier of the configured target, if the channel has one."""
        return None

    @abstractmethod
    async def send(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
    ) -> DeliveryResult:
        """Deliver a batch of alerts through this channel.

        Args:
            alerts: Alerts to deliver, all from ``context.server_id``.
            context: Workspace and server the alerts belong to.

        Returns:
            Delivery outcome. Failures are reported, never raised.
        """


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


class EmailChannel(NotificationChannel):
    """Sends an alert summary email to the workspace contact over SMTP.

    ``smtplib`` is blocking, so the SMTP session runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        sender: str = "alerts@localhost",
        use_tls: bool = True,
        frontend_url: str = "http://localhost:3000",
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender
        self._use_tls = use_tls
        self._frontend_url = frontend_url.rstrip("/")
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "email"

    @staticmethod
    def build_subject(alerts: list[AlertCandidate], server_name: str) -> str:
        summary = AlertSummary.from_alerts(alerts)
        if summary.critical:
            return f"{_plural(summary.critical, 'Critical Alert')} on {server_name}"
        if summary.warning:
            return f"{_plural(summary.warning, 'Warning Alert')} on {server_name}"
        return f"{_plural(summary.total, 'Alert')} on {server_name}"

    def _dashboard_url(self, context: NotificationContext) -> str:
        return f"{self._frontend_url}/alerts?{urlencode({'serverId': context.server_id})}"

    def _build_text(self, alerts: list[AlertCandidate], context: NotificationContext) -> str:
        lines = [
            f"New alerts detected on your RabbitMQ server {context.server_name} "
            f"in workspace {context.workspace_name}.",
            "",
        ]
        for alert in alerts:
            lines.append(f"[{alert.severity.value.upper()}] {alert.title}")
            lines.append(f"  {alert.description}")
            current = f"  Current: {alert.details.current}"
            if alert.details.threshold is not None:
                current += f" (Threshold: {alert.details.threshold})"
            lines.append(current)
            if alert.details.recommended:
                lines.append(f"  Recommended: {alert.details.recommended}")
            if alert.details.affected:
                lines.append(f"  Affected: {', '.join(alert.details.affected)}")
            lines.append("")
        lines.append(f"View alerts: {self._dashboard_url(context)}")
        return "\n".join(lines)

    def _build_html(self, alerts: list[AlertCandidate], context: NotificationContext) -> str:
        items = []
        for alert in alerts:
            current = escape(str(alert.details.current))
            if alert.details.threshold is not None:
                current += f" (Threshold: {alert.details.threshold})"
            recommended = ""
            if alert.details.recommended:
                recommended = (
                    f"<p><strong>Recommended:</strong> "
                    f"{escape(alert.details.recommended)}</p>"
                )
            items.append(
                f"<li><strong>[{alert.severity.value.upper()}] {escape(alert.title)}</strong>"
                f"<p>{escape(alert.description)}</p>"
                f"<p><strong>Current:</strong> {current}</p>"
                f"{recommended}</li>"
            )
        return (
            "<html><body>"
            f"<p>New alerts detected on your RabbitMQ server "
            f"<strong>{escape(context.server_name)}</strong> in workspace "
            f"<strong>{escape(context.workspace_name)}</strong>.</p>"
            f"<ul>{''.join(items)}</ul>"
            f'<p><a href="{escape(self._dashboard_url(context))}">View Alerts in Dashboard</a></p>'
            "</body></html>"
        )

    def _deliver(self, message: MIMEMultipart) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._username and self._password:
                server.login(self._username, self._password)
            server.send_message(message)

    async def send(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
    ) -> DeliveryResult:
        if not context.contact_email:
            return DeliveryResult(channel=self.name, success=False, error="no recipient")

        message = MIMEMultipart("alternative")
        message["From"] = self._sender
        message["To"] = context.contact_email
        message["Subject"] = self.build_subject(alerts, context.server_name)
        message.attach(MIMEText(self._build_text(alerts, context), "plain"))
        message.attach(MIMEText(self._build_html(alerts, context), "html"))

        try:
            await asyncio.to_thread(self._deliver, message)
        except Exception as e:
            logger.warning(
                "Alert email to %s for server %s failed: %s",
                context.contact_email, context.server_id, e,
            )
            return DeliveryResult(channel=self.name, success=False, error=str(e))

        logger.info(
            "Sent alert email to %s for server %s (%d alerts)",
            context.contact_email, context.server_id, len(alerts),
        )
        return DeliveryResult(channel=self.name, success=True)


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 of the raw request body, hex encoded."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class WebhookChannel(NotificationChannel):
    """Delivers alerts as a signed JSON POST to the workspace's webhook.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling)
    matching the project's HTTP pattern.
    """

    def __init__(
        self,
        config: WebhookConfig,
        user_agent: str = "RabbitMQ-Alerts-Webhook/1.0",
        timeout: float = 10.0,
    ) -> None:
        self._config = config
        self._user_agent = user_agent
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "webhook"

    @property
    def target_id(self) -> str | None:
        return self._config.id

    def build_payload(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
        timestamp: datetime | None = None,
    ) -> dict[str, Any]:
        """Build the webhook JSON payload."""
        summary = AlertSummary.from_alerts(alerts)
        return {
            "version": self._config.version,
            "event": WEBHOOK_EVENT,
            "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
            "workspace": {"id": context.workspace_id, "name": context.workspace_name},
            "server": {"id": context.server_id, "name": context.server_name},
            "alerts": [alert.to_dict() for alert in alerts],
            "summary": summary.to_dict(),
        }

    def build_headers(self, payload: dict[str, Any], body: bytes) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            "X-Alert-Event": payload["event"],
            "X-Alert-Version": payload["version"],
            "X-Alert-Timestamp": payload["timestamp"],
        }
        if self._config.secret:
            headers["X-Alert-Signature"] = f"sha256={sign_payload(body, self._config.secret)}"
        return headers

    async def send(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
    ) -> DeliveryResult:
        payload = self.build_payload(alerts, context)
        # Sign exactly the bytes that go on the wire
        body = json.dumps(payload).encode("utf-8")
        headers = self.build_headers(payload, body)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._config.url, content=body, headers=headers)
                if resp.is_success:
                    return DeliveryResult(
                        channel=self.name,
                        success=True,
                        target_id=self.target_id,
                        status_code=resp.status_code,
                    )
                logger.warning(
                    "Webhook %s returned %d for server %s",
                    self._config.url, resp.status_code, context.server_id,
                )
                return DeliveryResult(
                    channel=self.name,
                    success=False,
                    target_id=self.target_id,
                    status_code=resp.status_code,
                    error=f"HTTP {resp.status_code}",
                )
        except httpx.TimeoutException:
            logger.warning(
                "Webhook %s timed out for server %s",
                self._config.url, context.server_id,
            )
            return DeliveryResult(
                channel=self.name, success=False, target_id=self.target_id, error="timeout",
            )
        except Exception as e:
            logger.warning(
                "Webhook %s failed for server %s: %s",
                self._config.url, context.server_id, e,
            )
            return DeliveryResult(
                channel=self.name, success=False, target_id=self.target_id, error=str(e),
            )


_SLACK_COLORS = {
    AlertSeverity.CRITICAL: "danger",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.INFO: "good",
}


class SlackChannel(NotificationChannel):
    """Delivers alerts to a Slack channel via incoming webhook.

    One summary attachment, then one attachment per alert up to
    ``SLACK_MAX_ALERTS``, then a "... and N more" line for the rest.
    """

    def __init__(
        self,
        config: SlackConfig,
        frontend_url: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._config = config
        self._frontend_url = frontend_url.rstrip("/") if frontend_url else None
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "slack"

    @property
    def target_id(self) -> str | None:
        return self._config.id

    @staticmethod
    def _summary_color(summary: AlertSummary) -> str:
        if summary.critical:
            return "danger"
        if summary.warning:
            return "warning"
        return "good"

    def _dashboard_url(self, alerts: list[AlertCandidate], context: NotificationContext) -> str | None:
        if not self._frontend_url:
            return None
        params = {"serverId": context.server_id}
        vhosts = Counter(alert.vhost for alert in alerts if alert.vhost)
        vhost = context.vhost or (vhosts.most_common(1)[0][0] if vhosts else None)
        if vhost:
            params["vhost"] = vhost
        return f"{self._frontend_url}/alerts?{urlencode(params)}"

    @staticmethod
    def _alert_attachment(alert: AlertCandidate) -> dict[str, Any]:
        fields = [
            {"title": "Category", "value": alert.category.value, "short": True},
            {
                "title": "Source",
                "value": f"{alert.source.type.value}: {alert.source.name}",
                "short": True,
            },
        ]
        if alert.vhost:
            fields.append({"title": "Virtual Host", "value": alert.vhost, "short": True})
        fields.append(
            {"title": "Current Value", "value": str(alert.details.current), "short": True}
        )
        if alert.details.threshold is not None:
            fields.append(
                {"title": "Threshold", "value": str(alert.details.threshold), "short": True}
            )
        return {
            "color": _SLACK_COLORS[alert.severity],
            "title": f"{alert.severity.value.upper()}: {alert.title}",
            "text": alert.description,
            "fields": fields,
            "footer": alert.server_name,
            "ts": int(alert.timestamp.timestamp()),
        }

    def format_message(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
    ) -> dict[str, Any]:
        """Build the incoming-webhook payload."""
        summary = AlertSummary.from_alerts(alerts)
        header = (
            f"*{_plural(summary.total, 'alert')}* detected on "
            f"*{context.server_name}* in workspace *{context.workspace_name}*"
        )
        attachments: list[dict[str, Any]] = [
            {
                "color": self._summary_color(summary),
                "text": header,
                "fields": [
                    {
                        "title": "Details",
                        "value": (
                            f"{summary.critical} critical, "
                            f"{summary.warning} warning, {summary.info} info"
                        ),
                        "short": False,
                    },
                ],
            },
        ]
        attachments.extend(
            self._alert_attachment(alert) for alert in alerts[:SLACK_MAX_ALERTS]
        )
        remaining = len(alerts) - SLACK_MAX_ALERTS
        if remaining > 0:
            attachments.append(
                {"color": "#cccccc", "text": f"... and {_plural(remaining, 'more alert')}"}
            )

        payload: dict[str, Any] = {
            "text": header,
            "username": "RabbitMQ Alerts",
            "icon_emoji": ":rabbit:",
            "attachments": attachments,
        }
        url = self._dashboard_url(alerts, context)
        if url:
            payload["blocks"] = [
                {"type": "section", "text": {"type": "mrkdwn", "text": header}},
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": "View Alerts in Dashboard"},
                            "url": url,
                            "style": "primary",
                        },
                    ],
                },
            ]
        return payload

    async def send(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
    ) -> DeliveryResult:
        payload = self.format_message(alerts, context)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._config.webhook_url, json=payload)
                if resp.is_success:
                    return DeliveryResult(
                        channel=self.name,
                        success=True,
                        target_id=self.target_id,
                        status_code=resp.status_code,
                    )
                logger.warning(
                    "Slack webhook returned %d for server %s",
                    resp.status_code, context.server_id,
                )
                return DeliveryResult(
                    channel=self.name,
                    success=False,
                    target_id=self.target_id,
                    status_code=resp.status_code,
                    error=f"HTTP {resp.status_code}",
                )
        except httpx.TimeoutException:
            logger.warning("Slack webhook timed out for server %s", context.server_id)
            return DeliveryResult(
                channel=self.name, success=False, target_id=self.target_id, error="timeout",
            )
        except Exception as e:
            logger.warning("Slack webhook failed for server %s: %s", context.server_id, e)
            return DeliveryResult(
                channel=self.name, success=False, target_id=self.target_id, error=str(e),
            )


class CircuitState(enum.Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker(NotificationChannel):
    """Wraps a NotificationChannel with circuit breaker protection.

    State machine: CLOSED → OPEN → HALF_OPEN → CLOSED.

    - CLOSED: All deliveries pass through. Consecutive failures tracked.
    - OPEN: Deliveries rejected immediately. After recovery_timeout, moves
      to HALF_OPEN.
    - HALF_OPEN: Single probe delivery allowed. Success → CLOSED, failure → OPEN.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self._channel = channel
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def name(self) -> str:
        return self._channel.name

    @property
    def target_id(self) -> str | None:
        return self._channel.target_id

    @property
    def state(self) -> CircuitState:
        return self._state

    def rebind(self, channel: NotificationChannel) -> None:
        """Swap in a freshly configured channel for the same target."""
        self._channel = channel

    async def send(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
    ) -> DeliveryResult:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self._recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(
                    "Circuit breaker %s: OPEN → HALF_OPEN (recovery probe)",
                    self.name,
                )
            else:
                logger.debug(
                    "Circuit breaker %s: OPEN, rejecting delivery for server %s",
                    self.name, context.server_id,
                )
                return DeliveryResult(
                    channel=self.name,
                    success=False,
                    target_id=self.target_id,
                    error="circuit open",
                )

        result = await self._channel.send(alerts, context)

        if result.success:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(
                    "Circuit breaker %s: HALF_OPEN → CLOSED (probe succeeded)",
                    self.name,
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: HALF_OPEN → OPEN (probe failed)",
                    self.name,
                )
            elif self._consecutive_failures >= self._failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: CLOSED → OPEN after %d failures",
                    self.name, self._consecutive_failures,
                )

        return result
