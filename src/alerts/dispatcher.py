"""Notification dispatcher fanning one alert batch out to a workspace's channels.

Email goes to the workspace contact; the first enabled webhook and the
first enabled Slack integration each get one delivery. Channels are
isolated and delivered concurrently: a failure in one never prevents the
others, and each delivery is bounded by ``dispatch_timeout_seconds``.
There is no retry inside a pass; failed deliveries are optionally pushed
to Redis for an out-of-band retrier.

Pattern: Orchestrator, delegates to stateless channels.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.alerts.channels import (
    CircuitBreaker,
    DeliveryResult,
    NotificationChannel,
    NotificationContext,
    SlackChannel,
    WebhookChannel,
)
from src.alerts.schemas import AlertCandidate
from src.observability.metrics import get_metrics
from src.workspaces.schemas import NotificationTargets

logger = logging.getLogger(__name__)


class NotificationConfig(BaseSettings):
    """Configuration for notification dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    channel_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=60.0,
        description="HTTP timeout for webhook and Slack deliveries",
    )
    dispatch_timeout_seconds: float = Field(
        default=20.0,
        gt=0.0,
        le=120.0,
        description="Upper bound on one channel's delivery, circuit breaker included",
    )
    webhook_user_agent: str = Field(
        default="RabbitMQ-Alerts-Webhook/1.0",
        description="User-Agent header sent with webhook deliveries",
    )
    circuit_breaker_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before circuit opens",
    )
    circuit_breaker_recovery_seconds: float = Field(
        default=60.0,
        ge=5.0,
        description="Seconds before circuit breaker probes recovery",
    )
    queue_key_prefix: str = Field(
        default="notify:retry",
        description="Redis key prefix for retry queue",
    )
    queue_ttl_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="TTL for queued retry items",
    )


@dataclass
class DispatchReport:
    """Per-channel outcomes of one dispatch."""

    results: list[DeliveryResult] = field(default_factory=list)

    def attempted(self, channel: str) -> bool:
        return any(r.channel == channel for r in self.results)

    def succeeded(self, channel: str) -> bool:
        return any(r.success for r in self.results if r.channel == channel)

    @property
    def email_sent(self) -> bool:
        return self.succeeded("email")

    @property
    def any_success(self) -> bool:
        return any(r.success for r in self.results)

    @property
    def notified(self) -> bool:
        """Whether the batch counts as delivered for cooldown purposes.

        Email is authoritative when it was part of the dispatch; without
        it, any successful integration counts.
        """
        if self.attempted("email"):
            return self.email_sent
        return self.any_success

    def to_dict(self) -> dict[str, Any]:
        return {"results": [r.to_dict() for r in self.results]}


class NotificationDispatcher:
    """Orchestrates alert delivery across notification channels.

    Webhook and Slack channels are built per dispatch from the workspace's
    integration rows; their circuit breakers are kept per target so one
    workspace's broken endpoint never trips another's.
    """

    def __init__(
        self,
        email_channel: NotificationChannel | None = None,
        config: NotificationConfig | None = None,
        redis_client: Any | None = None,
        frontend_url: str | None = None,
    ) -> None:
        self._config = config or NotificationConfig()
        self._redis = redis_client
        self._frontend_url = frontend_url
        self._email = self._wrap(email_channel) if email_channel is not None else None
        self._breakers: dict[str, CircuitBreaker] = {}

    def _wrap(self, channel: NotificationChannel) -> CircuitBreaker:
        if isinstance(channel, CircuitBreaker):
            return channel
        return CircuitBreaker(
            channel=channel,
            failure_threshold=self._config.circuit_breaker_threshold,
            recovery_timeout=self._config.circuit_breaker_recovery_seconds,
        )

    def _breaker_for(self, channel: NotificationChannel) -> CircuitBreaker:
        key = f"{channel.name}:{channel.target_id}"
        breaker = self._breakers.get(key)
        if breaker is None:
            breaker = self._wrap(channel)
            self._breakers[key] = breaker
        else:
            breaker.rebind(channel)
        return breaker

    def channels_for(
        self,
        context: NotificationContext,
        targets: NotificationTargets,
    ) -> list[NotificationChannel]:
        """Channels that should receive this dispatch, in delivery order."""
        channels: list[NotificationChannel] = []
        if self._email is not None and context.contact_email:
            channels.append(self._email)
        if targets.webhook is not None and targets.webhook.enabled:
            channels.append(self._breaker_for(WebhookChannel(
                targets.webhook,
                user_agent=self._config.webhook_user_agent,
                timeout=self._config.channel_timeout_seconds,
            )))
        if targets.slack is not None and targets.slack.enabled:
            channels.append(self._breaker_for(SlackChannel(
                targets.slack,
                frontend_url=self._frontend_url,
                timeout=self._config.channel_timeout_seconds,
            )))
        return channels

    async def dispatch(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
        targets: NotificationTargets | None = None,
    ) -> DispatchReport:
        """Send one alert batch to every applicable channel.

        Args:
            alerts: Notify-eligible alerts for one server.
            context: Workspace and server the alerts belong to.
            targets: First enabled webhook and Slack integration, if any.

        Returns:
            Per-channel delivery outcomes.
        """
        report = DispatchReport()
        if not alerts:
            return report

        channels = self.channels_for(context, targets or NotificationTargets())
        results = await asyncio.gather(
            *(self._deliver(channel, alerts, context) for channel in channels)
        )

        for result in results:
            report.results.append(result)
            get_metrics().record_notification(result.channel, result.success)

            if not result.success:
                await self._queue_for_retry(alerts, context, result)

        self._record_delivery(context, report)
        return report

    async def _deliver(
        self,
        channel: NotificationChannel,
        alerts: list[AlertCandidate],
        context: NotificationContext,
    ) -> DeliveryResult:
        """Send through one channel under the dispatch deadline. Never raises."""
        timeout = self._config.dispatch_timeout_seconds
        try:
            return await asyncio.wait_for(channel.send(alerts, context), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Delivery to %s for server %s timed out after %.1fs",
                channel.name, context.server_id, timeout,
            )
            error = f"delivery timed out after {timeout}s"
        except Exception as e:
            logger.error(
                "Unexpected error delivering to %s for server %s: %s",
                channel.name, context.server_id, e,
            )
            error = str(e)
        return DeliveryResult(
            channel=channel.name,
            success=False,
            target_id=channel.target_id,
            error=error,
        )

    async def _queue_for_retry(
        self,
        alerts: list[AlertCandidate],
        context: NotificationContext,
        result: DeliveryResult,
    ) -> None:
        """Push a failed delivery to Redis for later retry.

        Uses LPUSH with a per-channel key. Gracefully degrades if Redis
        is unavailable.
        """
        if self._redis is None:
            return

        key = f"{self._config.queue_key_prefix}:{result.channel}"
        payload = json.dumps({
            "workspace_id": context.workspace_id,
            "server_id": context.server_id,
            "target_id": result.target_id,
            "error": result.error,
            "alerts": [alert.to_dict() for alert in alerts],
        })

        try:
            await self._redis.lpush(key, payload)
            ttl_seconds = self._config.queue_ttl_hours * 3600
            await self._redis.expire(key, ttl_seconds)
            logger.info(
                "Queued %d alerts for server %s for retry on channel %s",
                len(alerts), context.server_id, result.channel,
            )
        except Exception as e:
            logger.warning(
                "Failed to queue alerts for server %s for retry: %s",
                context.server_id, e,
            )

    def _record_delivery(
        self,
        context: NotificationContext,
        report: DispatchReport,
    ) -> None:
        successes = [r.channel for r in report.results if r.success]
        failures = [r.channel for r in report.results if not r.success]

        if failures and not successes:
            logger.error(
                "Notification for server %s failed ALL channels: %s",
                context.server_id, failures,
            )
        elif failures:
            logger.warning(
                "Notification for server %s partial delivery: ok=%s failed=%s",
                context.server_id, successes, failures,
            )
        else:
            logger.debug(
                "Notification for server %s delivered to: %s",
                context.server_id, successes,
            )
