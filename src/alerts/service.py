"""Alert service orchestrating metric fetching, evaluation and tracking.

The only component here with side effects on the request path: it talks
to the RabbitMQ management API, the threshold store and the tracker.
Evaluation itself is delegated to the stateless functions in
``evaluators.py``; health rollups to ``health.py``.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

from src.alerts.config import AlertConfig
from src.alerts.evaluators import evaluate_snapshot
from src.alerts.health import cluster_summary, health_check
from src.alerts.repository import SeenAlertRepository
from src.alerts.schemas import (
    AlertCandidate,
    AlertSummary,
    ClusterHealthSummary,
    HealthCheck,
    ResolvedAlert,
)
from src.alerts.tracker import AlertTracker, TrackingResult
from src.observability.metrics import get_metrics
from src.observability.tracing import get_tracer, traced
from src.rabbitmq.client import ManagementClient, MetricSource
from src.rabbitmq.repository import ServerRepository
from src.rabbitmq.schemas import RabbitMQServer
from src.thresholds.schemas import AlertThresholds, ThresholdsUpdate
from src.thresholds.service import ThresholdService, ThresholdUpdateResult

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

T = TypeVar("T")

ClientFactory = Callable[[RabbitMQServer], MetricSource]


def sort_alerts(alerts: list[AlertCandidate]) -> list[AlertCandidate]:
    """Most severe first, newest first within a severity."""
    return sorted(
        alerts,
        key=lambda a: (a.severity.rank, a.timestamp),
        reverse=True,
    )


@dataclass
class ServerAlerts:
    """Result of one evaluation pass for one server."""

    alerts: list[AlertCandidate]
    summary: AlertSummary
    thresholds: AlertThresholds
    tracking: TrackingResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "alerts": [alert.to_dict() for alert in self.alerts],
            "summary": self.summary.to_dict(),
            "thresholds": self.thresholds.model_dump(),
        }


class AlertService:
    """Entry point for alert evaluation, health rollups and history.

    Metric fetch failures never fail a pass: the failed listing is treated
    as empty and the pass continues with whatever was fetched.
    """

    def __init__(
        self,
        server_repo: ServerRepository,
        threshold_service: ThresholdService,
        tracker: AlertTracker,
        seen_repo: SeenAlertRepository,
        config: AlertConfig | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._server_repo = server_repo
        self._thresholds = threshold_service
        self._tracker = tracker
        self._seen_repo = seen_repo
        self._config = config or AlertConfig()
        self._client_factory = client_factory or ManagementClient.for_server

    async def _fetch(
        self,
        call: Awaitable[list[T]],
        resource: str,
        server_id: str,
    ) -> list[T]:
        """Await a listing call under the fetch timeout, empty on failure."""
        try:
            return await asyncio.wait_for(call, timeout=self._config.fetch_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Fetching %s for server %s timed out after %.1fs",
                resource, server_id, self._config.fetch_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Failed to fetch %s for server %s: %s", resource, server_id, e)
        get_metrics().record_fetch_failure(resource)
        return []

    async def evaluate_server(
        self,
        server: RabbitMQServer,
        vhost: str | None = None,
        server_name: str | None = None,
        trigger: str = "request",
    ) -> ServerAlerts:
        """Run one evaluation pass for an already-resolved server.

        Args:
            server: Server connection details.
            vhost: Restrict queue evaluation (and auto-resolution of queue
                alerts) to this vhost. Nodes are always evaluated.
            server_name: Display name override for alert copy.
            trigger: What started the pass, for metrics.

        Returns:
            Sorted alerts, their summary and the thresholds used.
        """
        started = time.perf_counter()
        name = server_name or server.name
        attributes = {"server_id": server.id, "workspace_id": server.workspace_id}
        if vhost:
            attributes["vhost"] = vhost

        with traced(tracer, "alerts.evaluate_server", attributes):
            thresholds = await self._thresholds.get_thresholds(server.workspace_id)
            source = self._client_factory(server)

            nodes, queues = await asyncio.gather(
                self._fetch(source.list_nodes(), "nodes", server.id),
                self._fetch(source.list_queues(vhost), "queues", server.id),
            )

            now = datetime.now(timezone.utc)
            alerts = sort_alerts(
                evaluate_snapshot(nodes, queues, server.id, name, thresholds, now)
            )
            tracking = await self._tracker.track_and_notify(
                alerts, server.workspace_id, server.id, name, vhost, now,
            )

        metrics = get_metrics()
        metrics.record_alerts(server.id, alerts)
        metrics.record_evaluation(trigger, time.perf_counter() - started)
        logger.debug(
            "Evaluated server %s: %d nodes, %d queues, %d alerts",
            server.id, len(nodes), len(queues), len(alerts),
        )

        return ServerAlerts(
            alerts=alerts,
            summary=AlertSummary.from_alerts(alerts),
            thresholds=thresholds,
            tracking=tracking,
        )

    async def get_server_alerts(
        self,
        server_id: str,
        server_name: str | None,
        workspace_id: str,
        vhost: str | None = None,
    ) -> ServerAlerts:
        """Evaluate one server on demand.

        Raises:
            ServerNotFoundError: The server does not exist in the workspace.
        """
        server = await self._server_repo.get(server_id, workspace_id)
        return await self.evaluate_server(server, vhost=vhost, server_name=server_name)

    async def get_health_check(self, server_id: str, workspace_id: str) -> HealthCheck:
        """Five-check health rollup for one server.

        Raises:
            ServerNotFoundError: The server does not exist in the workspace.
        """
        server = await self._server_repo.get(server_id, workspace_id)
        thresholds = await self._thresholds.get_thresholds(workspace_id)
        with traced(tracer, "alerts.health_check", {"server_id": server_id}):
            return await health_check(self._client_factory(server), thresholds)

    async def get_cluster_health_summary(
        self,
        server_id: str,
        workspace_id: str,
    ) -> ClusterHealthSummary:
        server = await self._server_repo.get(server_id, workspace_id)
        thresholds = await self._thresholds.get_thresholds(workspace_id)
        with traced(tracer, "alerts.cluster_summary", {"server_id": server_id}):
            return await cluster_summary(self._client_factory(server), thresholds)

    async def get_resolved_alerts(
        self,
        server_id: str,
        workspace_id: str,
        *,
        severity: str | None = None,
        category: str | None = None,
        vhost: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ResolvedAlert], int]:
        """Paginated resolved alert history for one server.

        Raises:
            ServerNotFoundError: The server does not exist in the workspace.
        """
        await self._server_repo.get(server_id, workspace_id)
        return await self._seen_repo.get_resolved(
            workspace_id,
            server_id,
            severity=severity,
            category=category,
            vhost=vhost,
            limit=limit,
            offset=offset,
        )

    async def get_thresholds(self, workspace_id: str) -> AlertThresholds:
        return await self._thresholds.get_thresholds(workspace_id)

    async def update_thresholds(
        self,
        workspace_id: str,
        update: ThresholdsUpdate,
    ) -> ThresholdUpdateResult:
        return await self._thresholds.update_thresholds(workspace_id, update)

    async def can_modify_thresholds(self, workspace_id: str) -> bool:
        return await self._thresholds.can_modify(workspace_id)

    @staticmethod
    def get_default_thresholds() -> AlertThresholds:
        return ThresholdService.get_default_thresholds()

    async def drain_notifications(self, timeout: float | None = None) -> None:
        """Wait for notification deliveries started by earlier passes."""
        await self._tracker.drain(timeout)
