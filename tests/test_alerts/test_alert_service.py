"""Tests for AlertService orchestration."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.alerts.config import AlertConfig
from src.alerts.schemas import AlertSeverity
from src.alerts.service import AlertService, sort_alerts
from src.alerts.tracker import TrackingResult
from src.rabbitmq.client import MetricSource
from src.rabbitmq.errors import MetricSourceError, ServerNotFoundError
from src.rabbitmq.schemas import NodeRecord, QueueRecord
from src.thresholds.schemas import DEFAULT_THRESHOLDS


@pytest.fixture
def source():
    source = AsyncMock(spec=MetricSource)
    source.list_nodes.return_value = [
        NodeRecord(name="rabbit@n1", mem_used=96, mem_limit=100),
    ]
    source.list_queues.return_value = [
        QueueRecord(name="orders", messages=5, messages_ready=5, consumers=0),
    ]
    source.get_overview.return_value = {}
    return source


@pytest.fixture
def server_repo(server):
    repo = AsyncMock()
    repo.get.return_value = server
    return repo


@pytest.fixture
def threshold_service():
    service = AsyncMock()
    service.get_thresholds.return_value = DEFAULT_THRESHOLDS
    return service


@pytest.fixture
def tracker():
    tracker = AsyncMock()
    tracker.track_and_notify.return_value = TrackingResult()
    return tracker


@pytest.fixture
def seen_repo():
    repo = AsyncMock()
    repo.get_resolved.return_value = ([], 0)
    return repo


@pytest.fixture
def service(server_repo, threshold_service, tracker, seen_repo, source):
    return AlertService(
        server_repo=server_repo,
        threshold_service=threshold_service,
        tracker=tracker,
        seen_repo=seen_repo,
        config=AlertConfig(fetch_timeout_seconds=0.5),
        client_factory=MagicMock(return_value=source),
    )


class TestSortAlerts:
    def test_most_severe_first(self, alert_factory, now):
        info = alert_factory(severity=AlertSeverity.INFO)
        critical = alert_factory(severity=AlertSeverity.CRITICAL)
        warning = alert_factory(severity=AlertSeverity.WARNING)

        ordered = sort_alerts([info, critical, warning])

        assert [a.severity for a in ordered] == [
            AlertSeverity.CRITICAL,
            AlertSeverity.WARNING,
            AlertSeverity.INFO,
        ]


class TestEvaluateServer:
    @pytest.mark.asyncio
    async def test_evaluates_and_tracks(self, service, server, tracker):
        result = await service.evaluate_server(server)

        assert [a.title for a in result.alerts] == [
            "Critical Memory Usage",
            "Queue Without Consumers",
        ]
        assert result.summary.to_dict() == {"total": 2, "critical": 1, "warning": 1, "info": 0}
        assert result.thresholds == DEFAULT_THRESHOLDS

        args = tracker.track_and_notify.await_args.args
        assert args[0] == result.alerts
        assert args[1:5] == ("ws-1", "srv-1", "Production", None)

    @pytest.mark.asyncio
    async def test_vhost_restricts_queue_listing(self, service, server, source, tracker):
        await service.evaluate_server(server, vhost="billing")

        source.list_queues.assert_awaited_once_with("billing")
        assert tracker.track_and_notify.await_args.args[4] == "billing"

    @pytest.mark.asyncio
    async def test_server_name_override(self, service, server):
        result = await service.evaluate_server(server, server_name="Blue cluster")
        assert all(a.server_name == "Blue cluster" for a in result.alerts)

    @pytest.mark.asyncio
    async def test_queue_fetch_failure_keeps_node_alerts(self, service, server, source):
        source.list_queues.side_effect = MetricSourceError("HTTP 500")

        result = await service.evaluate_server(server)

        assert [a.title for a in result.alerts] == ["Critical Memory Usage"]

    @pytest.mark.asyncio
    async def test_slow_fetch_is_abandoned(self, service, server, source):
        async def hang():
            await asyncio.sleep(5)
            return []

        source.list_nodes.side_effect = hang

        result = await service.evaluate_server(server)

        assert [a.title for a in result.alerts] == ["Queue Without Consumers"]

    @pytest.mark.asyncio
    async def test_total_fetch_failure_is_empty(self, service, server, source, tracker):
        source.list_nodes.side_effect = MetricSourceError("down")
        source.list_queues.side_effect = MetricSourceError("down")

        result = await service.evaluate_server(server)

        assert result.alerts == []
        assert result.summary.total == 0
        # An empty pass still lets the tracker resolve what disappeared
        tracker.track_and_notify.assert_awaited_once()


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_server_alerts_resolves_server(self, service, server_repo):
        await service.get_server_alerts("srv-1", None, "ws-1")
        server_repo.get.assert_awaited_once_with("srv-1", "ws-1")

    @pytest.mark.asyncio
    async def test_unknown_server_raises(self, service, server_repo):
        server_repo.get.side_effect = ServerNotFoundError("srv-9", "ws-1")

        with pytest.raises(ServerNotFoundError):
            await service.get_server_alerts("srv-9", None, "ws-1")

    @pytest.mark.asyncio
    async def test_health_check(self, service):
        check = await service.get_health_check("srv-1", "ws-1")
        # High memory and an orphaned queue are both warnings
        assert check.overall.value == "degraded"
        assert check.checks["memory"].message == "1 nodes have high memory usage"

    @pytest.mark.asyncio
    async def test_cluster_summary(self, service):
        summary = await service.get_cluster_health_summary("srv-1", "ws-1")
        assert summary.issues == ["Critical memory usage on rabbit@n1 (96%)"]

    @pytest.mark.asyncio
    async def test_resolved_alerts_checks_server_first(self, service, server_repo, seen_repo):
        server_repo.get.side_effect = ServerNotFoundError("srv-9", "ws-1")

        with pytest.raises(ServerNotFoundError):
            await service.get_resolved_alerts("srv-9", "ws-1")

        seen_repo.get_resolved.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolved_alerts_passes_filters(self, service, seen_repo):
        await service.get_resolved_alerts(
            "srv-1", "ws-1", severity="critical", vhost="/", limit=10, offset=20,
        )

        seen_repo.get_resolved.assert_awaited_once_with(
            "ws-1",
            "srv-1",
            severity="critical",
            category=None,
            vhost="/",
            limit=10,
            offset=20,
        )

    def test_default_thresholds(self):
        assert AlertService.get_default_thresholds() is DEFAULT_THRESHOLDS
