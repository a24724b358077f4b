"""Tests for request timeout middleware."""

import asyncio
from unittest.mock import AsyncMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.alerts.channels import DeliveryResult, NotificationChannel
from src.alerts.dispatcher import NotificationDispatcher
from src.alerts.service import AlertService
from src.alerts.tracker import AlertTracker
from src.api.app import create_app
from src.api.auth import verify_api_key
from src.api.dependencies import get_alert_service, get_database, get_redis_client
from src.api.middleware.timeout import TimeoutMiddleware
from src.config.settings import Settings
from src.rabbitmq.client import MetricSource
from src.rabbitmq.schemas import NodeRecord
from src.thresholds.schemas import DEFAULT_THRESHOLDS
from src.workspaces.schemas import NotificationTargets


def _create_test_app(timeout: float = 1.0) -> FastAPI:
    """Create a minimal FastAPI app with timeout middleware for testing."""
    app = FastAPI()
    app.add_middleware(TimeoutMiddleware, timeout_seconds=timeout)

    @app.get("/fast")
    async def fast():
        return {"status": "ok"}

    @app.get("/slow")
    async def slow():
        await asyncio.sleep(10)
        return {"status": "ok"}

    @app.get("/health")
    async def health():
        await asyncio.sleep(0.3)
        return {"status": "healthy"}

    return app


class TestTimeoutMiddleware:
    """Tests for TimeoutMiddleware behavior."""

    def test_fast_request_succeeds(self):
        app = _create_test_app(timeout=5.0)
        response = TestClient(app).get("/fast")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_slow_request_returns_504(self):
        app = _create_test_app(timeout=0.1)
        response = TestClient(app).get("/slow")
        assert response.status_code == 504
        data = response.json()
        assert "timed out" in data["detail"]
        assert data["timeout_seconds"] == 0.1

    def test_health_excluded_from_timeout(self):
        """Service health is never cut short."""
        app = _create_test_app(timeout=0.1)
        response = TestClient(app).get("/health")
        assert response.status_code == 200


class TestSlowEvaluation:
    def test_slow_management_api_returns_504(self, mock_alert_service, mock_db):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        mock_alert_service.get_server_alerts.side_effect = hang

        with patch(
            "src.api.app.get_settings",
            return_value=Settings(request_timeout_seconds=1.0),
        ):
            app = create_app()
        app.dependency_overrides[verify_api_key] = lambda: "test-key"
        app.dependency_overrides[get_alert_service] = lambda: mock_alert_service
        app.dependency_overrides[get_database] = lambda: mock_db
        app.dependency_overrides[get_redis_client] = lambda: None

        with TestClient(app) as client:
            resp = client.get("/servers/srv-1/alerts", params={"workspace_id": "ws-1"})

        assert resp.status_code == 504
        assert resp.json()["timeout_seconds"] == 1.0

    def test_slow_notification_channel_does_not_fail_read(self, mock_db, server, workspace):
        async def slow_email(alerts, context):
            await asyncio.sleep(1.5)
            return DeliveryResult(channel="email", success=True)

        email = AsyncMock(spec=NotificationChannel)
        email.name = "email"
        email.target_id = None
        email.send.side_effect = slow_email

        source = AsyncMock(spec=MetricSource)
        source.list_nodes.return_value = [NodeRecord(name="rabbit@n1", mem_used=96, mem_limit=100)]
        source.list_queues.return_value = []

        server_repo = AsyncMock()
        server_repo.get.return_value = server
        threshold_service = AsyncMock()
        threshold_service.get_thresholds.return_value = DEFAULT_THRESHOLDS
        seen_repo = AsyncMock()
        seen_repo.list_for_server.return_value = []
        seen_repo.list_unresolved.return_value = []
        workspace_repo = AsyncMock()
        workspace_repo.get.return_value = workspace
        workspace_repo.get_notification_targets.return_value = NotificationTargets()

        tracker = AlertTracker(seen_repo, workspace_repo, NotificationDispatcher(email_channel=email))
        service = AlertService(
            server_repo=server_repo,
            threshold_service=threshold_service,
            tracker=tracker,
            seen_repo=seen_repo,
            client_factory=lambda s: source,
        )

        with patch(
            "src.api.app.get_settings",
            return_value=Settings(request_timeout_seconds=1.0),
        ):
            app = create_app()
        app.dependency_overrides[verify_api_key] = lambda: "test-key"
        app.dependency_overrides[get_alert_service] = lambda: service
        app.dependency_overrides[get_database] = lambda: mock_db
        app.dependency_overrides[get_redis_client] = lambda: None

        with TestClient(app) as client:
            resp = client.get("/servers/srv-1/alerts", params={"workspace_id": "ws-1"})
            client.portal.call(service.drain_notifications)

        assert resp.status_code == 200
        assert resp.json()["summary"]["critical"] == 1
        email.send.assert_awaited_once()
        seen_repo.mark_notified.assert_awaited_once()
