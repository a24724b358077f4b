"""Shared fixtures for API tests."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.alerts.service import AlertService
from src.api.app import create_app
from src.api.auth import verify_api_key
from src.api.dependencies import (
    get_alert_service,
    get_database,
    get_redis_client,
    get_threshold_service,
)
from src.thresholds.schemas import DEFAULT_THRESHOLDS
from src.thresholds.service import ThresholdService


@pytest.fixture
def mock_alert_service():
    """Mock AlertService."""
    return AsyncMock(spec=AlertService)


@pytest.fixture
def mock_threshold_service():
    """Mock ThresholdService returning the defaults for every workspace."""
    service = AsyncMock(spec=ThresholdService)
    service.get_thresholds.return_value = DEFAULT_THRESHOLDS
    service.can_modify.return_value = True
    service.get_default_thresholds.return_value = DEFAULT_THRESHOLDS
    return service


@pytest.fixture
def mock_db():
    """Mock Database for /health."""
    db = AsyncMock()
    db.health_check.return_value = True
    return db


@pytest.fixture
def app(mock_alert_service, mock_threshold_service, mock_db):
    """Application with every external dependency overridden."""
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_alert_service] = lambda: mock_alert_service
    app.dependency_overrides[get_threshold_service] = lambda: mock_threshold_service
    app.dependency_overrides[get_database] = lambda: mock_db
    app.dependency_overrides[get_redis_client] = lambda: None

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """FastAPI TestClient with dependency overrides."""
    with TestClient(app) as c:
        yield c
