"""
Dependency injection for FastAPI endpoints.

Services are process-wide singletons created on first use. The CLI reuses
``build_alert_service`` so the worker and the API wire things the same way.
"""

import redis.asyncio as redis

from src.alerts.channels import EmailChannel
from src.alerts.config import AlertConfig
from src.alerts.dispatcher import NotificationConfig, NotificationDispatcher
from src.alerts.repository import SeenAlertRepository
from src.alerts.service import AlertService
from src.alerts.tracker import AlertTracker
from src.config.settings import Settings, get_settings
from src.rabbitmq.repository import ServerRepository
from src.storage.database import Database
from src.thresholds.repository import ThresholdRepository
from src.thresholds.service import ThresholdService
from src.workspaces.repository import WorkspaceRepository

# Global service instances (initialized on first request)
_database: Database | None = None
_redis_client: redis.Redis | None = None
_threshold_service: ThresholdService | None = None
_alert_service: AlertService | None = None


async def get_database() -> Database:
    """Get the shared database pool, connecting on first use."""
    global _database

    if _database is None:
        _database = Database()
        await _database.connect()

    return _database


async def get_redis_client() -> redis.Redis | None:
    """Get the Redis client for the retry queue, or None when not configured."""
    global _redis_client

    settings = get_settings()
    if settings.redis_url is None:
        return None

    if _redis_client is None:
        _redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )

    return _redis_client


def build_dispatcher(
    settings: Settings,
    redis_client: redis.Redis | None = None,
) -> NotificationDispatcher:
    """Notification dispatcher with email enabled when SMTP is configured."""
    email_channel = None
    if settings.smtp_configured:
        email_channel = EmailChannel(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
            use_tls=settings.smtp_use_tls,
            frontend_url=settings.frontend_url,
        )

    return NotificationDispatcher(
        email_channel=email_channel,
        config=NotificationConfig(),
        redis_client=redis_client,
        frontend_url=settings.frontend_url,
    )


def build_threshold_service(database: Database) -> ThresholdService:
    return ThresholdService(
        threshold_repo=ThresholdRepository(database),
        workspace_repo=WorkspaceRepository(database),
    )


def build_alert_service(
    database: Database,
    redis_client: redis.Redis | None = None,
    settings: Settings | None = None,
) -> AlertService:
    """
    Wire an AlertService and its collaborators on one database pool.

    Args:
        database: Connected database.
        redis_client: Optional Redis client for the failed-delivery queue.
        settings: Application settings (defaults to the cached instance).
    """
    settings = settings or get_settings()
    config = AlertConfig()
    seen_repo = SeenAlertRepository(database)

    tracker = AlertTracker(
        seen_repo=seen_repo,
        workspace_repo=WorkspaceRepository(database),
        dispatcher=build_dispatcher(settings, redis_client),
        config=config,
    )

    return AlertService(
        server_repo=ServerRepository(database),
        threshold_service=build_threshold_service(database),
        tracker=tracker,
        seen_repo=seen_repo,
        config=config,
    )


async def get_threshold_service() -> ThresholdService:
    global _threshold_service

    if _threshold_service is None:
        _threshold_service = build_threshold_service(await get_database())

    return _threshold_service


async def get_alert_service() -> AlertService:
    """
    Get alert service instance.

    Creates a singleton service sharing the database pool and, when
    configured, the Redis retry queue.
    """
    global _alert_service

    if _alert_service is None:
        _alert_service = build_alert_service(
            await get_database(),
            await get_redis_client(),
        )

    return _alert_service


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _database, _redis_client, _threshold_service, _alert_service

    if _alert_service is not None:
        await _alert_service.drain_notifications()
    _alert_service = None
    _threshold_service = None

    if _database is not None:
        await _database.close()
        _database = None

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
