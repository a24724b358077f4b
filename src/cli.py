"""
Command-line interface for rabbitmq-alert-engine.

Provides commands to run the API and the periodic alert worker,
initialize the database, and evaluate a server by hand.

Usage:
    rabbitmq-alerts serve          # Run the API server
    rabbitmq-alerts alerts-worker  # Evaluate every server on an interval
    rabbitmq-alerts init-db        # Initialize database
    rabbitmq-alerts check-server   # Evaluate one server and print alerts
    rabbitmq-alerts health         # Check service health
"""

import asyncio
import json
import signal
import sys

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics

_SEVERITY_COLORS = {"critical": "red", "warning": "yellow", "info": "blue"}


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """RabbitMQ Alert Engine - threshold alerts and deduplicated notifications."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    settings = get_settings()
    if settings.tracing_enabled:
        from src.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the alert API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("alerts-worker")
@click.option("--interval", default=None, type=float, help="Seconds between cycles")
@click.option("--once", is_flag=True, help="Run a single cycle and exit")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def alerts_worker(
    interval: float | None,
    once: bool,
    metrics: bool,
    metrics_port: int | None,
) -> None:
    """Evaluate every registered server on a fixed interval."""
    from src.alerts.config import AlertConfig
    from src.alerts.scheduler import AlertScheduler
    from src.api.dependencies import build_alert_service
    from src.rabbitmq.repository import ServerRepository
    from src.storage.database import Database

    async def run():
        settings = get_settings()
        config = AlertConfig()
        if interval is not None:
            config = config.model_copy(update={"check_interval_seconds": interval})

        redis_client = None
        if settings.redis_url is not None:
            import redis.asyncio as redis
            redis_client = redis.from_url(
                str(settings.redis_url), encoding="utf-8", decode_responses=True,
            )

        db = Database()
        await db.connect()
        service = build_alert_service(db, redis_client, settings)
        try:
            scheduler = AlertScheduler(service, ServerRepository(db), config)

            if once:
                stats = await scheduler.run_cycle()
                click.echo(json.dumps(stats, indent=2))
                return

            if metrics:
                get_metrics().start_server(port=metrics_port)

            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, stop_event.set)

            await scheduler.run(stop_event)
        finally:
            await service.drain_notifications()
            await db.close()
            if redis_client is not None:
                await redis_client.aclose()

    asyncio.run(run())


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.alerts.repository import SeenAlertRepository
    from src.rabbitmq.repository import ServerRepository
    from src.storage.database import Database
    from src.thresholds.repository import ThresholdRepository
    from src.workspaces.repository import WorkspaceRepository

    async def run():
        db = Database()
        await db.connect()
        try:
            # Workspaces first: the other tables reference them
            await WorkspaceRepository(db).create_table()
            await ServerRepository(db).create_table()
            await ThresholdRepository(db).create_table()
            await SeenAlertRepository(db).create_table()
        finally:
            await db.close()

        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command("register-server")
@click.option("--id", "server_id", required=True, help="Server identifier")
@click.option("--workspace-id", required=True, help="Owning workspace")
@click.option("--name", required=True, help="Display name used in alerts")
@click.option("--host", required=True, help="Management API host")
@click.option("--port", default=15672, help="Management API port")
@click.option("--username", default="guest", help="Management API user")
@click.option("--password", default="guest", help="Management API password")
@click.option("--https", "use_https", is_flag=True, help="Use HTTPS for the management API")
def register_server(
    server_id: str,
    workspace_id: str,
    name: str,
    host: str,
    port: int,
    username: str,
    password: str,
    use_https: bool,
) -> None:
    """Register (or update) a RabbitMQ server to monitor."""
    from src.rabbitmq.repository import ServerRepository
    from src.rabbitmq.schemas import RabbitMQServer
    from src.storage.database import Database

    async def run():
        server = RabbitMQServer(
            id=server_id,
            workspace_id=workspace_id,
            name=name,
            host=host,
            port=port,
            username=username,
            password=password,
            use_https=use_https,
        )
        db = Database()
        await db.connect()
        try:
            await ServerRepository(db).upsert(server)
        finally:
            await db.close()

        click.echo(f"Registered server {server_id} ({server.base_url})")

    asyncio.run(run())


@main.command("check-server")
@click.argument("server_id")
@click.option("--workspace-id", required=True, help="Workspace that owns the server")
@click.option("--vhost", default=None, help="Only evaluate queues in this vhost")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON")
def check_server(server_id: str, workspace_id: str, vhost: str | None, as_json: bool) -> None:
    """Evaluate one server now, tracking and notifying as the API would."""
    from src.api.dependencies import build_alert_service
    from src.rabbitmq.errors import ServerNotFoundError
    from src.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()
        service = build_alert_service(db)
        try:
            result = await service.get_server_alerts(server_id, None, workspace_id, vhost)
        except ServerNotFoundError as e:
            click.echo(click.style(str(e), fg="red"), err=True)
            return 1
        finally:
            await service.drain_notifications()
            await db.close()

        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2, default=str))
            return 0

        summary = result.summary
        click.echo(f"\nAlerts for server {server_id}:")
        click.echo("-" * 60)
        for alert in result.alerts:
            color = _SEVERITY_COLORS.get(alert.severity.value, "white")
            click.echo(
                click.style(f"  [{alert.severity.value.upper():8}] ", fg=color)
                + f"{alert.title}: {alert.description}"
            )
        if not result.alerts:
            click.echo(click.style("  No active alerts", fg="green"))
        click.echo("-" * 60)
        click.echo(
            f"Total: {summary.total}  Critical: {summary.critical}  "
            f"Warning: {summary.warning}  Info: {summary.info}"
        )

        tracking = result.tracking
        if tracking is not None:
            click.echo(
                f"New: {len(tracking.new_fingerprints)}  "
                f"Notified: {len(tracking.notify_fingerprints)}  "
                f"Resolved: {len(tracking.resolved_fingerprints)}"
            )
        return 0

    sys.exit(asyncio.run(run()))


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        settings = get_settings()
        results: dict[str, bool] = {}

        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        if settings.redis_url is not None:
            import redis.asyncio as redis
            client = redis.from_url(str(settings.redis_url))
            try:
                results["redis"] = bool(await client.ping())
            except Exception as e:
                results["redis"] = False
                logger.error("Redis health check failed", error=str(e))
            finally:
                await client.aclose()

        results["smtp_configured"] = settings.smtp_configured

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
