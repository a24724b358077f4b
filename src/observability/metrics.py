"""
Prometheus metrics for monitoring the alert engine.

Defines and exposes metrics for:
- Evaluation passes and their latency
- Alerts produced by severity and category
- Metric-source fetch failures
- Notification deliveries per channel
- Auto-resolutions

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the alert engine.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_evaluation("scheduler", latency=0.4)
        metrics.record_alerts("server-1", alerts)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.evaluations = Counter(
            "alert_engine_evaluations_total",
            "Total evaluation passes run",
            ["trigger"],  # request, scheduler, cli
        )

        self.evaluation_latency = Histogram(
            "alert_engine_evaluation_latency_seconds",
            "Time to fetch, evaluate and track one server",
            buckets=LATENCY_BUCKETS,
        )

        self.alerts_generated = Counter(
            "alert_engine_alerts_generated_total",
            "Alert candidates produced by the evaluators",
            ["severity", "category"],
        )

        self.fetch_failures = Counter(
            "alert_engine_fetch_failures_total",
            "Metric source calls that failed or timed out",
            ["resource"],  # nodes, queues, overview
        )

        self.notifications = Counter(
            "alert_engine_notifications_total",
            "Notification delivery attempts",
            ["channel", "status"],  # status: success, failure
        )

        self.auto_resolved = Counter(
            "alert_engine_auto_resolved_total",
            "Seen alerts auto-resolved because they disappeared",
        )

        self.tracking_errors = Counter(
            "alert_engine_tracking_errors_total",
            "Tracking passes aborted by an unexpected error",
        )

        self.active_alerts = Gauge(
            "alert_engine_active_alerts",
            "Alerts produced by the latest pass per server",
            ["server_id", "severity"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_evaluation(self, trigger: str, latency: float | None = None) -> None:
        """
        Record a completed evaluation pass.

        Args:
            trigger: What started the pass (request, scheduler, cli)
            latency: Optional pass latency in seconds
        """
        self.evaluations.labels(trigger=trigger).inc()
        if latency is not None:
            self.evaluation_latency.observe(latency)

    def record_alerts(self, server_id: str, alerts: list) -> None:
        """
        Record the alert candidates of one pass.

        Args:
            server_id: Server that was evaluated
            alerts: AlertCandidate list
        """
        counts = {"critical": 0, "warning": 0, "info": 0}
        for alert in alerts:
            severity = alert.severity.value
            counts[severity] += 1
            self.alerts_generated.labels(
                severity=severity,
                category=alert.category.value,
            ).inc()
        for severity, count in counts.items():
            self.active_alerts.labels(server_id=server_id, severity=severity).set(count)

    def record_fetch_failure(self, resource: str) -> None:
        self.fetch_failures.labels(resource=resource).inc()

    def record_notification(self, channel: str, success: bool) -> None:
        """
        Record a notification delivery outcome.

        Args:
            channel: Channel name (email, webhook, slack)
            success: Whether delivery succeeded
        """
        status = "success" if success else "failure"
        self.notifications.labels(channel=channel, status=status).inc()

    def record_auto_resolved(self, count: int = 1) -> None:
        if count > 0:
            self.auto_resolved.inc(count)

    def record_tracking_error(self) -> None:
        self.tracking_errors.inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
