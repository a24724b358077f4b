"""Alert evaluation and notification deduplication for RabbitMQ servers.

Components:
- AlertCandidate / AlertSummary: In-memory alerts produced by one pass
- evaluate_node / evaluate_queue: Stateless threshold evaluators
- generate_fingerprint: Stable identity of an alert condition
- SeenAlert / ResolvedAlert: Persisted alert lifecycle and history
- SeenAlertRepository: seen_alerts and resolved_alerts persistence
- AlertTracker / decide_notify: Tracking, auto-resolution and cooldown gating
- NotificationChannel / EmailChannel / WebhookChannel / SlackChannel: Delivery channels
- CircuitBreaker: Resilience wrapper for channels
- NotificationConfig / NotificationDispatcher: Per-workspace fan-out
- AlertService: Orchestrator for fetch, evaluation, tracking and health rollups
- AlertScheduler: Opt-in periodic evaluation worker
- AlertConfig: Pydantic settings for cooldown, timeouts and scheduling
"""

from src.alerts.channels import (
    CircuitBreaker,
    DeliveryResult,
    EmailChannel,
    NotificationChannel,
    NotificationContext,
    SlackChannel,
    WebhookChannel,
)
from src.alerts.config import AlertConfig
from src.alerts.dispatcher import DispatchReport, NotificationConfig, NotificationDispatcher
from src.alerts.evaluators import evaluate_node, evaluate_queue, evaluate_snapshot
from src.alerts.fingerprint import fingerprint_for, generate_fingerprint
from src.alerts.repository import SeenAlertRepository
from src.alerts.scheduler import AlertScheduler
from src.alerts.schemas import (
    AlertCandidate,
    AlertCategory,
    AlertSeverity,
    AlertSummary,
    ClusterHealthSummary,
    HealthCheck,
    HealthStatus,
    ResolvedAlert,
    SeenAlert,
    SourceType,
)
from src.alerts.service import AlertService, ServerAlerts
from src.alerts.tracker import AlertTracker, TrackingResult, decide_notify

__all__ = [
    "AlertCandidate",
    "AlertCategory",
    "AlertConfig",
    "AlertScheduler",
    "AlertService",
    "AlertSeverity",
    "AlertSummary",
    "AlertTracker",
    "CircuitBreaker",
    "ClusterHealthSummary",
    "DeliveryResult",
    "DispatchReport",
    "EmailChannel",
    "HealthCheck",
    "HealthStatus",
    "NotificationChannel",
    "NotificationConfig",
    "NotificationContext",
    "NotificationDispatcher",
    "ResolvedAlert",
    "SeenAlert",
    "SeenAlertRepository",
    "ServerAlerts",
    "SlackChannel",
    "SourceType",
    "TrackingResult",
    "WebhookChannel",
    "decide_notify",
    "evaluate_node",
    "evaluate_queue",
    "evaluate_snapshot",
    "fingerprint_for",
    "generate_fingerprint",
]
