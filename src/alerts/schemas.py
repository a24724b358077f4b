"""Schema definitions for RabbitMQ alerts.

Alert candidates are in-memory values produced by the evaluators on every
pass and never persisted as-is. Their identity across passes lives in
``SeenAlert`` rows (one per fingerprint per workspace) and disappeared
alerts are copied into ``ResolvedAlert`` history rows.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class AlertSeverity(str, enum.Enum):
    """Alert urgency, ordered critical > warning > info."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK: dict[AlertSeverity, int] = {
    AlertSeverity.CRITICAL: 3,
    AlertSeverity.WARNING: 2,
    AlertSeverity.INFO: 1,
}


class AlertCategory(str, enum.Enum):
    MEMORY = "memory"
    DISK = "disk"
    CONNECTION = "connection"
    QUEUE = "queue"
    NODE = "node"
    PERFORMANCE = "performance"


class SourceType(str, enum.Enum):
    NODE = "node"
    QUEUE = "queue"
    CLUSTER = "cluster"


class HealthStatus(str, enum.Enum):
    """Per-check and overall health verdicts."""

    HEALTHY = "healthy"
    WARNING = "warning"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AlertSource:
    type: SourceType
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "name": self.name}


@dataclass(frozen=True)
class AlertDetails:
    """Measured value and context attached to an alert.

    Attributes:
        current: Observed value (a rounded percentage, a count, or a
            human-readable description such as ``"offline"``).
        threshold: Threshold tier that fired, when one applies.
        recommended: Suggested remediation.
        affected: Names of the resources involved.
    """

    current: int | float | str
    threshold: float | None = None
    recommended: str | None = None
    affected: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"current": self.current}
        if self.threshold is not None:
            data["threshold"] = self.threshold
        if self.recommended is not None:
            data["recommended"] = self.recommended
        if self.affected:
            data["affected"] = list(self.affected)
        return data


@dataclass(frozen=True)
class AlertCandidate:
    """An alert produced by one evaluation pass.

    Attributes:
        server_id: Server the alert belongs to.
        server_name: Display name of the server.
        severity: Urgency level.
        category: What kind of resource is affected.
        title: Short human-readable summary.
        description: One-sentence description of the condition.
        details: Measured value, threshold and remediation hint.
        source: Node, queue or cluster that raised the alert.
        vhost: Virtual host of the source queue (queue alerts only).
        id: Per-occurrence identifier, regenerated on every pass.
        timestamp: When the alert was produced.
        resolved: Always False for freshly produced alerts.
    """

    server_id: str
    server_name: str
    severity: AlertSeverity
    category: AlertCategory
    title: str
    description: str
    details: AlertDetails
    source: AlertSource
    vhost: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    resolved: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape the dashboard consumes."""
        data: dict[str, Any] = {
            "id": self.id,
            "serverId": self.server_id,
            "serverName": self.server_name,
            "severity": self.severity.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "details": self.details.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "resolved": self.resolved,
            "source": self.source.to_dict(),
        }
        if self.vhost is not None:
            data["vhost"] = self.vhost
        return data


@dataclass
class AlertSummary:
    """Alert counts by severity. ``total`` is always the sum of the three."""

    critical: int = 0
    warning: int = 0
    info: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.warning + self.info

    @classmethod
    def from_alerts(cls, alerts: list[AlertCandidate]) -> "AlertSummary":
        summary = cls()
        for alert in alerts:
            if alert.severity is AlertSeverity.CRITICAL:
                summary.critical += 1
            elif alert.severity is AlertSeverity.WARNING:
                summary.warning += 1
            else:
                summary.info += 1
        return summary

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "critical": self.critical,
            "warning": self.warning,
            "info": self.info,
        }


@dataclass
class SeenAlert:
    """A persisted alert identity from the seen_alerts table.

    One row per fingerprint per workspace. Rows are never deleted; the
    resolved_at and notified_at columns carry the lifecycle.
    """

    workspace_id: str
    server_id: str
    fingerprint: str
    severity: AlertSeverity
    category: AlertCategory
    source_type: SourceType
    source_name: str
    first_seen_at: datetime
    last_seen_at: datetime
    resolved_at: datetime | None = None
    notified_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


@dataclass
class ResolvedAlert:
    """History row written when a seen alert is auto-resolved."""

    workspace_id: str
    server_id: str
    server_name: str
    fingerprint: str
    severity: AlertSeverity
    category: AlertCategory
    source_type: SourceType
    source_name: str
    title: str
    description: str
    first_seen_at: datetime
    resolved_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def duration_ms(self) -> int:
        return int((self.resolved_at - self.first_seen_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "serverId": self.server_id,
            "serverName": self.server_name,
            "severity": self.severity.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "details": self.details,
            "source": {"type": self.source_type.value, "name": self.source_name},
            "firstSeenAt": self.first_seen_at.isoformat(),
            "resolvedAt": self.resolved_at.isoformat(),
            "duration": self.duration_ms,
        }


@dataclass
class CheckResult:
    status: HealthStatus = HealthStatus.HEALTHY
    message: str = ""
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


CHECK_NAMES = ("connectivity", "nodes", "memory", "disk", "queues")


@dataclass
class HealthCheck:
    """Coarse health rollup for one server.

    ``overall`` only takes healthy, degraded or critical; individual checks
    may also report warning.
    """

    overall: HealthStatus = HealthStatus.HEALTHY
    checks: dict[str, CheckResult] = field(
        default_factory=lambda: {name: CheckResult() for name in CHECK_NAMES}
    )
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def degrade(self, status: HealthStatus) -> None:
        """Fold a check status into the overall verdict (worst wins)."""
        if status is HealthStatus.CRITICAL:
            self.overall = HealthStatus.CRITICAL
        elif status in (HealthStatus.WARNING, HealthStatus.DEGRADED):
            if self.overall is HealthStatus.HEALTHY:
                self.overall = HealthStatus.DEGRADED

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall.value,
            "checks": {name: check.to_dict() for name, check in self.checks.items()},
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ClusterHealthSummary:
    cluster_health: HealthStatus
    summary: AlertSummary
    issues: list[str]
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "clusterHealth": self.cluster_health.value,
            "summary": self.summary.to_dict(),
            "issues": self.issues,
            "timestamp": self.timestamp.isoformat(),
        }
