"""
Request and response models for the alert API.

Alert payloads use camelCase keys, matching what the dashboard consumes;
service-level models keep snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ComponentHealth(BaseModel):
    """Health status for a single infrastructure component."""

    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict | None = Field(default=None, description="Error details when unhealthy")


class HealthResponse(BaseModel):
    """Response model for service health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(
        default_factory=dict,
        description="Per-component health",
    )
    version: str = Field(..., description="Service version")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error type",
    )


# Alert models


class AlertSourceItem(BaseModel):
    type: str = Field(..., description="node, queue or cluster")
    name: str = Field(..., description="Name of the node, queue or cluster")


class AlertItem(CamelModel):
    """Single alert produced by an evaluation pass."""

    id: str = Field(..., description="Per-occurrence alert identifier")
    server_id: str
    server_name: str
    severity: str = Field(..., description="Severity level: critical, warning, info")
    category: str = Field(
        ..., description="memory, disk, connection, queue, node or performance",
    )
    title: str = Field(..., description="Short human-readable summary")
    description: str = Field(..., description="One-sentence description")
    details: dict = Field(
        default_factory=dict,
        description="current, threshold, recommended and affected",
    )
    timestamp: str = Field(..., description="Evaluation time (ISO format)")
    resolved: bool = False
    source: AlertSourceItem
    vhost: str | None = Field(default=None, description="Queue vhost (queue alerts only)")


class AlertSummaryItem(BaseModel):
    total: int
    critical: int
    warning: int
    info: int


class ServerAlertsResponse(BaseModel):
    """Response model for evaluating a server's alerts."""

    alerts: list[AlertItem] = Field(..., description="Alerts, most severe first")
    summary: AlertSummaryItem
    thresholds: dict = Field(..., description="Threshold set used for the pass")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class ResolvedAlertItem(CamelModel):
    """Single resolved alert history record."""

    id: str
    server_id: str
    server_name: str
    severity: str
    category: str
    title: str
    description: str
    details: dict = Field(default_factory=dict)
    source: AlertSourceItem
    first_seen_at: str = Field(..., description="First sighting (ISO format)")
    resolved_at: str = Field(..., description="Resolution time (ISO format)")
    duration: int = Field(..., description="Milliseconds between first sighting and resolution")


class ResolvedAlertsResponse(BaseModel):
    """Response model for resolved alert history."""

    alerts: list[ResolvedAlertItem]
    total: int = Field(..., description="Total matching records")
    limit: int
    offset: int


class CheckItem(BaseModel):
    status: str = Field(..., description="healthy, warning or critical")
    message: str
    details: dict | None = None


class HealthCheckResponse(BaseModel):
    """Response model for a server health check."""

    overall: str = Field(..., description="healthy, degraded or critical")
    checks: dict[str, CheckItem]
    timestamp: str


class ClusterHealthResponse(CamelModel):
    """Response model for a cluster health summary."""

    cluster_health: str = Field(..., description="healthy, degraded or critical")
    summary: AlertSummaryItem
    issues: list[str] = Field(..., description="Up to five human-readable issues")
    timestamp: str


# Threshold models


class ThresholdsResponse(BaseModel):
    """Response model for a workspace's thresholds."""

    thresholds: dict = Field(..., description="Effective threshold set")
    defaults: dict = Field(..., description="Built-in default threshold set")
    can_modify: bool = Field(..., description="Whether the workspace plan allows updates")


class ThresholdUpdateResponse(BaseModel):
    """Response model for a threshold update."""

    success: bool
    message: str
    thresholds: dict | None = Field(
        default=None,
        description="Effective threshold set after a successful update",
    )
