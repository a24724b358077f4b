"""Stateless health evaluators for RabbitMQ nodes and queues.

Each evaluator maps one snapshot record plus a threshold set to a list of
alert candidates. No I/O, no state: fingerprinting, persistence and
notification live in the tracker. Several rules may fire for the same
record in one pass; two-tier rules fire at most one tier.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone

from src.alerts.schemas import (
    AlertCandidate,
    AlertCategory,
    AlertDetails,
    AlertSeverity,
    AlertSource,
    SourceType,
)
from src.rabbitmq.schemas import NodeRecord, QueueRecord
from src.thresholds.schemas import AlertThresholds, ThresholdPair

INACTIVE_QUEUE_HOURS = 24
STALE_READY_MESSAGES = 100
ACCUMULATION_RATIO = 0.5
ACCUMULATION_MIN_MESSAGES = 1000


def round_half_up(value: float) -> int:
    """Round half up, matching how the dashboard displays percentages."""
    return math.floor(value + 0.5)


def _tier(value: float, pair: ThresholdPair) -> tuple[AlertSeverity, float] | None:
    """Which tier ``value`` reaches for a higher-is-worse metric."""
    if value >= pair.critical:
        return AlertSeverity.CRITICAL, pair.critical
    if value >= pair.warning:
        return AlertSeverity.WARNING, pair.warning
    return None


def _inverted_tier(value: float, pair: ThresholdPair) -> tuple[AlertSeverity, float] | None:
    """Which tier ``value`` reaches for a lower-is-worse metric (disk free)."""
    if value <= pair.critical:
        return AlertSeverity.CRITICAL, pair.critical
    if value <= pair.warning:
        return AlertSeverity.WARNING, pair.warning
    return None


@dataclass(frozen=True)
class _UsageRule:
    """A two-tier ``used / total`` percentage rule on a node."""

    label: str
    noun: str
    category: AlertCategory
    used: str
    total: str
    thresholds: str
    recommended_critical: str
    recommended_warning: str


_NODE_USAGE_RULES: tuple[_UsageRule, ...] = (
    _UsageRule(
        label="File Descriptor Usage",
        noun="file descriptor usage",
        category=AlertCategory.CONNECTION,
        used="fd_used",
        total="fd_total",
        thresholds="file_descriptors",
        recommended_critical="Increase file descriptor limit or reduce connections",
        recommended_warning="Monitor file descriptor usage",
    ),
    _UsageRule(
        label="Socket Usage",
        noun="socket usage",
        category=AlertCategory.CONNECTION,
        used="sockets_used",
        total="sockets_total",
        thresholds="sockets",
        recommended_critical="Increase socket limit or reduce connections",
        recommended_warning="Monitor socket usage",
    ),
    _UsageRule(
        label="Process Usage",
        noun="Erlang process usage",
        category=AlertCategory.PERFORMANCE,
        used="proc_used",
        total="proc_total",
        thresholds="processes",
        recommended_critical="Investigate process leaks and restart if necessary",
        recommended_warning="Monitor process usage patterns",
    ),
)


class _AlertFactory:
    """Fills in the per-pass fields shared by every alert of one record."""

    def __init__(
        self,
        server_id: str,
        server_name: str,
        source: AlertSource,
        now: datetime,
        vhost: str | None = None,
    ) -> None:
        self._server_id = server_id
        self._server_name = server_name
        self._source = source
        self._now = now
        self._vhost = vhost

    def __call__(
        self,
        severity: AlertSeverity,
        category: AlertCategory,
        title: str,
        description: str,
        current: int | float | str,
        recommended: str,
        threshold: float | None = None,
        affected: tuple[str, ...] | None = None,
    ) -> AlertCandidate:
        return AlertCandidate(
            server_id=self._server_id,
            server_name=self._server_name,
            severity=severity,
            category=category,
            title=title,
            description=description,
            details=AlertDetails(
                current=current,
                threshold=threshold,
                recommended=recommended,
                affected=affected or (self._source.name,),
            ),
            source=self._source,
            vhost=self._vhost,
            timestamp=self._now,
        )


def evaluate_node(
    node: NodeRecord,
    server_id: str,
    server_name: str,
    thresholds: AlertThresholds,
    now: datetime | None = None,
) -> list[AlertCandidate]:
    """Evaluate one cluster node.

    Alarm flags and percentage checks are independent: a node with an
    active memory alarm at 97% usage yields both "Memory Alarm Active" and
    "Critical Memory Usage".

    Args:
        node: Node record from the management API.
        server_id: Server the node belongs to.
        server_name: Display name of the server.
        thresholds: Threshold set for this pass.
        now: Alert timestamp (defaults to the current UTC time).

    Returns:
        Alert candidates, possibly empty.
    """
    now = now or datetime.now(timezone.utc)
    make = _AlertFactory(server_id, server_name, AlertSource(SourceType.NODE, node.name), now)
    alerts: list[AlertCandidate] = []

    if not node.running:
        alerts.append(make(
            AlertSeverity.CRITICAL,
            AlertCategory.NODE,
            "Node Down",
            f"RabbitMQ node {node.name} is not running",
            current="offline",
            recommended="Check node logs and restart if necessary",
        ))

    if node.mem_alarm:
        alerts.append(make(
            AlertSeverity.CRITICAL,
            AlertCategory.MEMORY,
            "Memory Alarm Active",
            f"Memory alarm is active on node {node.name}",
            current="alarm_active",
            recommended="Free memory or increase memory limit",
        ))

    if node.disk_free_alarm:
        alerts.append(make(
            AlertSeverity.CRITICAL,
            AlertCategory.DISK,
            "Disk Space Alarm",
            f"Disk space alarm is active on node {node.name}",
            current="alarm_active",
            recommended="Free disk space or increase disk limit",
        ))

    if node.partitions:
        alerts.append(make(
            AlertSeverity.CRITICAL,
            AlertCategory.NODE,
            "Network Partition Detected",
            f"Node {node.name} has network partitions",
            current=", ".join(node.partitions),
            recommended="Resolve network connectivity issues immediately",
            affected=(node.name, *node.partitions),
        ))

    if node.mem_limit > 0:
        percent = node.mem_used / node.mem_limit * 100
        hit = _tier(percent, thresholds.memory)
        if hit is not None:
            severity, threshold = hit
            critical = severity is AlertSeverity.CRITICAL
            alerts.append(make(
                severity,
                AlertCategory.MEMORY,
                "Critical Memory Usage" if critical else "High Memory Usage",
                f"Node {node.name} memory usage is {'critically high' if critical else 'high'}",
                current=round_half_up(percent),
                threshold=threshold,
                recommended=(
                    "Consider scaling or optimizing memory usage"
                    if critical
                    else "Monitor memory usage and consider optimization"
                ),
            ))

    if node.disk_free_limit > 0 and node.disk_free > 0:
        percent = (
            node.disk_free
            / (node.disk_free + (node.disk_free_limit - node.disk_free))
            * 100
        )
        hit = _inverted_tier(percent, thresholds.disk)
        if hit is not None:
            severity, threshold = hit
            critical = severity is AlertSeverity.CRITICAL
            alerts.append(make(
                severity,
                AlertCategory.DISK,
                "Critical Disk Space" if critical else "Low Disk Space",
                (
                    f"Node {node.name} has critically low disk space"
                    if critical
                    else f"Node {node.name} has low disk space"
                ),
                current=round_half_up(percent),
                threshold=threshold,
                recommended=(
                    "Free disk space immediately"
                    if critical
                    else "Monitor disk usage and consider cleanup"
                ),
            ))

    for rule in _NODE_USAGE_RULES:
        total = getattr(node, rule.total)
        if total <= 0:
            continue
        percent = getattr(node, rule.used) / total * 100
        hit = _tier(percent, getattr(thresholds, rule.thresholds))
        if hit is None:
            continue
        severity, threshold = hit
        critical = severity is AlertSeverity.CRITICAL
        alerts.append(make(
            severity,
            rule.category,
            f"{'Critical' if critical else 'High'} {rule.label}",
            f"Node {node.name} {rule.noun} is {'critically high' if critical else 'high'}",
            current=round_half_up(percent),
            threshold=threshold,
            recommended=rule.recommended_critical if critical else rule.recommended_warning,
        ))

    if node.run_queue is not None:
        hit = _tier(node.run_queue, thresholds.run_queue)
        if hit is not None:
            severity, threshold = hit
            critical = severity is AlertSeverity.CRITICAL
            alerts.append(make(
                severity,
                AlertCategory.PERFORMANCE,
                "Critical Run Queue Length" if critical else "High Run Queue Length",
                (
                    f"Node {node.name} has critically high run queue length"
                    if critical
                    else f"Node {node.name} has high run queue length"
                ),
                current=node.run_queue,
                threshold=threshold,
                recommended=(
                    "System is overloaded, consider scaling or load balancing"
                    if critical
                    else "Monitor system load and performance"
                ),
            ))

    return alerts


def evaluate_queue(
    queue: QueueRecord,
    server_id: str,
    server_name: str,
    thresholds: AlertThresholds,
    now: datetime | None = None,
) -> list[AlertCandidate]:
    """Evaluate one queue.

    Every queue alert carries the queue's vhost so that same-named queues in
    different vhosts are tracked separately.

    Args:
        queue: Queue record from the management API.
        server_id: Server the queue belongs to.
        server_name: Display name of the server.
        thresholds: Threshold set for this pass.
        now: Alert timestamp and reference for idle time (defaults to the
            current UTC time).

    Returns:
        Alert candidates, possibly empty.
    """
    now = now or datetime.now(timezone.utc)
    make = _AlertFactory(
        server_id,
        server_name,
        AlertSource(SourceType.QUEUE, queue.name),
        now,
        vhost=queue.vhost or "/",
    )
    alerts: list[AlertCandidate] = []
    messages = queue.messages
    consumers = queue.consumers

    hit = _tier(messages, thresholds.queue_messages)
    if hit is not None:
        severity, threshold = hit
        critical = severity is AlertSeverity.CRITICAL
        alerts.append(make(
            severity,
            AlertCategory.QUEUE,
            "Critical Queue Backlog" if critical else "High Queue Backlog",
            (
                f"Queue {queue.name} has critically high message count"
                if critical
                else f"Queue {queue.name} has high message count"
            ),
            current=messages,
            threshold=threshold,
            recommended=(
                "Scale consumers or investigate processing issues"
                if critical
                else "Monitor consumer performance"
            ),
        ))

    if messages > 0 and consumers == 0:
        alerts.append(make(
            AlertSeverity.WARNING,
            AlertCategory.QUEUE,
            "Queue Without Consumers",
            f"Queue {queue.name} has messages but no consumers",
            current=f"{messages} messages, 0 consumers",
            recommended="Start consumers or check consumer connectivity",
        ))

    hit = _tier(queue.messages_unacknowledged, thresholds.unacked_messages)
    if hit is not None:
        severity, threshold = hit
        critical = severity is AlertSeverity.CRITICAL
        alerts.append(make(
            severity,
            AlertCategory.QUEUE,
            "Critical Unacknowledged Messages" if critical else "High Unacknowledged Messages",
            (
                f"Queue {queue.name} has critically high number of unacknowledged messages"
                if critical
                else f"Queue {queue.name} has high number of unacknowledged messages"
            ),
            current=queue.messages_unacknowledged,
            threshold=threshold,
            recommended=(
                "Check consumer acknowledgment patterns and restart consumers if necessary"
                if critical
                else "Monitor consumer acknowledgment patterns"
            ),
        ))

    if consumers > 0:
        if queue.publish_rate > 0:
            utilization = queue.deliver_rate / queue.publish_rate * 100
        else:
            utilization = 100.0
        if utilization < thresholds.consumer_utilization.warning:
            alerts.append(make(
                AlertSeverity.WARNING,
                AlertCategory.PERFORMANCE,
                "Low Consumer Utilization",
                f"Queue {queue.name} has low consumer utilization",
                current=round_half_up(utilization),
                threshold=thresholds.consumer_utilization.warning,
                recommended="Check consumer performance or reduce consumer count",
            ))

    if (
        queue.messages_ready > STALE_READY_MESSAGES
        and consumers > 0
        and queue.deliver_rate == 0
    ):
        alerts.append(make(
            AlertSeverity.WARNING,
            AlertCategory.QUEUE,
            "Stale Messages Detected",
            f"Queue {queue.name} has ready messages but no delivery activity",
            current=f"{queue.messages_ready} ready messages, 0 delivery rate",
            recommended="Check consumer health and queue bindings",
        ))

    if queue.publish_rate > 0 and queue.deliver_rate > 0:
        ratio = (queue.publish_rate - queue.deliver_rate) / queue.publish_rate
        if ratio > ACCUMULATION_RATIO and messages > ACCUMULATION_MIN_MESSAGES:
            alerts.append(make(
                AlertSeverity.WARNING,
                AlertCategory.PERFORMANCE,
                "Message Accumulation",
                f"Queue {queue.name} is accumulating messages faster than processing",
                current=(
                    f"Publish: {queue.publish_rate:.2f}/s, "
                    f"Deliver: {queue.deliver_rate:.2f}/s"
                ),
                recommended="Scale consumers or optimize message processing",
            ))

    if messages == 0 and consumers == 0 and queue.idle_since is not None:
        hours_idle = (now - queue.idle_since).total_seconds() / 3600
        if hours_idle > INACTIVE_QUEUE_HOURS:
            alerts.append(make(
                AlertSeverity.INFO,
                AlertCategory.QUEUE,
                "Inactive Queue",
                f"Queue {queue.name} has been inactive for over {INACTIVE_QUEUE_HOURS} hours",
                current=f"{round_half_up(hours_idle)} hours since last activity",
                recommended="Consider removing queue if no longer needed",
            ))

    return alerts


def evaluate_snapshot(
    nodes: list[NodeRecord],
    queues: list[QueueRecord],
    server_id: str,
    server_name: str,
    thresholds: AlertThresholds,
    now: datetime | None = None,
) -> list[AlertCandidate]:
    """Run every evaluator over a snapshot, nodes first."""
    now = now or datetime.now(timezone.utc)
    alerts: list[AlertCandidate] = []
    for node in nodes:
        alerts.extend(evaluate_node(node, server_id, server_name, thresholds, now))
    for queue in queues:
        alerts.extend(evaluate_queue(queue, server_id, server_name, thresholds, now))
    return alerts
