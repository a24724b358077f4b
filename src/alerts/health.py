"""Coarse health rollups for one RabbitMQ server.

Two views, both cheaper to read than the full alert list:

- ``health_check``: five named checks (connectivity, nodes, memory, disk,
  queues) and an overall verdict.
- ``cluster_summary``: a cluster verdict, issue counts and the first few
  human-readable issues.

Neither raises on metric-source failures; a failed fetch becomes a
critical check or issue.
"""

import logging

from src.alerts.evaluators import round_half_up
from src.alerts.schemas import (
    AlertSummary,
    CheckResult,
    ClusterHealthSummary,
    HealthCheck,
    HealthStatus,
)
from src.rabbitmq.client import MetricSource
from src.rabbitmq.schemas import NodeRecord, QueueRecord
from src.thresholds.schemas import AlertThresholds

logger = logging.getLogger(__name__)

MAX_ISSUES = 5


def _memory_percent(node: NodeRecord) -> float | None:
    if node.mem_limit <= 0:
        return None
    return node.mem_used / node.mem_limit * 100


def _check_nodes(
    check: HealthCheck,
    nodes: list[NodeRecord],
    thresholds: AlertThresholds,
) -> None:
    running = sum(1 for node in nodes if node.running)
    total = len(nodes)

    if running == total:
        nodes_check = CheckResult(HealthStatus.HEALTHY, f"All {total} nodes are running")
    elif running > 0:
        nodes_check = CheckResult(HealthStatus.WARNING, f"{running}/{total} nodes are running")
    else:
        nodes_check = CheckResult(HealthStatus.CRITICAL, "No nodes are running")
    nodes_check.details = {
        "running": running,
        "total": total,
        "nodes": [
            {
                "name": node.name,
                "running": node.running,
                "mem_alarm": node.mem_alarm,
                "disk_free_alarm": node.disk_free_alarm,
            }
            for node in nodes
        ],
    }
    check.checks["nodes"] = nodes_check

    memory_alarms = sum(1 for node in nodes if node.mem_alarm)
    if memory_alarms:
        memory_check = CheckResult(
            HealthStatus.CRITICAL, f"{memory_alarms} nodes have memory alarms",
        )
    else:
        high_memory = 0
        for node in nodes:
            percent = _memory_percent(node)
            if percent is not None and percent >= thresholds.memory.warning:
                high_memory += 1
        if high_memory:
            memory_check = CheckResult(
                HealthStatus.WARNING, f"{high_memory} nodes have high memory usage",
            )
        else:
            memory_check = CheckResult(
                HealthStatus.HEALTHY, "Memory usage is normal across all nodes",
            )
    check.checks["memory"] = memory_check

    disk_alarms = sum(1 for node in nodes if node.disk_free_alarm)
    if disk_alarms:
        disk_check = CheckResult(
            HealthStatus.CRITICAL, f"{disk_alarms} nodes have disk space alarms",
        )
    else:
        disk_check = CheckResult(
            HealthStatus.HEALTHY, "Disk space is sufficient across all nodes",
        )
    check.checks["disk"] = disk_check

    for name in ("nodes", "memory", "disk"):
        check.degrade(check.checks[name].status)


def _check_queues(
    check: HealthCheck,
    queues: list[QueueRecord],
    thresholds: AlertThresholds,
) -> None:
    critical = 0
    warning = 0
    without_consumers = 0

    # Backlog and unacked tiers count separately, so one queue can add two
    for queue in queues:
        if queue.messages >= thresholds.queue_messages.critical:
            critical += 1
        elif queue.messages >= thresholds.queue_messages.warning:
            warning += 1

        if queue.messages_unacknowledged >= thresholds.unacked_messages.critical:
            critical += 1
        elif queue.messages_unacknowledged >= thresholds.unacked_messages.warning:
            warning += 1

        if queue.messages > 0 and queue.consumers == 0:
            without_consumers += 1

    if critical:
        result = CheckResult(HealthStatus.CRITICAL, f"{critical} queues have critical issues")
    elif warning or without_consumers:
        parts = []
        if warning:
            parts.append(f"{warning} queues with high message count")
        if without_consumers:
            parts.append(f"{without_consumers} queues without consumers")
        result = CheckResult(HealthStatus.WARNING, ", ".join(parts))
    else:
        result = CheckResult(HealthStatus.HEALTHY, f"All {len(queues)} queues are healthy")

    check.checks["queues"] = result
    check.degrade(result.status)


async def health_check(
    source: MetricSource,
    thresholds: AlertThresholds,
) -> HealthCheck:
    """Run the five health checks against one server.

    Args:
        source: Metric source for the server.
        thresholds: The workspace's threshold set.

    Returns:
        HealthCheck whose overall verdict is the worst individual check,
        with a warning check counting as degraded.
    """
    check = HealthCheck()

    try:
        await source.get_overview()
        check.checks["connectivity"] = CheckResult(
            HealthStatus.HEALTHY, "Successfully connected to RabbitMQ",
        )
    except Exception as e:
        check.checks["connectivity"] = CheckResult(
            HealthStatus.CRITICAL, f"Failed to connect: {e}",
        )
        check.degrade(HealthStatus.CRITICAL)

    try:
        nodes = await source.list_nodes()
    except Exception as e:
        check.checks["nodes"] = CheckResult(
            HealthStatus.CRITICAL, f"Failed to check nodes: {e}",
        )
        check.degrade(HealthStatus.CRITICAL)
    else:
        _check_nodes(check, nodes, thresholds)

    try:
        queues = await source.list_queues()
    except Exception as e:
        check.checks["queues"] = CheckResult(
            HealthStatus.CRITICAL, f"Failed to check queues: {e}",
        )
        check.degrade(HealthStatus.CRITICAL)
    else:
        _check_queues(check, queues, thresholds)

    return check


async def cluster_summary(
    source: MetricSource,
    thresholds: AlertThresholds,
) -> ClusterHealthSummary:
    """Summarize cluster state as a verdict and a short issue list.

    A node fetch failure is itself a critical issue; a queue fetch failure
    is only logged.
    """
    health = HealthStatus.HEALTHY
    critical = 0
    warning = 0
    issues: list[str] = []

    def add(status: HealthStatus, issue: str) -> None:
        nonlocal health, critical, warning
        issues.append(issue)
        if status is HealthStatus.CRITICAL:
            critical += 1
            health = HealthStatus.CRITICAL
        else:
            warning += 1
            if health is HealthStatus.HEALTHY:
                health = HealthStatus.DEGRADED

    try:
        nodes = await source.list_nodes()
    except Exception as e:
        logger.warning("Failed to get nodes for cluster health summary: %s", e)
        add(HealthStatus.CRITICAL, "Failed to connect to cluster nodes")
        nodes = []

    for node in nodes:
        if not node.running:
            add(HealthStatus.CRITICAL, f"Node {node.name} is down")
        if node.mem_alarm:
            add(HealthStatus.CRITICAL, f"Memory alarm on {node.name}")
        if node.disk_free_alarm:
            add(HealthStatus.CRITICAL, f"Disk alarm on {node.name}")
        if node.partitions:
            add(HealthStatus.CRITICAL, f"Network partition detected on {node.name}")

        percent = _memory_percent(node)
        if percent is None:
            continue
        if percent >= thresholds.memory.critical:
            add(
                HealthStatus.CRITICAL,
                f"Critical memory usage on {node.name} ({round_half_up(percent)}%)",
            )
        elif percent >= thresholds.memory.warning:
            add(
                HealthStatus.WARNING,
                f"High memory usage on {node.name} ({round_half_up(percent)}%)",
            )

    try:
        queues = await source.list_queues()
    except Exception as e:
        logger.warning("Failed to get queues for cluster health summary: %s", e)
        queues = []

    for queue in queues:
        if queue.messages >= thresholds.queue_messages.critical:
            add(
                HealthStatus.CRITICAL,
                f"Critical queue backlog: {queue.name} ({queue.messages} messages)",
            )
        elif queue.messages >= thresholds.queue_messages.warning:
            add(
                HealthStatus.WARNING,
                f"High queue backlog: {queue.name} ({queue.messages} messages)",
            )

    return ClusterHealthSummary(
        cluster_health=health,
        summary=AlertSummary(critical=critical, warning=warning, info=0),
        issues=issues[:MAX_ISSUES],
    )
