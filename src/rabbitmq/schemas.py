"""Snapshot records returned by the RabbitMQ management API.

Only the fields the evaluators read are kept. ``from_api`` tolerates
missing keys because the management API omits statistics on freshly
started nodes and on queues that never saw traffic.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def parse_idle_since(value: Any) -> datetime | None:
    """Parse the management API ``idle_since`` value into an aware datetime.

    RabbitMQ 3.x reports ``"YYYY-MM-DD HH:MM:SS"`` in UTC; newer releases
    report ISO 8601 with an offset or a trailing ``Z``.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _rate(stats: dict[str, Any], key: str) -> float:
    details = stats.get(key) or {}
    return float(details.get("rate") or 0.0)


@dataclass
class NodeRecord:
    """One cluster node as reported by ``GET /api/nodes``."""

    name: str
    running: bool = True
    mem_used: int = 0
    mem_limit: int = 0
    mem_alarm: bool = False
    disk_free: int = 0
    disk_free_limit: int = 0
    disk_free_alarm: bool = False
    fd_used: int = 0
    fd_total: int = 0
    sockets_used: int = 0
    sockets_total: int = 0
    proc_used: int = 0
    proc_total: int = 0
    run_queue: int | None = None
    partitions: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "NodeRecord":
        return cls(
            name=data["name"],
            running=bool(data.get("running", False)),
            mem_used=data.get("mem_used") or 0,
            mem_limit=data.get("mem_limit") or 0,
            mem_alarm=bool(data.get("mem_alarm", False)),
            disk_free=data.get("disk_free") or 0,
            disk_free_limit=data.get("disk_free_limit") or 0,
            disk_free_alarm=bool(data.get("disk_free_alarm", False)),
            fd_used=data.get("fd_used") or 0,
            fd_total=data.get("fd_total") or 0,
            sockets_used=data.get("sockets_used") or 0,
            sockets_total=data.get("sockets_total") or 0,
            proc_used=data.get("proc_used") or 0,
            proc_total=data.get("proc_total") or 0,
            run_queue=data.get("run_queue"),
            partitions=list(data.get("partitions") or []),
        )


@dataclass
class QueueRecord:
    """One queue as reported by ``GET /api/queues[/{vhost}]``."""

    name: str
    vhost: str = "/"
    messages: int = 0
    messages_ready: int = 0
    messages_unacknowledged: int = 0
    consumers: int = 0
    publish_rate: float = 0.0
    deliver_rate: float = 0.0
    idle_since: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "QueueRecord":
        stats = data.get("message_stats") or {}
        return cls(
            name=data["name"],
            vhost=data.get("vhost") or "/",
            messages=data.get("messages") or 0,
            messages_ready=data.get("messages_ready") or 0,
            messages_unacknowledged=data.get("messages_unacknowledged") or 0,
            consumers=data.get("consumers") or 0,
            publish_rate=_rate(stats, "publish_details"),
            deliver_rate=_rate(stats, "deliver_get_details"),
            idle_since=parse_idle_since(data.get("idle_since")),
        )


@dataclass
class RabbitMQServer:
    """Connection details for a monitored RabbitMQ server."""

    id: str
    workspace_id: str
    name: str
    host: str
    port: int = 15672
    username: str = "guest"
    password: str = "guest"
    use_https: bool = False

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.host}:{self.port}/api"
