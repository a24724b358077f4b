"""Exceptions raised when resolving or querying a RabbitMQ server.

Only lookups that cannot identify their target raise to API callers; metric
fetch failures are absorbed by the alert service and turned into empty
results.
"""


class RabbitMQError(Exception):
    """Base class for RabbitMQ access errors."""


class ServerNotFoundError(RabbitMQError):
    """The requested server does not exist in the workspace."""

    def __init__(self, server_id: str, workspace_id: str | None = None) -> None:
        self.server_id = server_id
        self.workspace_id = workspace_id
        scope = f" in workspace {workspace_id}" if workspace_id else ""
        super().__init__(f"Server {server_id} not found{scope}")


class MetricSourceError(RabbitMQError):
    """The management API could not be queried."""
