"""RabbitMQ management API access.

Components:
- NodeRecord / QueueRecord: Snapshot records parsed from the management API
- RabbitMQServer: Connection details for a monitored server
- MetricSource / ManagementClient: Read-only node, queue and overview access
- ServerRepository: Lookups for the rabbitmq_servers table
- RabbitMQConfig: Timeouts and TLS settings
- ServerNotFoundError / MetricSourceError: Lookup and fetch failures
"""

from src.rabbitmq.client import ManagementClient, MetricSource
from src.rabbitmq.config import RabbitMQConfig
from src.rabbitmq.errors import MetricSourceError, RabbitMQError, ServerNotFoundError
from src.rabbitmq.repository import ServerRepository
from src.rabbitmq.schemas import NodeRecord, QueueRecord, RabbitMQServer

__all__ = [
    "ManagementClient",
    "MetricSource",
    "MetricSourceError",
    "NodeRecord",
    "QueueRecord",
    "RabbitMQConfig",
    "RabbitMQError",
    "RabbitMQServer",
    "ServerNotFoundError",
    "ServerRepository",
]
