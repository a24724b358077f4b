"""RabbitMQ management API client.

Read-only access to the three endpoints the alert engine needs. Creates a
new ``httpx.AsyncClient`` per call (short-lived, no pooling) so that one
server's slow API never holds connections shared with another.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from src.rabbitmq.config import RabbitMQConfig
from src.rabbitmq.errors import MetricSourceError
from src.rabbitmq.schemas import NodeRecord, QueueRecord, RabbitMQServer

logger = logging.getLogger(__name__)


class MetricSource(ABC):
    """Source of node and queue snapshots for one server."""

    @abstractmethod
    async def list_nodes(self) -> list[NodeRecord]:
        """Return every cluster node."""

    @abstractmethod
    async def list_queues(self, vhost: str | None = None) -> list[QueueRecord]:
        """Return queues, restricted to ``vhost`` when given."""

    @abstractmethod
    async def get_overview(self) -> dict[str, Any]:
        """Lightweight call used as a connectivity probe."""


class ManagementClient(MetricSource):
    """httpx-based client for ``/api/nodes``, ``/api/queues`` and ``/api/overview``."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        config: RabbitMQConfig | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, password)
        self._config = config or RabbitMQConfig()

    @classmethod
    def for_server(
        cls,
        server: RabbitMQServer,
        config: RabbitMQConfig | None = None,
    ) -> "ManagementClient":
        return cls(server.base_url, server.username, server.password, config)

    async def _get(self, path: str) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._config.request_timeout_seconds,
                verify=self._config.verify_tls,
            ) as client:
                resp = await client.get(url, auth=self._auth)
        except httpx.TimeoutException as e:
            raise MetricSourceError(f"Timed out calling {url}") from e
        except httpx.HTTPError as e:
            raise MetricSourceError(f"Request to {url} failed: {e}") from e

        if not resp.is_success:
            raise MetricSourceError(
                f"{url} returned HTTP {resp.status_code}"
            )
        return resp.json()

    async def list_nodes(self) -> list[NodeRecord]:
        payload = await self._get("/nodes")
        if not isinstance(payload, list):
            logger.warning("Unexpected /nodes payload from %s", self._base_url)
            return []
        return [NodeRecord.from_api(item) for item in payload]

    async def list_queues(self, vhost: str | None = None) -> list[QueueRecord]:
        path = "/queues"
        if vhost:
            path = f"/queues/{quote(vhost, safe='')}"
        payload = await self._get(path)
        if not isinstance(payload, list):
            logger.warning("Unexpected %s payload from %s", path, self._base_url)
            return []
        return [QueueRecord.from_api(item) for item in payload]

    async def get_overview(self) -> dict[str, Any]:
        return await self._get("/overview")
