"""Tests for the management API client and snapshot record parsing."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from src.rabbitmq.client import ManagementClient
from src.rabbitmq.errors import MetricSourceError, ServerNotFoundError
from src.rabbitmq.repository import ServerRepository
from src.rabbitmq.schemas import NodeRecord, QueueRecord, RabbitMQServer, parse_idle_since

BASE_URL = "http://rabbit.example.com:15672/api"


@pytest.fixture
def client():
    return ManagementClient(BASE_URL, "monitor", "secret")


class TestParseIdleSince:
    def test_legacy_format_is_utc(self):
        assert parse_idle_since("2026-03-08 10:00:00") == datetime(
            2026, 3, 8, 10, 0, tzinfo=timezone.utc,
        )

    def test_iso_with_z(self):
        parsed = parse_idle_since("2026-03-08T10:00:00Z")
        assert parsed.tzinfo is not None
        assert parsed.hour == 10

    def test_missing_or_garbage(self):
        assert parse_idle_since(None) is None
        assert parse_idle_since("") is None
        assert parse_idle_since("yesterday") is None


class TestRecords:
    def test_node_from_sparse_payload(self):
        node = NodeRecord.from_api({"name": "rabbit@n1", "running": True, "mem_used": None})

        assert node.mem_used == 0
        assert node.run_queue is None
        assert node.partitions == []

    def test_queue_rates(self):
        queue = QueueRecord.from_api({
            "name": "orders",
            "vhost": "billing",
            "messages": 12,
            "consumers": 1,
            "message_stats": {
                "publish_details": {"rate": 4.5},
                "deliver_get_details": {"rate": 0.5},
            },
        })

        assert queue.vhost == "billing"
        assert queue.publish_rate == 4.5
        assert queue.deliver_rate == 0.5

    def test_queue_without_stats(self):
        queue = QueueRecord.from_api({"name": "fresh"})

        assert queue.vhost == "/"
        assert queue.publish_rate == 0.0
        assert queue.idle_since is None

    def test_server_base_url(self, server):
        assert server.base_url == "http://rabbit.example.com:15672/api"
        server.use_https = True
        assert server.base_url.startswith("https://")


class TestManagementClient:
    @pytest.mark.asyncio
    @respx.mock
    async def test_list_nodes(self, client):
        route = respx.get(f"{BASE_URL}/nodes").mock(return_value=httpx.Response(
            200, json=[{"name": "rabbit@n1", "running": True, "mem_used": 10, "mem_limit": 100}],
        ))

        nodes = await client.list_nodes()

        assert [n.name for n in nodes] == ["rabbit@n1"]
        assert route.calls.last.request.headers["authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_queues_quotes_vhost(self, client):
        route = respx.get(f"{BASE_URL}/queues/%2F").mock(
            return_value=httpx.Response(200, json=[{"name": "orders", "vhost": "/"}]),
        )

        queues = await client.list_queues("/")

        assert route.called
        assert queues[0].vhost == "/"

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_all_queues(self, client):
        respx.get(f"{BASE_URL}/queues").mock(return_value=httpx.Response(200, json=[]))
        assert await client.list_queues() == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_status(self, client):
        respx.get(f"{BASE_URL}/nodes").mock(return_value=httpx.Response(401))

        with pytest.raises(MetricSourceError, match="HTTP 401"):
            await client.list_nodes()

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, client):
        respx.get(f"{BASE_URL}/overview").mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(MetricSourceError, match="Timed out"):
            await client.get_overview()

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self, client):
        respx.get(f"{BASE_URL}/nodes").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(MetricSourceError):
            await client.list_nodes()

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_payload(self, client):
        respx.get(f"{BASE_URL}/nodes").mock(return_value=httpx.Response(200, json={"error": "?"}))
        assert await client.list_nodes() == []

    def test_for_server(self, server):
        client = ManagementClient.for_server(server)
        assert client._base_url == server.base_url


class TestServerRepository:
    @pytest.mark.asyncio
    async def test_get_scoped_to_workspace(self, server):
        db = AsyncMock()
        db.fetchrow.return_value = {
            "id": server.id,
            "workspace_id": server.workspace_id,
            "name": server.name,
            "host": server.host,
            "port": server.port,
            "username": server.username,
            "password": server.password,
            "use_https": False,
        }

        found = await ServerRepository(db).get("srv-1", "ws-1")

        assert found == server
        assert db.fetchrow.call_args[0][1:] == ("srv-1", "ws-1")

    @pytest.mark.asyncio
    async def test_missing_server_raises(self):
        db = AsyncMock()
        db.fetchrow.return_value = None

        with pytest.raises(ServerNotFoundError, match="Server srv-9 not found in workspace ws-1"):
            await ServerRepository(db).get("srv-9", "ws-1")

    @pytest.mark.asyncio
    async def test_upsert(self):
        db = AsyncMock()
        server = RabbitMQServer(id="srv-2", workspace_id="ws-1", name="Staging", host="h")

        await ServerRepository(db).upsert(server)

        assert db.execute.call_args[0][1:] == (
            "srv-2", "ws-1", "Staging", "h", 15672, "guest", "guest", False,
        )
