"""Database repository for monitored RabbitMQ servers."""

import logging

from src.rabbitmq.errors import ServerNotFoundError
from src.rabbitmq.schemas import RabbitMQServer
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS rabbitmq_servers (
    id           TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    name         TEXT NOT NULL,
    host         TEXT NOT NULL,
    port         INTEGER NOT NULL DEFAULT 15672,
    username     TEXT NOT NULL,
    password     TEXT NOT NULL,
    use_https    BOOLEAN NOT NULL DEFAULT FALSE,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_rabbitmq_servers_workspace
    ON rabbitmq_servers(workspace_id);
"""

_UPSERT_SQL = """
INSERT INTO rabbitmq_servers (id, workspace_id, name, host, port, username, password, use_https)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
ON CONFLICT (id) DO UPDATE SET
    name = EXCLUDED.name,
    host = EXCLUDED.host,
    port = EXCLUDED.port,
    username = EXCLUDED.username,
    password = EXCLUDED.password,
    use_https = EXCLUDED.use_https,
    updated_at = NOW()
"""


def _record_to_server(record) -> RabbitMQServer:
    """Convert an asyncpg Record to a RabbitMQServer."""
    return RabbitMQServer(
        id=record["id"],
        workspace_id=record["workspace_id"],
        name=record["name"],
        host=record["host"],
        port=record["port"],
        username=record["username"],
        password=record["password"],
        use_https=record["use_https"],
    )


class ServerRepository:
    """Lookups for the rabbitmq_servers table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the rabbitmq_servers table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("rabbitmq_servers table ensured")

    async def upsert(self, server: RabbitMQServer) -> None:
        await self._db.execute(
            _UPSERT_SQL,
            server.id,
            server.workspace_id,
            server.name,
            server.host,
            server.port,
            server.username,
            server.password,
            server.use_https,
        )

    async def get(self, server_id: str, workspace_id: str) -> RabbitMQServer:
        """Get a server scoped to its workspace.

        Raises:
            ServerNotFoundError: No such server in that workspace.
        """
        row = await self._db.fetchrow(
            "SELECT * FROM rabbitmq_servers WHERE id = $1 AND workspace_id = $2",
            server_id,
            workspace_id,
        )
        if row is None:
            raise ServerNotFoundError(server_id, workspace_id)
        return _record_to_server(row)

    async def list_all(self) -> list[RabbitMQServer]:
        """Every monitored server, used by the periodic scheduler."""
        rows = await self._db.fetch(
            "SELECT * FROM rabbitmq_servers ORDER BY workspace_id, name"
        )
        return [_record_to_server(row) for row in rows]
