"""Database repository for workspace notification settings and integrations."""

import logging

from src.storage.database import Database
from src.workspaces.schemas import (
    ALL_SEVERITIES,
    NotificationTargets,
    SlackConfig,
    WebhookConfig,
    Workspace,
)

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS workspaces (
    id                          TEXT PRIMARY KEY,
    name                        TEXT NOT NULL,
    contact_email               TEXT,
    email_notifications_enabled BOOLEAN NOT NULL DEFAULT TRUE,
    notification_severities     TEXT[],
    notification_server_ids     TEXT[],
    plan                        TEXT NOT NULL DEFAULT 'FREE',
    created_at                  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS webhooks (
    id           TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    url          TEXT NOT NULL,
    secret       TEXT,
    version      TEXT NOT NULL DEFAULT 'v1',
    enabled      BOOLEAN NOT NULL DEFAULT TRUE,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS slack_configs (
    id           TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    webhook_url  TEXT NOT NULL,
    enabled      BOOLEAN NOT NULL DEFAULT TRUE,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_webhooks_workspace_enabled
    ON webhooks(workspace_id, created_at) WHERE enabled = TRUE;
CREATE INDEX IF NOT EXISTS idx_slack_configs_workspace_enabled
    ON slack_configs(workspace_id, created_at) WHERE enabled = TRUE;
"""


def _record_to_workspace(record) -> Workspace:
    """Convert an asyncpg Record to a Workspace.

    A NULL severity list means the workspace never chose, so every
    severity is selected.
    """
    severities = record["notification_severities"]
    return Workspace(
        id=record["id"],
        name=record["name"],
        contact_email=record["contact_email"],
        email_notifications_enabled=record["email_notifications_enabled"],
        notification_severities=(
            frozenset(severities) if severities is not None else ALL_SEVERITIES
        ),
        notification_server_ids=(
            list(record["notification_server_ids"])
            if record["notification_server_ids"] is not None
            else None
        ),
        plan=record["plan"] or "FREE",
    )


class WorkspaceRepository:
    """Read access to workspaces, webhooks and slack_configs."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create workspace, webhook and Slack tables (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Workspace tables ensured")

    async def get(self, workspace_id: str) -> Workspace | None:
        row = await self._db.fetchrow(
            "SELECT * FROM workspaces WHERE id = $1", workspace_id,
        )
        if row is None:
            return None
        return _record_to_workspace(row)

    async def get_plan(self, workspace_id: str) -> str | None:
        """Plan tier of the workspace, or None for an unknown workspace."""
        return await self._db.fetchval(
            "SELECT plan FROM workspaces WHERE id = $1", workspace_id,
        )

    async def first_enabled_webhook(self, workspace_id: str) -> WebhookConfig | None:
        row = await self._db.fetchrow(
            """
            SELECT id, workspace_id, url, secret, version, enabled
            FROM webhooks
            WHERE workspace_id = $1 AND enabled = TRUE
            ORDER BY created_at
            LIMIT 1
            """,
            workspace_id,
        )
        if row is None:
            return None
        return WebhookConfig(
            id=row["id"],
            workspace_id=row["workspace_id"],
            url=row["url"],
            secret=row["secret"],
            version=row["version"],
            enabled=row["enabled"],
        )

    async def first_enabled_slack(self, workspace_id: str) -> SlackConfig | None:
        row = await self._db.fetchrow(
            """
            SELECT id, workspace_id, webhook_url, enabled
            FROM slack_configs
            WHERE workspace_id = $1 AND enabled = TRUE
            ORDER BY created_at
            LIMIT 1
            """,
            workspace_id,
        )
        if row is None:
            return None
        return SlackConfig(
            id=row["id"],
            workspace_id=row["workspace_id"],
            webhook_url=row["webhook_url"],
            enabled=row["enabled"],
        )

    async def get_notification_targets(self, workspace_id: str) -> NotificationTargets:
        """First enabled webhook and Slack integration.

        Only one target per channel type receives notifications.
        """
        return NotificationTargets(
            webhook=await self.first_enabled_webhook(workspace_id),
            slack=await self.first_enabled_slack(workspace_id),
        )
