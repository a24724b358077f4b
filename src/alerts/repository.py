"""Repositories for seen alert identities and resolved alert history.

Follows the same asyncpg pattern as the other repositories: idempotent
DDL via ``create_table()``, ``$n`` parameters, ``ON CONFLICT`` upserts.
"""

import json
import logging
from datetime import datetime
from typing import Any

from src.alerts.fingerprint import vhost_marker
from src.alerts.schemas import (
    AlertCategory,
    AlertSeverity,
    ResolvedAlert,
    SeenAlert,
    SourceType,
)
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS seen_alerts (
    id            BIGSERIAL PRIMARY KEY,
    workspace_id  TEXT NOT NULL,
    server_id     TEXT NOT NULL,
    fingerprint   TEXT NOT NULL,
    severity      TEXT NOT NULL,
    category      TEXT NOT NULL,
    source_type   TEXT NOT NULL,
    source_name   TEXT NOT NULL,
    first_seen_at TIMESTAMPTZ NOT NULL,
    last_seen_at  TIMESTAMPTZ NOT NULL,
    resolved_at   TIMESTAMPTZ,
    notified_at   TIMESTAMPTZ,
    UNIQUE (workspace_id, fingerprint)
);

CREATE INDEX IF NOT EXISTS idx_seen_alerts_server
    ON seen_alerts(workspace_id, server_id);
CREATE INDEX IF NOT EXISTS idx_seen_alerts_unresolved
    ON seen_alerts(workspace_id, server_id) WHERE resolved_at IS NULL;

CREATE TABLE IF NOT EXISTS resolved_alerts (
    id            TEXT PRIMARY KEY,
    workspace_id  TEXT NOT NULL,
    server_id     TEXT NOT NULL,
    server_name   TEXT NOT NULL,
    fingerprint   TEXT NOT NULL,
    severity      TEXT NOT NULL,
    category      TEXT NOT NULL,
    source_type   TEXT NOT NULL,
    source_name   TEXT NOT NULL,
    title         TEXT NOT NULL,
    description   TEXT NOT NULL,
    details       JSONB NOT NULL DEFAULT '{}',
    first_seen_at TIMESTAMPTZ NOT NULL,
    resolved_at   TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_resolved_alerts_server
    ON resolved_alerts(workspace_id, server_id, resolved_at DESC);
"""

_UPSERT_SEEN_SQL = """
INSERT INTO seen_alerts (
    workspace_id, server_id, fingerprint, severity, category,
    source_type, source_name, first_seen_at, last_seen_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
ON CONFLICT (workspace_id, fingerprint) DO UPDATE SET
    severity = EXCLUDED.severity,
    last_seen_at = EXCLUDED.last_seen_at,
    resolved_at = NULL
"""


def _row_to_seen(row: Any) -> SeenAlert:
    """Convert an asyncpg Record to a SeenAlert."""
    return SeenAlert(
        workspace_id=row["workspace_id"],
        server_id=row["server_id"],
        fingerprint=row["fingerprint"],
        severity=AlertSeverity(row["severity"]),
        category=AlertCategory(row["category"]),
        source_type=SourceType(row["source_type"]),
        source_name=row["source_name"],
        first_seen_at=row["first_seen_at"],
        last_seen_at=row["last_seen_at"],
        resolved_at=row["resolved_at"],
        notified_at=row["notified_at"],
    )


def _row_to_resolved(row: Any) -> ResolvedAlert:
    """Convert an asyncpg Record to a ResolvedAlert."""
    details = row.get("details", {})
    if isinstance(details, str):
        details = json.loads(details)

    return ResolvedAlert(
        id=row["id"],
        workspace_id=row["workspace_id"],
        server_id=row["server_id"],
        server_name=row["server_name"],
        fingerprint=row["fingerprint"],
        severity=AlertSeverity(row["severity"]),
        category=AlertCategory(row["category"]),
        source_type=SourceType(row["source_type"]),
        source_name=row["source_name"],
        title=row["title"],
        description=row["description"],
        details=details or {},
        first_seen_at=row["first_seen_at"],
        resolved_at=row["resolved_at"],
    )


class SeenAlertRepository:
    """Persistence for the seen_alerts and resolved_alerts tables."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create both tables and their indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("seen_alerts and resolved_alerts tables ensured")

    async def list_for_server(
        self,
        workspace_id: str,
        server_id: str,
    ) -> list[SeenAlert]:
        """All seen alert rows for one server, resolved or not."""
        rows = await self._db.fetch(
            """
            SELECT * FROM seen_alerts
            WHERE workspace_id = $1 AND server_id = $2
            """,
            workspace_id,
            server_id,
        )
        return [_row_to_seen(row) for row in rows]

    async def upsert_seen(
        self,
        workspace_id: str,
        server_id: str,
        fingerprint: str,
        severity: AlertSeverity,
        category: AlertCategory,
        source_type: SourceType,
        source_name: str,
        now: datetime,
    ) -> None:
        """Record a sighting of a fingerprint.

        A new fingerprint gets ``first_seen_at = last_seen_at = now``. An
        existing one has its severity and ``last_seen_at`` refreshed and is
        reactivated if it had been resolved; ``first_seen_at`` and
        ``notified_at`` are left alone.
        """
        await self._db.execute(
            _UPSERT_SEEN_SQL,
            workspace_id,
            server_id,
            fingerprint,
            severity.value,
            category.value,
            source_type.value,
            source_name,
            now,
        )

    async def list_unresolved(
        self,
        workspace_id: str,
        server_id: str,
        vhost: str | None = None,
    ) -> list[SeenAlert]:
        """Unresolved rows eligible for auto-resolution.

        With a vhost, only that vhost's queue rows are returned, together
        with every node and cluster row. Queue rows of other vhosts are
        outside the pass that produced the snapshot and stay untouched.
        """
        if vhost is None:
            rows = await self._db.fetch(
                """
                SELECT * FROM seen_alerts
                WHERE workspace_id = $1 AND server_id = $2
                  AND resolved_at IS NULL
                """,
                workspace_id,
                server_id,
            )
        else:
            rows = await self._db.fetch(
                """
                SELECT * FROM seen_alerts
                WHERE workspace_id = $1 AND server_id = $2
                  AND resolved_at IS NULL
                  AND (
                      (source_type = 'queue' AND strpos(fingerprint, $3) > 0)
                      OR source_type <> 'queue'
                  )
                """,
                workspace_id,
                server_id,
                vhost_marker(vhost),
            )
        return [_row_to_seen(row) for row in rows]

    async def mark_resolved(
        self,
        workspace_id: str,
        fingerprints: list[str],
        now: datetime,
    ) -> int:
        """Set ``resolved_at`` on still-unresolved rows.

        Returns:
            Number of rows updated.
        """
        if not fingerprints:
            return 0
        result = await self._db.execute(
            """
            UPDATE seen_alerts SET resolved_at = $3
            WHERE workspace_id = $1 AND fingerprint = ANY($2::text[])
              AND resolved_at IS NULL
            """,
            workspace_id,
            fingerprints,
            now,
        )
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(result.split()[-1]) if result else 0

    async def mark_notified(
        self,
        workspace_id: str,
        fingerprints: list[str],
        now: datetime,
    ) -> None:
        if not fingerprints:
            return
        await self._db.execute(
            """
            UPDATE seen_alerts SET notified_at = $3
            WHERE workspace_id = $1 AND fingerprint = ANY($2::text[])
            """,
            workspace_id,
            fingerprints,
            now,
        )

    async def create_resolved(self, resolved: ResolvedAlert) -> None:
        """Insert a resolved alert history row."""
        await self._db.execute(
            """
            INSERT INTO resolved_alerts (
                id, workspace_id, server_id, server_name, fingerprint,
                severity, category, source_type, source_name,
                title, description, details, first_seen_at, resolved_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
            """,
            resolved.id,
            resolved.workspace_id,
            resolved.server_id,
            resolved.server_name,
            resolved.fingerprint,
            resolved.severity.value,
            resolved.category.value,
            resolved.source_type.value,
            resolved.source_name,
            resolved.title,
            resolved.description,
            json.dumps(resolved.details),
            resolved.first_seen_at,
            resolved.resolved_at,
        )

    async def get_resolved(
        self,
        workspace_id: str,
        server_id: str,
        *,
        severity: str | None = None,
        category: str | None = None,
        vhost: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ResolvedAlert], int]:
        """Resolved alert history with optional filtering.

        Args:
            workspace_id: Owning workspace.
            server_id: Server whose history to read.
            severity: Filter by severity level.
            category: Filter by category.
            vhost: Only queue alerts from this vhost.
            limit: Maximum rows to return.
            offset: Offset for pagination.

        Returns:
            Tuple of (rows ordered by resolved_at descending, total matching).
        """
        conditions: list[str] = ["workspace_id = $1", "server_id = $2"]
        params: list[Any] = [workspace_id, server_id]
        param_idx = 3

        if severity is not None:
            conditions.append(f"severity = ${param_idx}")
            params.append(severity)
            param_idx += 1

        if category is not None:
            conditions.append(f"category = ${param_idx}")
            params.append(category)
            param_idx += 1

        if vhost is not None:
            conditions.append(
                f"source_type = 'queue' AND strpos(fingerprint, ${param_idx}) > 0"
            )
            params.append(vhost_marker(vhost))
            param_idx += 1

        where_clause = "WHERE " + " AND ".join(conditions)

        total = await self._db.fetchval(
            f"SELECT COUNT(*) FROM resolved_alerts {where_clause}",
            *params,
        )

        sql = f"""
            SELECT * FROM resolved_alerts
            {where_clause}
            ORDER BY resolved_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        rows = await self._db.fetch(sql, *params, limit, offset)
        return [_row_to_resolved(row) for row in rows], total or 0
