"""Database repository for per-workspace threshold overrides.

One row per workspace with one nullable column per tier. NULL means "not
overridden" so reads fall back to the defaults tier by tier, and the upsert
only touches the tiers an update specifies.
"""

import logging

from src.storage.database import Database
from src.thresholds.schemas import (
    CATEGORY_UPDATE_MODELS,
    THRESHOLD_CATEGORIES,
    ThresholdsUpdate,
)

logger = logging.getLogger(__name__)


def _tier_columns() -> list[tuple[str, str, str]]:
    """(column, category, tier) for every stored tier."""
    columns = []
    for category in THRESHOLD_CATEGORIES:
        tiers = ("warning",) if category == "consumer_utilization" else ("warning", "critical")
        for tier in tiers:
            columns.append((f"{category}_{tier}", category, tier))
    return columns


_TIER_COLUMNS = _tier_columns()
_COLUMN_NAMES = [column for column, _, _ in _TIER_COLUMNS]

_CREATE_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS workspace_alert_thresholds (\n"
    "    workspace_id TEXT PRIMARY KEY,\n"
    + "".join(f"    {column} DOUBLE PRECISION,\n" for column in _COLUMN_NAMES)
    + "    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),\n"
    "    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()\n"
    ");"
)

_UPSERT_SQL = (
    f"INSERT INTO workspace_alert_thresholds AS t (workspace_id, {', '.join(_COLUMN_NAMES)})\n"
    f"VALUES ({', '.join(f'${i}' for i in range(1, len(_COLUMN_NAMES) + 2))})\n"
    "ON CONFLICT (workspace_id) DO UPDATE SET\n"
    + "".join(
        f"    {column} = COALESCE(EXCLUDED.{column}, t.{column}),\n"
        for column in _COLUMN_NAMES
    )
    + "    updated_at = NOW()"
)


class ThresholdRepository:
    """Read and upsert workspace threshold overrides."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the workspace_alert_thresholds table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("workspace_alert_thresholds table ensured")

    async def get(self, workspace_id: str) -> ThresholdsUpdate | None:
        """Stored overrides for a workspace, or None if it has no row.

        Rows are built without the tier-order check: tiers written by
        separate partial updates are not guaranteed to be ordered.
        """
        row = await self._db.fetchrow(
            "SELECT * FROM workspace_alert_thresholds WHERE workspace_id = $1",
            workspace_id,
        )
        if row is None:
            return None

        data: dict[str, dict[str, float]] = {}
        for column, category, tier in _TIER_COLUMNS:
            value = row[column]
            if value is not None:
                data.setdefault(category, {})[tier] = value
        return ThresholdsUpdate.model_construct(
            **{
                category: CATEGORY_UPDATE_MODELS[category](**tiers)
                for category, tiers in data.items()
            }
        )

    async def upsert(self, workspace_id: str, update: ThresholdsUpdate) -> None:
        """Apply the specified tiers; unspecified tiers keep their stored value."""
        values: list[float | None] = []
        for _, category, tier in _TIER_COLUMNS:
            pair = getattr(update, category)
            values.append(getattr(pair, tier, None) if pair is not None else None)

        await self._db.execute(_UPSERT_SQL, workspace_id, *values)
        logger.info("Thresholds updated for workspace %s", workspace_id)
