"""Tests for SeenAlertRepository with mocked Database."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from src.alerts.repository import SeenAlertRepository, _row_to_resolved, _row_to_seen
from src.alerts.schemas import (
    AlertCategory,
    AlertSeverity,
    ResolvedAlert,
    SourceType,
)

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_db():
    return AsyncMock()


@pytest.fixture
def repo(mock_db):
    return SeenAlertRepository(mock_db)


def _seen_row(**overrides):
    """Create a mock asyncpg Record as a dict."""
    row = {
        "workspace_id": "ws-1",
        "server_id": "srv-1",
        "fingerprint": "srv-1-memory-node-rabbit@node-1",
        "severity": "critical",
        "category": "memory",
        "source_type": "node",
        "source_name": "rabbit@node-1",
        "first_seen_at": NOW - timedelta(hours=2),
        "last_seen_at": NOW,
        "resolved_at": None,
        "notified_at": NOW - timedelta(hours=2),
    }
    row.update(overrides)
    return row


def _resolved_row(**overrides):
    row = {
        "id": "res-1",
        "workspace_id": "ws-1",
        "server_id": "srv-1",
        "server_name": "Production",
        "fingerprint": "srv-1-queue-queue-/-orders",
        "severity": "warning",
        "category": "queue",
        "source_type": "queue",
        "source_name": "orders",
        "title": "High Queue Backlog",
        "description": "Queue orders has high message count",
        "details": {"current": 12000},
        "first_seen_at": NOW - timedelta(hours=1),
        "resolved_at": NOW,
    }
    row.update(overrides)
    return row


class TestRowConversion:
    def test_seen_row(self):
        seen = _row_to_seen(_seen_row())
        assert seen.severity is AlertSeverity.CRITICAL
        assert seen.category is AlertCategory.MEMORY
        assert seen.source_type is SourceType.NODE
        assert seen.is_resolved is False

    def test_resolved_row(self):
        resolved = _row_to_resolved(_resolved_row())
        assert resolved.source_type is SourceType.QUEUE
        assert resolved.details == {"current": 12000}
        assert resolved.duration_ms == 3_600_000

    def test_resolved_details_as_string(self):
        resolved = _row_to_resolved(_resolved_row(details='{"current": 7}'))
        assert resolved.details == {"current": 7}


class TestCreateTable:
    @pytest.mark.asyncio
    async def test_creates_both_tables(self, repo, mock_db):
        await repo.create_table()

        sql = mock_db.execute.call_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS seen_alerts" in sql
        assert "CREATE TABLE IF NOT EXISTS resolved_alerts" in sql
        assert "UNIQUE (workspace_id, fingerprint)" in sql


class TestUpsertSeen:
    @pytest.mark.asyncio
    async def test_upsert_args(self, repo, mock_db):
        await repo.upsert_seen(
            "ws-1",
            "srv-1",
            "srv-1-memory-node-rabbit@node-1",
            AlertSeverity.WARNING,
            AlertCategory.MEMORY,
            SourceType.NODE,
            "rabbit@node-1",
            NOW,
        )

        sql, *args = mock_db.execute.call_args[0]
        assert "ON CONFLICT (workspace_id, fingerprint)" in sql
        assert "resolved_at = NULL" in sql
        # first_seen_at and notified_at survive a re-sighting
        assert "first_seen_at =" not in sql.split("DO UPDATE")[1]
        assert "notified_at" not in sql
        assert args == [
            "ws-1", "srv-1", "srv-1-memory-node-rabbit@node-1",
            "warning", "memory", "node", "rabbit@node-1", NOW,
        ]


class TestListUnresolved:
    @pytest.mark.asyncio
    async def test_all_vhosts(self, repo, mock_db):
        mock_db.fetch.return_value = [_seen_row()]

        rows = await repo.list_unresolved("ws-1", "srv-1")

        assert len(rows) == 1
        sql, *args = mock_db.fetch.call_args[0]
        assert "resolved_at IS NULL" in sql
        assert args == ["ws-1", "srv-1"]

    @pytest.mark.asyncio
    async def test_vhost_scoped(self, repo, mock_db):
        mock_db.fetch.return_value = []

        await repo.list_unresolved("ws-1", "srv-1", vhost="billing")

        sql, *args = mock_db.fetch.call_args[0]
        assert "source_type <> 'queue'" in sql
        assert args == ["ws-1", "srv-1", "-queue-billing-"]


class TestMarkResolved:
    @pytest.mark.asyncio
    async def test_returns_updated_count(self, repo, mock_db):
        mock_db.execute.return_value = "UPDATE 2"

        count = await repo.mark_resolved("ws-1", ["fp-1", "fp-2"], NOW)

        assert count == 2
        assert mock_db.execute.call_args[0][1:] == ("ws-1", ["fp-1", "fp-2"], NOW)

    @pytest.mark.asyncio
    async def test_empty_list_skips_query(self, repo, mock_db):
        assert await repo.mark_resolved("ws-1", [], NOW) == 0
        mock_db.execute.assert_not_called()


class TestMarkNotified:
    @pytest.mark.asyncio
    async def test_updates_notified_at(self, repo, mock_db):
        await repo.mark_notified("ws-1", ["fp-1"], NOW)

        sql = mock_db.execute.call_args[0][0]
        assert "SET notified_at = $3" in sql

    @pytest.mark.asyncio
    async def test_empty_list_skips_query(self, repo, mock_db):
        await repo.mark_notified("ws-1", [], NOW)
        mock_db.execute.assert_not_called()


class TestCreateResolved:
    @pytest.mark.asyncio
    async def test_details_serialized(self, repo, mock_db):
        resolved = _row_to_resolved(_resolved_row())

        await repo.create_resolved(resolved)

        args = mock_db.execute.call_args[0]
        assert args[1] == "res-1"
        assert json.loads(args[12]) == {"current": 12000}


class TestGetResolved:
    @pytest.mark.asyncio
    async def test_no_filters(self, repo, mock_db):
        mock_db.fetchval.return_value = 1
        mock_db.fetch.return_value = [_resolved_row()]

        rows, total = await repo.get_resolved("ws-1", "srv-1")

        assert total == 1
        assert isinstance(rows[0], ResolvedAlert)
        sql, *args = mock_db.fetch.call_args[0]
        assert "ORDER BY resolved_at DESC" in sql
        assert "LIMIT $3 OFFSET $4" in sql
        assert args == ["ws-1", "srv-1", 50, 0]

    @pytest.mark.asyncio
    async def test_filters_number_params(self, repo, mock_db):
        mock_db.fetchval.return_value = 0
        mock_db.fetch.return_value = []

        await repo.get_resolved(
            "ws-1", "srv-1",
            severity="critical", category="queue", vhost="/",
            limit=10, offset=5,
        )

        count_sql, *count_args = mock_db.fetchval.call_args[0]
        assert "severity = $3" in count_sql
        assert "category = $4" in count_sql
        assert "strpos(fingerprint, $5)" in count_sql
        assert count_args == ["ws-1", "srv-1", "critical", "queue", "-queue-/-"]

        sql, *args = mock_db.fetch.call_args[0]
        assert "LIMIT $6 OFFSET $7" in sql
        assert args[-2:] == [10, 5]

    @pytest.mark.asyncio
    async def test_null_total_is_zero(self, repo, mock_db):
        mock_db.fetchval.return_value = None
        mock_db.fetch.return_value = []

        _, total = await repo.get_resolved("ws-1", "srv-1")

        assert total == 0
