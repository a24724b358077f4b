"""Alert identity tracking, auto-resolution and notification gating.

Each evaluation pass hands its candidates to ``AlertTracker``. The tracker
maps every candidate to its fingerprint, records the sighting in
``seen_alerts``, resolves fingerprints that disappeared from the pass,
and notifies for the ones that are new, returning after a resolution, or
past the cooldown since their last notification.

Every candidate is tracked whatever the workspace's severity preferences;
the preferences only decide what gets sent. Whether a fingerprint is
notify-eligible is decided by ``decide_notify``, a pure function of the
existing row and the clock; persistence happens only after every decision
for the pass has been made.

Delivery runs in a background task owned by the tracker, so a slow
channel never holds up the evaluation result. ``drain`` waits for
in-flight deliveries on shutdown.
"""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from src.alerts.channels import NotificationContext
from src.alerts.config import AlertConfig
from src.alerts.dispatcher import DispatchReport, NotificationDispatcher
from src.alerts.fingerprint import fingerprint_for
from src.alerts.repository import SeenAlertRepository
from src.alerts.schemas import (
    AlertCandidate,
    AlertCategory,
    ResolvedAlert,
    SeenAlert,
    SourceType,
)
from src.observability.metrics import get_metrics
from src.workspaces.repository import WorkspaceRepository

logger = logging.getLogger(__name__)

COOLDOWN = timedelta(days=7)


def decide_notify(
    existing: SeenAlert | None,
    now: datetime,
    cooldown: timedelta = COOLDOWN,
) -> bool:
    """Whether a sighting of a fingerprint should trigger a notification.

    Args:
        existing: The fingerprint's row before this pass, if any.
        now: Time of the current pass.
        cooldown: Minimum silence between notifications for an ongoing
            condition.

    Returns:
        True for a new fingerprint, one that was resolved and came back,
        one that was never notified, or one whose last notification is
        older than the cooldown.
    """
    if existing is None:
        return True
    if existing.resolved_at is not None:
        return True
    if existing.notified_at is None:
        return True
    return now - existing.notified_at > cooldown


_SOURCE_LABELS = {
    SourceType.NODE: "node",
    SourceType.QUEUE: "queue",
    SourceType.CLUSTER: "cluster",
}


def resolved_title(category: AlertCategory, source_type: SourceType) -> str:
    """Generic title for a resolved alert, rebuilt from its fingerprint row."""
    if category is AlertCategory.MEMORY:
        return "High Memory Usage"
    if category is AlertCategory.DISK:
        return "Low Disk Space"
    if category is AlertCategory.CONNECTION:
        return "Connection Issue"
    if category is AlertCategory.QUEUE:
        return "Queue Issue" if source_type is SourceType.QUEUE else "Queue Problem"
    if category is AlertCategory.NODE:
        return "Node Issue" if source_type is SourceType.NODE else "Node Problem"
    return "Performance Issue"


def resolved_description(
    category: AlertCategory,
    source_type: SourceType,
    source_name: str,
) -> str:
    label = _SOURCE_LABELS[source_type]
    if category is AlertCategory.MEMORY:
        return f"Memory issue detected on {label} {source_name}"
    if category is AlertCategory.DISK:
        return f"Disk space issue detected on {label} {source_name}"
    if category is AlertCategory.CONNECTION:
        return f"Connection issue detected on {label} {source_name}"
    if category is AlertCategory.QUEUE:
        return f"Queue issue detected: {source_name}"
    if category is AlertCategory.NODE:
        return f"Node issue detected: {source_name}"
    return f"Performance issue detected on {label} {source_name}"


@dataclass
class TrackingResult:
    """What one tracking pass did."""

    new_fingerprints: list[str] = field(default_factory=list)
    notify_fingerprints: list[str] = field(default_factory=list)
    resolved_fingerprints: list[str] = field(default_factory=list)
    notification_scheduled: bool = False


class AlertTracker:
    """Fingerprint tracking and notification for one workspace's server.

    Never raises: a tracking failure is logged and counted, and the
    caller's evaluation result is unaffected.
    """

    def __init__(
        self,
        seen_repo: SeenAlertRepository,
        workspace_repo: WorkspaceRepository,
        dispatcher: NotificationDispatcher,
        config: AlertConfig | None = None,
    ) -> None:
        self._seen_repo = seen_repo
        self._workspace_repo = workspace_repo
        self._dispatcher = dispatcher
        self._config = config or AlertConfig()
        self._pending: set[asyncio.Task] = set()
        # (workspace_id, fingerprint) pairs with a delivery still running
        self._in_flight: set[tuple[str, str]] = set()

    @property
    def pending_deliveries(self) -> int:
        return len(self._pending)

    async def track_and_notify(
        self,
        candidates: list[AlertCandidate],
        workspace_id: str,
        server_id: str,
        server_name: str,
        vhost: str | None = None,
        now: datetime | None = None,
    ) -> TrackingResult:
        """Record one pass's candidates and schedule notification for eligible ones.

        Args:
            candidates: Every alert produced by the pass.
            workspace_id: Owning workspace.
            server_id: Server that was evaluated.
            server_name: Display name of the server.
            vhost: Vhost the pass was restricted to. Auto-resolution then
                only touches that vhost's queue fingerprints plus node and
                cluster fingerprints.
            now: Pass time (defaults to the current UTC time).

        Returns:
            Summary of what was tracked, resolved and handed to delivery.
        """
        try:
            return await self._track(
                candidates,
                workspace_id,
                server_id,
                server_name,
                vhost,
                now or datetime.now(timezone.utc),
            )
        except Exception as e:
            logger.error(
                "Alert tracking failed for server %s in workspace %s: %s",
                server_id, workspace_id, e,
            )
            get_metrics().record_tracking_error()
            return TrackingResult()

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries, up to ``notification_drain_seconds``."""
        if not self._pending:
            return
        timeout = self._config.notification_drain_seconds if timeout is None else timeout
        _, still_running = await asyncio.wait(set(self._pending), timeout=timeout)
        if still_running:
            logger.warning(
                "%d notification deliveries still running after %.1fs",
                len(still_running), timeout,
            )

    async def _track(
        self,
        candidates: list[AlertCandidate],
        workspace_id: str,
        server_id: str,
        server_name: str,
        vhost: str | None,
        now: datetime,
    ) -> TrackingResult:
        result = TrackingResult()

        workspace = await self._workspace_repo.get(workspace_id)
        if workspace is None:
            logger.warning(
                "Workspace %s not found, skipping alert tracking", workspace_id,
            )
            return result

        existing = {
            row.fingerprint: row
            for row in await self._seen_repo.list_for_server(workspace_id, server_id)
        }

        # Several rules can share a fingerprint (e.g. memory alarm and high
        # memory usage on one node); the most severe one is recorded.
        by_fingerprint: dict[str, list[AlertCandidate]] = {}
        for alert in candidates:
            by_fingerprint.setdefault(fingerprint_for(alert), []).append(alert)

        notify_alerts: list[AlertCandidate] = []
        for fingerprint, alerts in by_fingerprint.items():
            row = existing.get(fingerprint)
            if row is None:
                result.new_fingerprints.append(fingerprint)

            # Unselected severities are tracked but never sent
            wanted = [a for a in alerts if workspace.wants_severity(a.severity.value)]
            if not wanted or (workspace_id, fingerprint) in self._in_flight:
                continue
            if decide_notify(row, now, self._config.cooldown):
                result.notify_fingerprints.append(fingerprint)
                notify_alerts.extend(wanted)

        for fingerprint, alerts in by_fingerprint.items():
            worst = max(alerts, key=lambda a: a.severity.rank)
            await self._seen_repo.upsert_seen(
                workspace_id,
                server_id,
                fingerprint,
                worst.severity,
                worst.category,
                worst.source.type,
                worst.source.name,
                now,
            )

        result.resolved_fingerprints = await self._auto_resolve(
            set(by_fingerprint), workspace_id, server_id, server_name, vhost, now,
        )

        if not notify_alerts:
            return result

        if not workspace.can_send_notifications:
            logger.debug(
                "Workspace %s has notifications disabled or no contact, "
                "skipping %d notify-eligible alerts",
                workspace_id, len(notify_alerts),
            )
            return result

        if not workspace.notifies_for_server(server_id):
            logger.debug(
                "Server %s not selected for notifications in workspace %s",
                server_id, workspace_id,
            )
            return result

        context = NotificationContext(
            workspace_id=workspace_id,
            workspace_name=workspace.name,
            server_id=server_id,
            server_name=server_name,
            contact_email=workspace.contact_email,
            vhost=vhost,
        )
        self._schedule(
            self._notify(notify_alerts, list(result.notify_fingerprints), context, now),
            [(workspace_id, fp) for fp in result.notify_fingerprints],
        )
        result.notification_scheduled = True
        return result

    def _schedule(
        self,
        delivery: Coroutine[Any, Any, DispatchReport | None],
        keys: list[tuple[str, str]],
    ) -> None:
        self._in_flight.update(keys)
        task = asyncio.create_task(delivery)
        self._pending.add(task)

        def done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            self._in_flight.difference_update(keys)

        task.add_done_callback(done)

    async def _notify(
        self,
        alerts: list[AlertCandidate],
        fingerprints: list[str],
        context: NotificationContext,
        now: datetime,
    ) -> DispatchReport | None:
        """Deliver one batch and record the notification. Never raises."""
        workspace_id = context.workspace_id
        try:
            targets = await self._workspace_repo.get_notification_targets(workspace_id)
            report = await self._dispatcher.dispatch(alerts, context, targets)

            if report.notified:
                # Deliveries already went out; the bookkeeping must land
                await asyncio.shield(
                    self._seen_repo.mark_notified(workspace_id, fingerprints, now)
                )
        except Exception as e:
            logger.error(
                "Notification failed for server %s in workspace %s: %s",
                context.server_id, workspace_id, e,
            )
            get_metrics().record_tracking_error()
            return None

        logger.info(
            "Dispatched %d alerts (%d fingerprints) for server %s in workspace %s",
            len(alerts), len(fingerprints), context.server_id, workspace_id,
        )
        return report

    async def _auto_resolve(
        self,
        active: set[str],
        workspace_id: str,
        server_id: str,
        server_name: str,
        vhost: str | None,
        now: datetime,
    ) -> list[str]:
        """Resolve unresolved fingerprints absent from this pass.

        Returns:
            Fingerprints that were resolved.
        """
        unresolved = await self._seen_repo.list_unresolved(workspace_id, server_id, vhost)
        gone = [row for row in unresolved if row.fingerprint not in active]
        if not gone:
            return []

        await self._seen_repo.mark_resolved(
            workspace_id, [row.fingerprint for row in gone], now,
        )

        for row in gone:
            history = ResolvedAlert(
                workspace_id=workspace_id,
                server_id=server_id,
                server_name=server_name,
                fingerprint=row.fingerprint,
                severity=row.severity,
                category=row.category,
                source_type=row.source_type,
                source_name=row.source_name,
                title=resolved_title(row.category, row.source_type),
                description=resolved_description(
                    row.category, row.source_type, row.source_name,
                ),
                details={
                    "sourceType": row.source_type.value,
                    "sourceName": row.source_name,
                    "category": row.category.value,
                },
                first_seen_at=row.first_seen_at,
                resolved_at=now,
            )
            try:
                await self._seen_repo.create_resolved(history)
            except Exception as e:
                logger.error(
                    "Failed to save resolved alert %s: %s", row.fingerprint, e,
                )
                continue
            logger.debug(
                "Resolved alert %s after %d minutes",
                row.fingerprint, round(history.duration_ms / 60000),
            )

        get_metrics().record_auto_resolved(len(gone))
        return [row.fingerprint for row in gone]
