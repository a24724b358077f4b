"""Threshold store: workspace overrides merged over hard-coded defaults.

Reads never fail: any persistence error degrades to the default set.
Updates are entitlement-gated and report failure as a result object
rather than raising, so callers can render the message directly.
"""

import logging
from dataclasses import dataclass

from src.thresholds.config import ThresholdConfig
from src.thresholds.repository import ThresholdRepository
from src.thresholds.schemas import (
    DEFAULT_THRESHOLDS,
    TIER_ORDER_MESSAGE,
    AlertThresholds,
    ThresholdsUpdate,
)
from src.workspaces.repository import WorkspaceRepository

logger = logging.getLogger(__name__)


@dataclass
class ThresholdUpdateResult:
    success: bool
    message: str
    invalid: bool = False

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


class ThresholdService:
    """Per-workspace threshold lookup, update and entitlement checks."""

    def __init__(
        self,
        threshold_repo: ThresholdRepository,
        workspace_repo: WorkspaceRepository,
        config: ThresholdConfig | None = None,
    ) -> None:
        self._threshold_repo = threshold_repo
        self._workspace_repo = workspace_repo
        self._config = config or ThresholdConfig()

    @staticmethod
    def get_default_thresholds() -> AlertThresholds:
        """The process-wide default set. No I/O."""
        return DEFAULT_THRESHOLDS

    async def get_thresholds(self, workspace_id: str) -> AlertThresholds:
        """Stored overrides merged over the defaults.

        Args:
            workspace_id: Workspace whose thresholds to load.

        Returns:
            The complete threshold set (defaults on any error).
        """
        try:
            stored = await self._threshold_repo.get(workspace_id)
        except Exception as e:
            logger.error(
                "Failed to load thresholds for workspace %s, using defaults: %s",
                workspace_id, e,
            )
            return DEFAULT_THRESHOLDS

        if stored is None:
            return DEFAULT_THRESHOLDS
        return DEFAULT_THRESHOLDS.merged(stored)

    async def can_modify(self, workspace_id: str) -> bool:
        """Whether the workspace's plan tier allows threshold changes."""
        try:
            plan = await self._workspace_repo.get_plan(workspace_id)
        except Exception as e:
            logger.error(
                "Failed to check threshold permissions for workspace %s: %s",
                workspace_id, e,
            )
            return False
        return (plan or self._config.default_plan) in self._config.allowed_plans

    async def update_thresholds(
        self,
        workspace_id: str,
        update: ThresholdsUpdate,
    ) -> ThresholdUpdateResult:
        """Apply a partial update if the workspace is entitled.

        Categories and tiers the update leaves unset are untouched.
        """
        if not await self.can_modify(workspace_id):
            return ThresholdUpdateResult(
                success=False, message=self._config.upgrade_message,
            )

        # Tiers the update leaves out keep their stored values
        merged = (await self.get_thresholds(workspace_id)).merged(update)
        misordered = merged.misordered_categories()
        if misordered:
            return ThresholdUpdateResult(
                success=False,
                message=f"{TIER_ORDER_MESSAGE}: {', '.join(misordered)}",
                invalid=True,
            )

        try:
            await self._threshold_repo.upsert(workspace_id, update)
        except Exception as e:
            logger.error(
                "Failed to update thresholds for workspace %s: %s", workspace_id, e,
            )
            return ThresholdUpdateResult(
                success=False, message="Failed to update alert thresholds",
            )

        return ThresholdUpdateResult(
            success=True, message="Alert thresholds updated successfully",
        )
