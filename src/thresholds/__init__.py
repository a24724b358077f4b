"""Per-workspace alert thresholds with hard-coded defaults.

Components:
- AlertThresholds / ThresholdPair / UtilizationThreshold: Complete threshold set
- ThresholdsUpdate: Partial, validated update payload
- DEFAULT_THRESHOLDS: Process-wide fallback set
- ThresholdRepository: Nullable per-tier overrides in PostgreSQL
- ThresholdService: Lookup, entitlement check and update
- ThresholdConfig: Entitled plan tiers
"""

from src.thresholds.config import ThresholdConfig
from src.thresholds.repository import ThresholdRepository
from src.thresholds.schemas import (
    DEFAULT_THRESHOLDS,
    AlertThresholds,
    ThresholdPair,
    ThresholdsUpdate,
    UtilizationThreshold,
)
from src.thresholds.service import ThresholdService, ThresholdUpdateResult

__all__ = [
    "AlertThresholds",
    "DEFAULT_THRESHOLDS",
    "ThresholdConfig",
    "ThresholdPair",
    "ThresholdRepository",
    "ThresholdService",
    "ThresholdUpdateResult",
    "ThresholdsUpdate",
    "UtilizationThreshold",
]
