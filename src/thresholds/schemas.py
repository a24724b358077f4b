"""Threshold models for the health evaluators.

``AlertThresholds`` is the complete, immutable set the evaluators read.
``ThresholdsUpdate`` is the partial payload accepted by the update
operation: every category is optional and so is every tier inside a
category; ``AlertThresholds.merged`` applies one over the other.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

Number = int | float

THRESHOLD_CATEGORIES: tuple[str, ...] = (
    "memory",
    "disk",
    "file_descriptors",
    "sockets",
    "processes",
    "queue_messages",
    "unacked_messages",
    "consumer_utilization",
    "connections",
    "run_queue",
)

# Disk thresholds are expressed as % free, so the critical tier is the lower one.
INVERTED_CATEGORIES: frozenset[str] = frozenset({"disk"})

TIER_ORDER_MESSAGE = (
    "Critical thresholds must be higher than warning thresholds "
    "(except disk which uses free space)"
)


def tiers_ordered(category: str, warning: float, critical: float) -> bool:
    if category in INVERTED_CATEGORIES:
        return critical < warning
    return critical > warning


class ThresholdPair(BaseModel):
    """Warning and critical tiers for one metric category."""

    model_config = ConfigDict(frozen=True)

    warning: Number
    critical: Number


class UtilizationThreshold(BaseModel):
    """Minimum consumer utilization percentage (warning tier only)."""

    model_config = ConfigDict(frozen=True)

    warning: Number


class AlertThresholds(BaseModel):
    """Complete threshold set used for one evaluation pass."""

    model_config = ConfigDict(frozen=True)

    memory: ThresholdPair = Field(..., description="Memory used, % of limit")
    disk: ThresholdPair = Field(..., description="Disk free, % of limit")
    file_descriptors: ThresholdPair = Field(..., description="File descriptors used, %")
    sockets: ThresholdPair = Field(..., description="Sockets used, %")
    processes: ThresholdPair = Field(..., description="Erlang processes used, %")
    queue_messages: ThresholdPair = Field(..., description="Messages in a queue")
    unacked_messages: ThresholdPair = Field(..., description="Unacknowledged messages in a queue")
    consumer_utilization: UtilizationThreshold = Field(
        ..., description="Minimum deliver/publish ratio, %",
    )
    connections: ThresholdPair = Field(..., description="Connections used, %")
    run_queue: ThresholdPair = Field(..., description="Scheduler run queue length")

    def merged(self, update: "ThresholdsUpdate") -> "AlertThresholds":
        """Return a new set with the update's specified tiers applied.

        Categories and tiers the update leaves unset keep their current
        values.
        """
        data = self.model_dump()
        for category, values in update.model_dump(exclude_none=True).items():
            data[category].update(values)
        return AlertThresholds.model_validate(data)

    def misordered_categories(self) -> list[str]:
        """Categories whose critical tier is not beyond the warning tier."""
        misordered = []
        for category in THRESHOLD_CATEGORIES:
            pair = getattr(self, category)
            if not isinstance(pair, ThresholdPair):
                continue
            if not tiers_ordered(category, pair.warning, pair.critical):
                misordered.append(category)
        return misordered


DEFAULT_THRESHOLDS = AlertThresholds(
    memory=ThresholdPair(warning=80, critical=95),
    disk=ThresholdPair(warning=15, critical=10),
    file_descriptors=ThresholdPair(warning=80, critical=90),
    sockets=ThresholdPair(warning=80, critical=90),
    processes=ThresholdPair(warning=80, critical=90),
    queue_messages=ThresholdPair(warning=10000, critical=50000),
    unacked_messages=ThresholdPair(warning=1000, critical=5000),
    consumer_utilization=UtilizationThreshold(warning=10),
    connections=ThresholdPair(warning=80, critical=95),
    run_queue=ThresholdPair(warning=10, critical=20),
)


class PercentPairUpdate(BaseModel):
    warning: float | None = Field(default=None, ge=0, le=100)
    critical: float | None = Field(default=None, ge=0, le=100)


class CountPairUpdate(BaseModel):
    warning: float | None = Field(default=None, ge=0)
    critical: float | None = Field(default=None, ge=0)


class UtilizationUpdate(BaseModel):
    warning: float | None = Field(default=None, ge=0, le=100)


class ThresholdsUpdate(BaseModel):
    """Partial threshold update.

    When both tiers of a category are given, critical must be above
    warning, except for disk where it must be below (disk is % free).
    """

    model_config = ConfigDict(extra="forbid")

    memory: PercentPairUpdate | None = None
    disk: PercentPairUpdate | None = None
    file_descriptors: PercentPairUpdate | None = None
    sockets: PercentPairUpdate | None = None
    processes: PercentPairUpdate | None = None
    queue_messages: CountPairUpdate | None = None
    unacked_messages: CountPairUpdate | None = None
    consumer_utilization: UtilizationUpdate | None = None
    connections: PercentPairUpdate | None = None
    run_queue: CountPairUpdate | None = None

    @model_validator(mode="after")
    def _check_tier_order(self) -> "ThresholdsUpdate":
        for category in THRESHOLD_CATEGORIES:
            pair = getattr(self, category)
            warning = getattr(pair, "warning", None)
            critical = getattr(pair, "critical", None)
            if warning is None or critical is None:
                continue
            if not tiers_ordered(category, warning, critical):
                raise ValueError(TIER_ORDER_MESSAGE)
        return self

    @property
    def is_empty(self) -> bool:
        return not any(self.model_dump(exclude_none=True).values())


CATEGORY_UPDATE_MODELS: dict[str, type[BaseModel]] = {
    "memory": PercentPairUpdate,
    "disk": PercentPairUpdate,
    "file_descriptors": PercentPairUpdate,
    "sockets": PercentPairUpdate,
    "processes": PercentPairUpdate,
    "queue_messages": CountPairUpdate,
    "unacked_messages": CountPairUpdate,
    "consumer_utilization": UtilizationUpdate,
    "connections": PercentPairUpdate,
    "run_queue": CountPairUpdate,
}
