"""Threshold store configuration.

All settings can be overridden via ``THRESHOLDS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThresholdConfig(BaseSettings):
    """Entitlement settings for threshold customization."""

    model_config = SettingsConfigDict(
        env_prefix="THRESHOLDS_",
        case_sensitive=False,
        extra="ignore",
    )

    allowed_plans: list[str] = Field(
        default=["STARTUP", "BUSINESS"],
        description="Plan tiers allowed to modify alert thresholds",
    )
    default_plan: str = Field(
        default="FREE",
        description="Plan assumed when the workspace has none recorded",
    )
    upgrade_message: str = Field(
        default=(
            "Your current plan does not allow threshold modifications. "
            "Upgrade to Startup or Business plan to customize alert thresholds."
        ),
        description="Message returned when an update is not entitled",
    )
