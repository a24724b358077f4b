"""Alert engine configuration.

Controls the notification cooldown, metric-fetch timeouts and the periodic
scheduler. All settings can be overridden via ``ALERTS_*`` environment
variables.
"""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertConfig(BaseSettings):
    """Configuration for alert evaluation, tracking and scheduling."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Re-notification policy for a continuously active fingerprint
    cooldown_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Days before an ongoing alert may notify again",
    )

    # Metric source
    fetch_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Upper bound on each node/queue listing call",
    )

    # Periodic scheduler (opt-in worker; requests evaluate on demand)
    check_interval_seconds: float = Field(
        default=300.0,
        ge=10.0,
        description="Seconds between scheduler cycles",
    )
    check_concurrency: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Servers evaluated in parallel per cycle",
    )
    server_check_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Upper bound on one server's evaluation in a cycle",
    )

    # Background notification delivery
    notification_drain_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="How long shutdown waits for in-flight notification deliveries",
    )

    @property
    def cooldown(self) -> timedelta:
        return timedelta(days=self.cooldown_days)
