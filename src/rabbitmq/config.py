"""Management API client configuration.

All settings can be overridden via ``RABBITMQ_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RabbitMQConfig(BaseSettings):
    """Configuration for talking to RabbitMQ management APIs."""

    model_config = SettingsConfigDict(
        env_prefix="RABBITMQ_",
        case_sensitive=False,
        extra="ignore",
    )

    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Timeout for a single management API call",
    )
    verify_tls: bool = Field(
        default=True,
        description="Verify TLS certificates for https management endpoints",
    )
