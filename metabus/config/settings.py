"""Configuration models using Pydantic."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BusSettings(BaseSettings):
    """Process-wide settings for the action and event buses."""

    model_config = SettingsConfigDict(
        env_prefix="METABUS_",
        case_sensitive=False,
        validate_assignment=True,
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log format (json, plain)"
    )

    # Audit configuration
    audit_input_max_chars: int = Field(
        default=10_000,
        ge=0,
        le=1_000_000,
        description="Serialized action input is truncated to this many characters"
    )
    audit_log_max_entries: int = Field(
        default=10_000,
        ge=1,
        description="Records kept by the in-memory audit log"
    )

    # Webhook delivery
    webhook_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Webhook HTTP request timeout in seconds"
    )
    webhook_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum delivery attempts per webhook and event"
    )
    webhook_retry_delays: List[float] = Field(
        default_factory=lambda: [1.0, 5.0, 15.0],
        description="Seconds to wait before each retry"
    )
    webhook_delivery_log_size: int = Field(
        default=1000,
        ge=1,
        description="Delivery attempts kept in memory"
    )

    # Metrics configuration
    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics"
    )
    metrics_port: int = Field(
        default=8080,
        ge=1024,
        le=65535,
        description="Port for Prometheus metrics server"
    )

    # Health check configuration
    health_port: int = Field(
        default=8081,
        ge=1024,
        le=65535,
        description="Port for health check endpoint"
    )
