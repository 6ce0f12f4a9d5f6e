# backend/goreserve/core/config.py
import logging
import os
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


class Settings(BaseSettings):
    """Runtime configuration for the scheduling core."""

    environment: str = Field(default="development", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Root log level")

    # Storage
    database_url: str = Field(
        default="sqlite:///./goreserve.db",
        description="SQLAlchemy URL used by the default session factory",
    )
    redis_url: str = "redis://localhost:6379"
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Where computed slot sets are cached",
    )
    lock_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="In-process mutex for single node deployments, Redis for several nodes",
    )
    lock_namespace: str = Field(default="goreserve", description="Prefix for Redis lock keys")

    # Availability cache
    availability_cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Upper bound on staleness for scopes that were not invalidated",
    )

    # Critical section
    scope_lock_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Maximum wait for a scope lock before the booking is rejected",
    )
    scope_lock_ttl_seconds: int = Field(
        default=30,
        ge=1,
        description="Expiry of Redis scope locks held by crashed workers",
    )

    # Booking defaults (services may override)
    default_advance_booking_days: int = Field(default=30, ge=0)
    default_min_advance_hours: int = Field(default=2, ge=0)
    default_cancellation_hours: int = Field(default=24, ge=0)
    default_slot_interval_minutes: int = Field(default=30, ge=1)
    daily_booking_limit: int = Field(
        default=5,
        ge=1,
        description="Maximum active bookings one customer may hold on a single date",
    )
    pending_expiration_hours: int = Field(
        default=2,
        ge=1,
        description="Unpaid pending bookings older than this are released",
    )

    # Refund policy
    full_refund_notice_hours: int = Field(default=48, ge=0)
    partial_refund_fraction: float = Field(default=0.5, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="GORESERVE_",
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return normalized

    @model_validator(mode="after")
    def _check_refund_tiers(self) -> "Settings":
        if self.full_refund_notice_hours < self.default_cancellation_hours:
            logger.warning(
                "full_refund_notice_hours=%s is below default_cancellation_hours=%s; "
                "the partial refund tier is unreachable",
                self.full_refund_notice_hours,
                self.default_cancellation_hours,
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"prod", "production"}


settings = Settings()
