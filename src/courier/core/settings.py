"""Settings for the courier delivery engine.

Configuration is explicit, validated at startup and environment-driven.
Every field can be set through a ``COURIER_``-prefixed environment
variable or a ``.env`` file. Defaults match the production deployment:
alerts are retried for 30 minutes, waiting between 30 seconds and
5 minutes, destination configuration is refreshed every 5 minutes and
the inbound queue hands out batches of 10.

Examples:
    >>> from courier.core.settings import CourierSettings
    >>> s = CourierSettings(min_retry_delay_secs=10)
    >>> s.max_retry_duration_seconds
    1800

Tags:
    settings, configuration, pydantic, environment, courier-core
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CourierSettings(BaseSettings):
    """Runtime settings for the delivery engine.

    Fields
    ──────
    alert_retry_duration_mins   : retry window measured from first_seen
    min/max_retry_delay_secs    : backoff bounds
    retry_jitter_ratio          : upward jitter as fraction of backoff growth
    outputs_*                   : destination directory cache behaviour
    batch_size / max_receive_count / visibility_timeout_secs : queue contract
    processing_deadline_secs    : budget for one message, must exceed send timeout
    """

    model_config = SettingsConfigDict(
        env_prefix="COURIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Retry policy ─────────────────────────────────────────────
    alert_retry_duration_mins: int = Field(default=30, ge=5, le=10080)
    min_retry_delay_secs: int = Field(default=30, ge=1, le=86400)
    max_retry_delay_secs: int = Field(default=300, ge=1, le=86400)
    retry_jitter_ratio: float = Field(default=0.25, ge=0.0, lt=1.0)

    # ── Destination directory ────────────────────────────────────
    outputs_refresh_interval_mins: float = Field(default=5, gt=0)
    outputs_staleness_ceiling_mins: float = Field(default=15, gt=0)
    outputs_miss_cooldown_secs: float = Field(default=30, ge=0)

    # ── Queue / processing ───────────────────────────────────────
    batch_size: int = Field(default=10, ge=1, le=100)
    max_receive_count: int = Field(default=10, ge=1)
    visibility_timeout_secs: int = Field(default=60, ge=1)
    processing_deadline_secs: float = Field(default=50, gt=0)
    send_timeout_secs: float = Field(default=10, gt=0)
    max_destination_concurrency: int = Field(default=10, ge=1)
    max_alert_concurrency: int = Field(default=10, ge=1)
    poll_interval_secs: float = Field(default=1.0, gt=0)

    # ── Notification links ───────────────────────────────────────
    alert_url_prefix: str = "https://app.example.com/log-analysis/alerts/"
    policy_url_prefix: str = "https://app.example.com/cloud-security/policies/"

    # ── Storage ──────────────────────────────────────────────────
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".courier" / "courier.db",
        description="SQLite file holding the queue, audit ledger and dead letters",
    )
    redis_url: str = "redis://localhost:6379/0"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> CourierSettings:
        if self.min_retry_delay_secs > self.max_retry_delay_secs:
            raise ValueError("min_retry_delay_secs must not exceed max_retry_delay_secs")
        if self.send_timeout_secs >= self.processing_deadline_secs:
            raise ValueError("send_timeout_secs must be shorter than processing_deadline_secs")
        if self.processing_deadline_secs >= self.visibility_timeout_secs:
            raise ValueError("processing_deadline_secs must be shorter than visibility_timeout_secs")
        return self

    @property
    def max_retry_duration_seconds(self) -> int:
        return self.alert_retry_duration_mins * 60

    @property
    def refresh_interval_seconds(self) -> float:
        return self.outputs_refresh_interval_mins * 60

    @property
    def staleness_ceiling_seconds(self) -> float:
        return self.outputs_staleness_ceiling_mins * 60


@lru_cache(maxsize=1)
def get_settings() -> CourierSettings:
    """Return the process-wide settings (read once from the environment)."""
    return CourierSettings()


__all__ = ["CourierSettings", "get_settings"]
