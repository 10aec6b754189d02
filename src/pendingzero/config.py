"""Configuration settings for pendingzero."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pendingzero.state import ConvergenceConfig


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or overrides."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, populate_by_name=True
    )

    target_base_url: str | None = Field(default=None, validation_alias="TARGET_BASE_URL")
    target_api_key: str | None = Field(default=None, validation_alias="TARGET_API_KEY")
    target_user_id: str = Field(default="pendingzero", validation_alias="TARGET_USER_ID")
    target_timeout_seconds: int = Field(default=30, validation_alias="TARGET_TIMEOUT_SECONDS")
    max_attempts: int = Field(default=10, validation_alias="MAX_ATTEMPTS")
    per_attempt_timeout_seconds: float = Field(
        default=60.0, validation_alias="PER_ATTEMPT_TIMEOUT_SECONDS"
    )
    initial_pending_check: bool = Field(default=True, validation_alias="INITIAL_PENDING_CHECK")
    max_consecutive_rate_limits: int = Field(
        default=5, validation_alias="MAX_CONSECUTIVE_RATE_LIMITS"
    )
    base_delay_ms: int = Field(default=2000, validation_alias="BASE_DELAY_MS")
    max_delay_ms: int = Field(default=30000, validation_alias="MAX_DELAY_MS")
    rate_limit_delay_ms: int = Field(default=300000, validation_alias="RATE_LIMIT_DELAY_MS")
    success_pause_ms: int = Field(default=1000, validation_alias="SUCCESS_PAUSE_MS")
    workspace_dir: str = Field(default=".pendingzero", validation_alias="PENDINGZERO_HOME")
    audit_sqlite: bool = Field(default=True, validation_alias="PENDINGZERO_AUDIT_SQLITE")

    def convergence_config(self) -> ConvergenceConfig:
        return ConvergenceConfig(
            max_attempts=self.max_attempts,
            per_attempt_timeout=self.per_attempt_timeout_seconds,
            initial_pending_check=self.initial_pending_check,
            max_consecutive_rate_limits=self.max_consecutive_rate_limits,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            rate_limit_delay_ms=self.rate_limit_delay_ms,
            success_pause_ms=self.success_pause_ms,
        )
