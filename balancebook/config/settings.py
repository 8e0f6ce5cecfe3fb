"""
Configuration Management for balancebook

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine functions take their tunables as plain arguments; only the
orchestrator and the record store read settings.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from balancebook.models.account import ACCOUNT_KIND_ORDER


class EngineSettings(BaseSettings):
    """Balance computation settings."""

    model_config = SettingsConfigDict(
        env_prefix="BALANCEBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    zero_epsilon: Decimal = Field(
        default=Decimal("0.000001"),
        gt=0,
        description="Balances with a smaller magnitude are reported as exactly zero"
    )
    account_kind_order: str = Field(
        default=",".join(ACCOUNT_KIND_ORDER),
        description="Comma-separated display order of account kinds"
    )
    reject_invalid_records: bool = Field(
        default=False,
        description="Refuse records with validation errors instead of only auditing them"
    )
    verify_replay: bool = Field(
        default=True,
        description="Cross-check replayed balances against aggregated balances"
    )

    @field_validator("account_kind_order")
    @classmethod
    def validate_kind_order(cls, v: str) -> str:
        """Kind order must name at least one kind."""
        if not [kind for kind in v.split(",") if kind.strip()]:
            raise ValueError("account_kind_order must list at least one kind")
        return v

    @property
    def kind_order_list(self) -> list[str]:
        """Get kind order as a list."""
        return [kind.strip().lower() for kind in self.account_kind_order.split(",") if kind.strip()]


class LoggingSettings(BaseSettings):
    """structlog output configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BALANCEBOOK_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        description="Log level name"
    )
    json_output: bool = Field(
        default=True,
        description="Render JSON lines; console rendering otherwise"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an
    ``<name>_error`` entry for each failure.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.engine
        results["engine"] = True
    except Exception as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    try:
        _ = settings.logging
        results["logging"] = True
    except Exception as e:
        results["logging"] = False
        results["logging_error"] = str(e)

    return results
