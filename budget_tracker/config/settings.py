"""
Configuration Management for Budget Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Thresholds the engine applies (budget health, import matching, debounce
timing) live in one place and are validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger engine behaviour configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    # Budget health classification
    budget_at_risk_percentage: float = Field(
        default=80.0,
        ge=0.0,
        description="Spend percentage above which a budget is at risk"
    )
    budget_over_percentage: float = Field(
        default=100.0,
        ge=0.0,
        description="Spend percentage above which a budget is over"
    )

    # Statement import matching
    import_date_window_days: int = Field(
        default=2,
        ge=0,
        le=14,
        description="Days either side of a statement line searched for fuzzy duplicates"
    )
    import_similarity_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Description similarity above which a nearby entry is a duplicate"
    )
    recurring_similarity_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Description similarity needed to link a statement line to a recurring rule"
    )

    # Validation
    future_date_tolerance_days: int = Field(
        default=366,
        ge=0,
        description="How far ahead a manual entry can be dated before a warning"
    )

    seed_default_categories: bool = Field(
        default=True,
        description="Seed the default income/expense categories on a fresh ledger"
    )

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'LedgerSettings':
        """At-risk threshold must not exceed the over threshold."""
        if self.budget_at_risk_percentage > self.budget_over_percentage:
            raise ValueError("budget_at_risk_percentage cannot exceed budget_over_percentage")
        return self


class PersistenceSettings(BaseSettings):
    """Snapshot persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PERSISTENCE_",
        extra="ignore"
    )

    backend: Literal["memory", "google_sheets"] = Field(
        default="memory",
        description="Remote store used by the persistence gateway"
    )
    debounce_ms: int = Field(
        default=500,
        ge=0,
        le=60000,
        description="Delay used to coalesce bursts of edits into one write"
    )
    migration_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for the one-time local-to-remote migration write"
    )
    local_cache_path: str = Field(
        default=".budget_tracker/snapshot.json",
        description="Path of the local snapshot cache"
    )

    @property
    def debounce_seconds(self) -> float:
        """Debounce delay in seconds."""
        return self.debounce_ms / 1000


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    snapshots_sheet_name: str = Field(
        default="Snapshots",
        description="Name of the sheet holding one snapshot row per user"
    )
    chunk_size: int = Field(
        default=45000,
        ge=1000,
        le=50000,
        description="Characters of snapshot JSON per cell (Sheets caps cells at 50k)"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before starting a session."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Minimum level written by the structured logger"
    )
    log_json: bool = Field(
        default=True,
        description="Render log lines as JSON (console rendering otherwise)"
    )


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def persistence(self) -> PersistenceSettings:
        return PersistenceSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Google Sheets is only required when it is the configured backend.
    """
    results = {}

    settings = get_settings()

    for name in ("app", "ledger", "persistence"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValidationError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    if results.get("persistence") and settings.persistence.backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except ValidationError as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
