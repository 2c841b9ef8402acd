"""Configuration package."""

from budget_tracker.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    PersistenceSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "PersistenceSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
