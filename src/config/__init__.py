"""Configuration package."""

from src.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LedgerDefaultsSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerDefaultsSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
