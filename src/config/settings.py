"""
Configuration Management for the Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

The ledger defaults below only seed a brand-new ledger. Once settings have
been persisted in the Record Store, the stored settings win.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.ledger import DEFAULT_EXCHANGE_RATES, Currency, FinanceSettings


class LedgerDefaultsSettings(BaseSettings):
    """
    Seed values for a ledger that has no persisted settings yet.

    LEDGER_EXCHANGE_RATES accepts JSON, e.g. '{"USD": 1, "EUR": 1.08}'.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    base_currency: Currency = Field(
        default=Currency.USD,
        description="Currency every aggregate is normalized into"
    )
    month_start_day: int = Field(
        default=25,
        ge=1,
        le=31,
        description="Day of month a reporting period starts on"
    )
    exchange_rates: dict[Currency, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_EXCHANGE_RATES),
        description="Direct multipliers into the base currency"
    )
    strict_exchange_rates: bool = Field(
        default=False,
        description="Raise instead of assuming parity when a rate is missing"
    )

    def to_finance_settings(self) -> FinanceSettings:
        return FinanceSettings(
            base_currency=self.base_currency,
            month_start_day=self.month_start_day,
            exchange_rates=self.exchange_rates,
        )


class StorageSettings(BaseSettings):
    """Which Record Store backend to use."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        pattern="^(memory|json|google_sheets)$",
        description="Record store backend"
    )
    json_path: str = Field(
        default="data/ledger.json",
        description="File used by the json backend"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
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

    settings_sheet_name: str = Field(
        default="Settings",
        description="Name of the sheet holding the finance settings row"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )

    budget_warning_percent: Decimal = Field(
        default=Decimal("80"),
        ge=0,
        le=100,
        description="Percent used above which a budget is flagged as near its limit"
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

    # Loaded lazily so a missing Google Sheets config doesn't break
    # the memory/json backends

    @property
    def ledger(self) -> LedgerDefaultsSettings:
        return LedgerDefaultsSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

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
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    checks = {
        "ledger": lambda: settings.ledger,
        "storage": lambda: settings.storage,
        "app": lambda: settings.app,
    }

    for name, load in checks.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    # Google Sheets is only required when it is the selected backend
    if results["storage"] and settings.storage.backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
