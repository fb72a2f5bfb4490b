"""
Configuration Management for TripSplit

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The balance tolerance lives here as one value shared by the create
and edit flows, so the two can never disagree.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger currency and allocation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    home_currency: str = Field(
        default="TWD",
        min_length=1,
        description="Base settlement currency of the ledger"
    )
    default_currency: str = Field(
        default="CHF",
        min_length=1,
        description="Currency assumed for new entries when none is given"
    )
    exchange_rate: Decimal = Field(
        default=Decimal("35.5"),
        gt=0,
        description="Nominal rate: home-currency units per origin-currency unit"
    )
    balance_tolerance: Decimal = Field(
        default=Decimal("0.5"),
        ge=0,
        description="Largest unallocated remainder still considered balanced"
    )

    @field_validator('home_currency', 'default_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Currency codes are compared upper-cased."""
        return v.strip().upper()


class SyncSettings(BaseSettings):
    """Ledger synchronization (read retry) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    read_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts for a ledger read (first try plus retries)"
    )
    read_retry_wait_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Fixed wait between read attempts"
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
    management_spreadsheet_id: str = Field(
        default="",
        description="Spreadsheet holding the list of ledgers"
    )

    # Sheet names within the spreadsheets
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet holding a ledger's transactions"
    )
    ledgers_sheet_name: str = Field(
        default="Ledgers",
        description="Name of the sheet holding ledger metadata"
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


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

    Returns a dict of {setting_name: is_valid}, plus a
    `<name>_error` entry for every group that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("ledger", "sync", "google_sheets"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
