"""Tests for configuration loading."""

import pytest
from decimal import Decimal

from tripsplit.config import (
    LedgerSettings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)


class TestLedgerSettings:
    """Tests for LedgerSettings."""

    def test_defaults(self, monkeypatch):
        """Test default ledger configuration."""
        for name in ("HOME_CURRENCY", "DEFAULT_CURRENCY", "EXCHANGE_RATE", "BALANCE_TOLERANCE"):
            monkeypatch.delenv(f"LEDGER_{name}", raising=False)
        settings = LedgerSettings()
        assert settings.home_currency == "TWD"
        assert settings.default_currency == "CHF"
        assert settings.exchange_rate == Decimal("35.5")
        assert settings.balance_tolerance == Decimal("0.5")

    def test_reads_environment(self, monkeypatch):
        """Test env prefix and currency normalization."""
        monkeypatch.setenv("LEDGER_HOME_CURRENCY", " jpy ")
        monkeypatch.setenv("LEDGER_BALANCE_TOLERANCE", "0.01")
        settings = LedgerSettings()
        assert settings.home_currency == "JPY"
        assert settings.balance_tolerance == Decimal("0.01")

    def test_rejects_non_positive_rate(self):
        """Test the exchange rate must be positive."""
        with pytest.raises(ValueError):
            LedgerSettings(exchange_rate=Decimal("0"))


class TestSyncSettings:
    """Tests for SyncSettings."""

    def test_defaults(self, monkeypatch):
        """Test one try plus two retries, one second apart."""
        monkeypatch.delenv("SYNC_READ_ATTEMPTS", raising=False)
        monkeypatch.delenv("SYNC_READ_RETRY_WAIT_SECONDS", raising=False)
        settings = SyncSettings()
        assert settings.read_attempts == 3
        assert settings.read_retry_wait_seconds == 1.0

    def test_requires_one_attempt(self):
        """Test at least one read attempt."""
        with pytest.raises(ValueError):
            SyncSettings(read_attempts=0)


class TestSettingsAccess:
    """Tests for the cached root settings."""

    def test_get_settings_is_cached(self):
        """Test the same instance is returned."""
        assert get_settings() is get_settings()

    def test_validate_all_settings_reports_missing_sheets(self, monkeypatch):
        """Test a missing credentials path is reported, not raised."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        results = validate_all_settings()
        assert results["ledger"] is True
        assert results["sync"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results
