"""Tests for configuration settings."""

import pytest


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    # Import after env vars are set in conftest
    from dairy_ledger.config.settings import get_settings

    # Clear the cache to force reload
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.store_api_key.get_secret_value() == "test-anon-key"
    assert settings.store_url == "http://localhost:54321"


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    from dairy_ledger.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.store_timeout == 30.0
    assert settings.store_page_size == 1000
    assert settings.billing_epsilon == 0.001
    assert settings.business_name == "ssfarmorganic"
    assert settings.log_level == "INFO"
    assert settings.log_format == "console"


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    from dairy_ledger.config.settings import get_settings

    get_settings.cache_clear()

    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_settings_override(monkeypatch):
    """Test that environment overrides reach the settings."""
    from dairy_ledger.config.settings import get_settings

    monkeypatch.setenv("STORE_PAGE_SIZE", "250")
    monkeypatch.setenv("UPI_PAYEE", "farm@upi")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.store_page_size == 250
        assert settings.upi_payee == "farm@upi"
    finally:
        get_settings.cache_clear()


def test_settings_require_api_key(monkeypatch):
    """Test that a missing API key is a configuration error."""
    from pydantic import ValidationError

    from dairy_ledger.config.settings import Settings

    monkeypatch.delenv("STORE_API_KEY", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
