"""
Tests for cardpay/shared/core/config.py - Configuration management
"""
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from cardpay.shared.core.config import (
    DEFAULT_CYCLE_SECONDS,
    Settings,
    get_settings,
    reload_settings_from_environment,
)


class TestSettingsValidation:
    """Test settings defaults and validation rules."""

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(TESTING=True, _env_file=None)
        assert settings.COIN_API_URL == "https://bank.foxsrv.net/"
        assert settings.DEFAULT_TENANT_PRICE == "0.00001000"
        assert settings.CYCLE_SECONDS == DEFAULT_CYCLE_SECONDS == 30 * 24 * 3600
        assert settings.CHECK_INTERVAL_SECONDS == 300
        assert settings.INITIAL_SWEEP_DELAY_SECONDS == 5.0
        assert settings.SUBSCRIBER_CHARGE_DELAY_SECONDS == 0.3
        assert settings.NOTIFICATION_DELAY_SECONDS == 2.0
        assert settings.TENANT_SWEEP_CONCURRENCY == 1

    def test_master_card_required_outside_testing(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError) as exc:
                Settings(TESTING=False, MASTER_RECEIVER_CARD="", _env_file=None)
        assert "MASTER_RECEIVER_CARD" in str(exc.value)

    def test_production_settings_with_master_card(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(
                TESTING=False, MASTER_RECEIVER_CARD="MASTER", _env_file=None
            )
        assert settings.MASTER_RECEIVER_CARD == "MASTER"

    def test_invalid_default_price_rejected(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError) as exc:
                Settings(TESTING=True, DEFAULT_TENANT_PRICE="0.123456789", _env_file=None)
        assert "DEFAULT_TENANT_PRICE" in str(exc.value)

    def test_check_interval_must_be_positive(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(TESTING=True, CHECK_INTERVAL_SECONDS=0, _env_file=None)


class TestCoinApiBaseUrl:
    @pytest.mark.parametrize(
        "configured, expected",
        [
            ("https://bank.example/", "https://bank.example/api"),
            ("https://bank.example///", "https://bank.example/api"),
            ("https://bank.example/api", "https://bank.example/api"),
            ("https://bank.example/api/", "https://bank.example/api"),
        ],
    )
    def test_normalized_to_api_suffix(self, configured, expected):
        settings = Settings(TESTING=True, COIN_API_URL=configured, _env_file=None)
        assert settings.coin_api_base_url == expected


def test_reload_settings_from_environment_replaces_cached_instance():
    with patch.dict("os.environ", {"CHECK_INTERVAL_SECONDS": "60"}):
        first = get_settings()
        assert first.CHECK_INTERVAL_SECONDS == 60
    with patch.dict("os.environ", {"CHECK_INTERVAL_SECONDS": "120"}):
        refreshed = reload_settings_from_environment()
    assert refreshed is not first
    assert refreshed.CHECK_INTERVAL_SECONDS == 120
