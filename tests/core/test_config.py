"""Tests for oceanledger.core.config - CoreSettings and global config management.

Tests cover:
- Settings loading with defaults
- Environment variable overrides
- Validation of ledger settings
- Singleton behavior (get_config / clear_config_cache)
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from oceanledger.core.config import (
    CoreSettings,
    clear_config_cache,
    get_config,
)

# ============================================================================
# Defaults
# ============================================================================


class TestCoreSettingsDefaults:
    def test_logging_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.log_level == "INFO"
        assert settings.log_format == ""
        assert settings.log_file is None

    def test_ledger_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.tracked_field == "ph"
        assert settings.max_measurement_id == 2**63 - 1
        assert settings.known_regions is None
        assert settings.region_allow_list is None

    def test_decryption_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.request_timeout_seconds == 0
        assert settings.oracle_public_key is None


# ============================================================================
# Environment overrides
# ============================================================================


class TestEnvironmentOverrides:
    def test_tracked_field_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("OCEANLEDGER_TRACKED_FIELD", "Temperature")
        assert CoreSettings().tracked_field == "temperature"

    def test_timeout_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("OCEANLEDGER_REQUEST_TIMEOUT_SECONDS", "120")
        assert CoreSettings().request_timeout_seconds == 120

    def test_known_regions_parsed(self, clean_env, monkeypatch):
        monkeypatch.setenv("OCEANLEDGER_KNOWN_REGIONS", "pacific-nw, gulf-of-maine,,")
        assert CoreSettings().region_allow_list == frozenset({"pacific-nw", "gulf-of-maine"})

    def test_field_name_init(self, clean_env):
        settings = CoreSettings(tracked_field="carbonate", max_measurement_id=10)
        assert settings.tracked_field == "carbonate"
        assert settings.max_measurement_id == 10


class TestValidation:
    def test_unknown_tracked_field_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            CoreSettings(tracked_field="salinity")

    def test_negative_timeout_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            CoreSettings(request_timeout_seconds=-1)

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_max_measurement_id_must_allow_one_id(self, clean_env, monkeypatch, value):
        monkeypatch.setenv("OCEANLEDGER_MAX_MEASUREMENT_ID", value)
        with pytest.raises(ValidationError):
            CoreSettings()


# ============================================================================
# Singleton
# ============================================================================


class TestGetConfig:
    def test_returns_same_instance(self, clean_env):
        assert get_config() is get_config()

    def test_clear_cache_reloads(self, clean_env, monkeypatch):
        first = get_config()
        monkeypatch.setenv("OCEANLEDGER_LOG_LEVEL", "DEBUG")
        clear_config_cache()
        second = get_config()

        assert first is not second
        assert second.log_level == "DEBUG"
