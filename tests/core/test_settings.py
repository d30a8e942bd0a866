"""Tests for core.settings module.

Covers:
- CacheSettings defaults
- Environment variable override
- Validation of the debounce window and log options
- get_settings caching and ConfigError wrapping
"""

import pytest
from pydantic import ValidationError

from cellcache.core.errors import ConfigError
from cellcache.core.settings import CacheSettings, get_settings, reset_settings


class TestCacheSettingsDefaults:
    def test_default_unload_delay(self):
        s = CacheSettings()
        assert s.unload_delay_seconds == 1.0

    def test_default_log_options(self):
        s = CacheSettings()
        assert s.log_level == "INFO"
        assert s.log_format == "json"


class TestCacheSettingsEnvOverride:
    def test_unload_delay_from_env(self, monkeypatch):
        monkeypatch.setenv("CELLCACHE_UNLOAD_DELAY_SECONDS", "0.25")
        assert CacheSettings().unload_delay_seconds == 0.25

    def test_log_level_from_env_is_upper_cased(self, monkeypatch):
        monkeypatch.setenv("CELLCACHE_LOG_LEVEL", "debug")
        assert CacheSettings().log_level == "DEBUG"

    def test_unprefixed_env_is_ignored(self, monkeypatch):
        monkeypatch.setenv("UNLOAD_DELAY_SECONDS", "9")
        assert CacheSettings().unload_delay_seconds == 1.0


class TestCacheSettingsValidation:
    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            CacheSettings(unload_delay_seconds=-1)

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            CacheSettings(log_level="LOUD")

    def test_unknown_log_format_rejected(self):
        with pytest.raises(ValidationError):
            CacheSettings(log_format="xml")


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_reset_rereads_environment(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("CELLCACHE_UNLOAD_DELAY_SECONDS", "3")
        reset_settings()
        second = get_settings()
        assert second is not first
        assert second.unload_delay_seconds == 3

    def test_invalid_environment_raises_config_error(self, monkeypatch):
        monkeypatch.setenv("CELLCACHE_UNLOAD_DELAY_SECONDS", "-5")
        with pytest.raises(ConfigError):
            get_settings()
