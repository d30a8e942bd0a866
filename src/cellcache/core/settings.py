"""
Settings for cellcache.

Manifesto:
    The debounce window is a fixed constant shared by every store in a
    process, but "fixed" should still mean "configurable at startup": tests
    want milliseconds, interactive clients want about a second.

Features:
    - **CacheSettings:** unload debounce window, log level, log format
    - **env_prefix:** ``CELLCACHE_`` environment variables
    - **.env file support:** Automatic loading via pydantic-settings

Examples:
    >>> from cellcache.core.settings import CacheSettings
    >>> CacheSettings(unload_delay_seconds=0.01).unload_delay_seconds
    0.01

Tags:
    settings, configuration, pydantic, environment, cellcache

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cellcache.core.errors import ConfigError


class CacheSettings(BaseSettings):
    """Process-wide cache configuration.

    Fields
    ──────
    unload_delay_seconds : Debounce window between a retain count reaching
                           zero and the data actually being released
    log_level            : Structlog log level
    log_format           : ``json`` or ``console``
    """

    model_config = SettingsConfigDict(
        env_prefix="CELLCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Retention ────────────────────────────────────────────────
    unload_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Debounce window before unloading released data",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in {"json", "console"}:
            raise ValueError(f"log_format must be 'json' or 'console', got {value!r}")
        return value


_settings: CacheSettings | None = None


def get_settings() -> CacheSettings:
    """Return the cached process-wide :class:`CacheSettings`."""
    global _settings
    if _settings is None:
        try:
            _settings = CacheSettings()
        except ValidationError as exc:
            raise ConfigError(f"Invalid cellcache settings: {exc}", cause=exc) from exc
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next :func:`get_settings` re-reads the environment."""
    global _settings
    _settings = None


__all__ = ["CacheSettings", "get_settings", "reset_settings"]
