"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings

from companyscope.exceptions import ConfigError


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "COMPANYSCOPE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    # Backend
    api_base_url: str = "http://localhost:3000"
    request_timeout_seconds: float = 10.0

    # Request cache
    cache_ttl_seconds: float = 30.0
    cache_max_size: int = 1000
    cache_max_stale_seconds: float = 300.0  # how long stale values stay around as fallback

    # Preferences
    preferences_path: str = "~/.companyscope/preferences.json"

    # App
    log_level: str = "INFO"
    log_json: bool = False


def validate_settings(settings: Settings) -> Settings:
    """Reject values the cache cannot work with."""
    if settings.cache_ttl_seconds <= 0:
        msg = "CACHE_TTL_SECONDS must be positive"
        raise ConfigError(msg)
    if settings.cache_max_size <= 0:
        msg = "CACHE_MAX_SIZE must be positive"
        raise ConfigError(msg)
    if settings.cache_max_stale_seconds < 0:
        msg = "CACHE_MAX_STALE_SECONDS must not be negative"
        raise ConfigError(msg)
    return settings


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return validate_settings(Settings())
