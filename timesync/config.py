"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for all application settings,
loaded from environment variables with sensible defaults.

Usage:
    from timesync.config import get_settings
    settings = get_settings()
    storage_key = settings.storage.key
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str = Field(default="", description="Redis password")
    max_connections: int = Field(default=50, description="Maximum pool connections")
    pool_timeout_sec: float = Field(default=5.0, description="Pool timeout in seconds")
    health_check_interval: int = Field(default=30, description="Health check interval in seconds")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, description="Socket connect timeout in seconds")


class StorageSettings(BaseSettings):
    """Document store configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")

    backend: Literal["redis", "file", "memory"] = Field(
        default="redis", description="Where the state document lives"
    )
    key: str = Field(default="timesync_data", description="Key holding the state document")
    file_path: str = Field(default="timesync_data.json", description="Path used by the file backend")

    @field_validator("backend", mode="before")
    @classmethod
    def parse_backend(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class PollSettings(BaseSettings):
    """Poll limits and creation defaults."""

    model_config = SettingsConfigDict(env_prefix="POLL_", extra="ignore")

    max_participants: int = Field(default=10, description="Participants allowed per poll")
    hero_image_max_bytes: int = Field(
        default=2 * 1024 * 1024, description="Largest inline hero image (decoded bytes)"
    )
    default_duration: int = Field(default=1440, description="Slot duration in minutes")
    default_start_hour: int = Field(default=0, description="First hour of the daily window")
    default_end_hour: int = Field(default=24, description="Hour the daily window ends")


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )
    origins_regex: str = Field(
        default="",
        validation_alias="CORS_ORIGINS_REGEX",
        description="Regex pattern for origins",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"] and not self.origins_regex


class DebugSettings(BaseSettings):
    """Debug flags and log level."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")
    log_level: str = Field(default="INFO", alias="log_level")

    @field_validator("request", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower() in ("1", "true", "yes")
        return bool(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_level(cls, v):
        return str(v).upper()


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.
    """

    def __init__(self) -> None:
        self.redis = RedisSettings()
        self.storage = StorageSettings()
        self.poll = PollSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
