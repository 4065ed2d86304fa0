"""
Adapter settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from redis_rooms.config.constants import AdapterConstants


class Settings(BaseSettings):
    """Adapter settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_prefix="ROOMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str = "redis://localhost:6379"
    redis_pool_max_connections: int = 50
    redis_socket_timeout: int = 5  # Socket timeout in seconds (connect and read/write)

    # Keys
    namespace: str = AdapterConstants.DEFAULT_NAMESPACE
    scan_count: int = 500  # COUNT hint for SCAN over the namespace

    # Broadcast
    relay_mode: bool = False

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = ""  # Empty = DEBUG when debug is on, INFO otherwise


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()
