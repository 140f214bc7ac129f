"""
Configuration management using pydantic-settings.

Loads cache defaults from environment variables and .env files.
Constructor options passed to MemCache always win over these settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import ByteSize, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Cache settings loaded from environment variables.

    Optional:
        MEMCACHE_CAPACITY: Byte budget, as a number or a size string ("64MiB")
        MEMCACHE_AUTO_PRUNE: Whether to prune automatically after insertions
        MEMCACHE_AUTO_PRUNE_INTERVAL_MS: Minimum milliseconds between automatic prunes
        MEMCACHE_PRUNE_DEPTH: Key depth of the smallest eviction unit
        MEMCACHE_LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    MEMCACHE_CAPACITY: ByteSize | None = Field(
        default=None, description="Byte budget; unbounded when unset"
    )
    MEMCACHE_AUTO_PRUNE: bool = Field(
        default=True, description="Prune automatically after insertions"
    )
    MEMCACHE_AUTO_PRUNE_INTERVAL_MS: float | None = Field(
        default=None, ge=0, description="Minimum milliseconds between automatic prunes"
    )
    MEMCACHE_PRUNE_DEPTH: int | None = Field(
        default=None, ge=0, description="Key depth of the smallest eviction unit"
    )

    MEMCACHE_LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )

    @property
    def capacity(self) -> int | None:
        """Get capacity in bytes (lowercase alias)."""
        return None if self.MEMCACHE_CAPACITY is None else int(self.MEMCACHE_CAPACITY)

    def configure_logging(self, log_file: Path | None = None) -> None:
        """Apply MEMCACHE_LOG_LEVEL to the mc loggers."""
        from mc.logging import setup_logging

        setup_logging(log_level=self.MEMCACHE_LOG_LEVEL, log_file=log_file)

    def cache_options(self) -> dict[str, Any]:
        """Return the settings as MemCache keyword options."""
        return {
            "capacity": self.capacity,
            "auto_prune": self.MEMCACHE_AUTO_PRUNE,
            "auto_prune_interval": self.MEMCACHE_AUTO_PRUNE_INTERVAL_MS,
            "prune_depth": self.MEMCACHE_PRUNE_DEPTH,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
