"""
Unified application settings.

Aggregates all configuration modules into a single Settings class.

Dependencies: All config modules
System role: Central configuration aggregator
"""

from functools import lru_cache

from pydantic import Field

from entitystore.configs.base import BaseSettings
from entitystore.configs.store import StoreSettings


class Settings(BaseSettings):
    """Unified settings aggregating all config modules."""

    store: StoreSettings = Field(default_factory=StoreSettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get settings singleton.

    Environment variables are loaded once; call get_settings.cache_clear()
    to reload them.

    Returns:
        Settings: Settings instance

    Usage:
        from entitystore.configs import get_settings
        settings = get_settings()
    """
    return Settings()
