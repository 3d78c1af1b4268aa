"""
Configuration management module.

Provides centralized, type-safe configuration using Pydantic Settings.
All config modules support environment variable mapping with validation.
"""

from entitystore.configs.settings import Settings, get_settings
from entitystore.configs.store import StoreSettings

__all__ = ["Settings", "StoreSettings", "get_settings"]
