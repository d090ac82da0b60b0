"""
Configuration Module
====================

Centralized configuration management using Pydantic Settings.
Loads from environment variables with type validation and defaults.

Usage:
    from custody.config import settings

    print(settings.environment)
    print(settings.ledger.mode)
"""

from custody.config.settings import (
    Environment,
    LedgerMode,
    LogLevel,
    Settings,
    StorageBackend,
    get_settings,
)


# Global settings instance (singleton)
settings = get_settings()

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "Environment",
    "LogLevel",
    "LedgerMode",
    "StorageBackend",
]
