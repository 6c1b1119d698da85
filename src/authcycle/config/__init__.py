"""
authcycle configuration module.

This module provides settings loading and logging setup.
"""

from authcycle.config.logging_config import configure_logging
from authcycle.config.settings import (
    AuthcycleSettings,
    CacheConfig,
    RefreshConfig,
    get_settings,
    reset_settings,
)

__all__ = [
    "AuthcycleSettings",
    "CacheConfig",
    "RefreshConfig",
    "get_settings",
    "reset_settings",
    "configure_logging",
]
