"""
Configuration management for openclaw-packager.

This module handles loading, validating, and saving the packager's own
settings file.
"""

from openclaw_packager.config.settings import (
    ConfigurationError,
    Settings,
    get_config_path,
    load_config,
    save_config,
)

__all__ = [
    "Settings",
    "load_config",
    "save_config",
    "get_config_path",
    "ConfigurationError",
]
