"""
Configuration settings management for openclaw-packager.

This module handles loading, validating, and saving the packager's own
settings from a YAML file with support for environment variable overrides.
These are tool preferences (output location, compression, preview size,
extra exclusions), not the OpenClaw configuration being backed up.

Configuration is loaded from ~/.openclaw-packager/config.yaml by default,
with the path overridable via the OPENCLAW_PACKAGER_CONFIG environment
variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".openclaw-packager"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class ExportConfig:
    """Export defaults."""

    compression_level: int = 9
    include_projects: bool = False


@dataclass
class InspectConfig:
    """Inspect output settings."""

    preview_limit: int = 20


@dataclass
class ExclusionConfig:
    """Names added on top of the built-in exclusion tables."""

    extra_dirs: list[str] = field(default_factory=list)
    extra_files: list[str] = field(default_factory=list)
    extra_workspace_dirs: list[str] = field(default_factory=list)


@dataclass
class Settings:
    """
    Complete openclaw-packager settings.

    Attributes:
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        output_dir: Directory where exports are written when no explicit
            output path is given.
        export: Export defaults.
        inspect: Inspect output settings.
        exclusions: Additional exclusion names.
    """

    log_level: str = "INFO"
    output_dir: str = "."

    export: ExportConfig = field(default_factory=ExportConfig)
    inspect: InspectConfig = field(default_factory=InspectConfig)
    exclusions: ExclusionConfig = field(default_factory=ExclusionConfig)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from OPENCLAW_PACKAGER_CONFIG environment variable if
    set, otherwise returns the default path.
    """
    env_path = os.environ.get("OPENCLAW_PACKAGER_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.

    Args:
        config_path: Optional path to configuration file. If not provided,
                    uses OPENCLAW_PACKAGER_CONFIG or the default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Raises:
        ConfigurationError: If the configuration cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_data = _settings_to_dict(settings)

    try:
        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    packager = data.get("packager") or {}
    if "log_level" in packager:
        settings.log_level = str(packager["log_level"]).upper()
    if "output_dir" in packager:
        settings.output_dir = str(packager["output_dir"])

    export = data.get("export") or {}
    if "compression_level" in export:
        settings.export.compression_level = _to_int(
            export["compression_level"], "export.compression_level"
        )
    if "include_projects" in export:
        settings.export.include_projects = bool(export["include_projects"])

    inspect = data.get("inspect") or {}
    if "preview_limit" in inspect:
        settings.inspect.preview_limit = _to_int(inspect["preview_limit"], "inspect.preview_limit")

    exclusions = data.get("exclusions") or {}
    if "extra_dirs" in exclusions:
        settings.exclusions.extra_dirs = [str(x) for x in exclusions["extra_dirs"] or []]
    if "extra_files" in exclusions:
        settings.exclusions.extra_files = [str(x) for x in exclusions["extra_files"] or []]
    if "extra_workspace_dirs" in exclusions:
        settings.exclusions.extra_workspace_dirs = [
            str(x) for x in exclusions["extra_workspace_dirs"] or []
        ]

    return settings


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "OPENCLAW_PACKAGER_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "OPENCLAW_PACKAGER_OUTPUT_DIR": ("output_dir", str),
        "OPENCLAW_PACKAGER_COMPRESSION_LEVEL": (
            "export.compression_level",
            lambda x: _to_int(x, "OPENCLAW_PACKAGER_COMPRESSION_LEVEL"),
        ),
        "OPENCLAW_PACKAGER_PREVIEW_LIMIT": (
            "inspect.preview_limit",
            lambda x: _to_int(x, "OPENCLAW_PACKAGER_PREVIEW_LIMIT"),
        ),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested_attr(settings, attr_path, converter(value))

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    if settings.log_level not in VALID_LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    if not 0 <= settings.export.compression_level <= 9:
        raise ConfigurationError("compression_level must be between 0 and 9")

    if settings.inspect.preview_limit < 1:
        raise ConfigurationError("preview_limit must be at least 1")


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "packager": {
            "log_level": settings.log_level,
            "output_dir": settings.output_dir,
        },
        "export": {
            "compression_level": settings.export.compression_level,
            "include_projects": settings.export.include_projects,
        },
        "inspect": {
            "preview_limit": settings.inspect.preview_limit,
        },
        "exclusions": {
            "extra_dirs": list(settings.exclusions.extra_dirs),
            "extra_files": list(settings.exclusions.extra_files),
            "extra_workspace_dirs": list(settings.exclusions.extra_workspace_dirs),
        },
    }
