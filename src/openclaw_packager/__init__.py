"""
openclaw-packager - Backup and restore for OpenClaw state directories.

Packs an OpenClaw installation (config, cron jobs, agents, workspace and,
optionally, credentials) into a portable zip archive and restores it onto
another machine without clobbering what is already there.

Key Features:
    - Category-based export with sensible defaults (auth excluded)
    - Reversible-by-template secret redaction for JSON files
    - Self-describing archives validated by an embedded manifest
    - Merge-first restores: existing files and settings are preserved
    - Read-only inspection of archives before importing them
"""

__version__ = "0.1.0"

from openclaw_packager.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
