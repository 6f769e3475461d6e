"""
Archive reading helpers and the archive error taxonomy.

Archives are zip files with a flat namespace of entries partitioned by
category prefix (config/, cron/, workspace/, agents/<name>/, credentials/)
plus two reserved entries, manifest.json and SECRETS_TEMPLATE.json.
"""

from __future__ import annotations

import json
import zipfile
from enum import Enum
from pathlib import Path

from openclaw_packager.manifest import Manifest, validate_manifest
from openclaw_packager.redaction import SecretsTemplate

MANIFEST_ENTRY = "manifest.json"
SECRETS_TEMPLATE_ENTRY = "SECRETS_TEMPLATE.json"
RESERVED_ENTRIES = frozenset({MANIFEST_ENTRY, SECRETS_TEMPLATE_ENTRY})

CONFIG_PREFIX = "config/"
CRON_PREFIX = "cron/"
WORKSPACE_PREFIX = "workspace/"
AGENTS_PREFIX = "agents/"
CREDENTIALS_PREFIX = "credentials/"


class ErrorKind(Enum):
    """Fatal error categories reported by the engines."""

    ENVIRONMENT_NOT_FOUND = "environment_not_found"
    ARCHIVE_UNREADABLE = "archive_unreadable"
    MANIFEST_MISSING = "manifest_missing"
    MANIFEST_INVALID = "manifest_invalid"
    WRITE_FAILURE = "write_failure"


class ArchiveError(Exception):
    """Base error for archives that cannot be used."""

    kind = ErrorKind.ARCHIVE_UNREADABLE


class ArchiveUnreadableError(ArchiveError):
    """The file is missing or is not a readable zip archive."""

    kind = ErrorKind.ARCHIVE_UNREADABLE


class ManifestMissingError(ArchiveError):
    """The archive has no manifest.json entry."""

    kind = ErrorKind.MANIFEST_MISSING


class ManifestInvalidError(ArchiveError):
    """manifest.json is unparseable or was not produced by this tool."""

    kind = ErrorKind.MANIFEST_INVALID


def open_archive(archive_path: Path) -> zipfile.ZipFile:
    """
    Open an archive for reading.

    Raises:
        ArchiveUnreadableError: If the file is missing or not a valid zip.
    """
    archive_path = Path(archive_path)
    if not archive_path.is_file():
        raise ArchiveUnreadableError(f"File not found: {archive_path}")

    try:
        return zipfile.ZipFile(archive_path, "r")
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveUnreadableError(f"Could not open zip file {archive_path}: {e}") from e


def read_manifest(zf: zipfile.ZipFile) -> Manifest:
    """
    Read and validate the manifest of an open archive.

    Raises:
        ManifestMissingError: If manifest.json is absent.
        ManifestInvalidError: If it cannot be parsed or fails validation.
    """
    try:
        raw = zf.read(MANIFEST_ENTRY)
    except KeyError as e:
        raise ManifestMissingError(
            "Not a valid openclaw-packager export: missing manifest.json"
        ) from e
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveUnreadableError(f"Could not read manifest.json: {e}") from e

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ManifestInvalidError(f"Invalid manifest.json: {e}") from e

    if not validate_manifest(data):
        raise ManifestInvalidError("Invalid manifest.json: invalid manifest structure")

    return Manifest.from_dict(data)


def read_secrets_template(zf: zipfile.ZipFile) -> SecretsTemplate | None:
    """Return the archive's secrets template, or None if absent or unreadable."""
    try:
        data = json.loads(zf.read(SECRETS_TEMPLATE_ENTRY).decode("utf-8"))
    except (KeyError, UnicodeDecodeError, ValueError, zipfile.BadZipFile):
        return None
    if not isinstance(data, dict):
        return None
    return SecretsTemplate.from_dict(data)


def data_entries(zf: zipfile.ZipFile) -> list[zipfile.ZipInfo]:
    """File entries of an archive, excluding directories and reserved entries."""
    return [
        info
        for info in zf.infolist()
        if not info.is_dir() and info.filename not in RESERVED_ENTRIES
    ]
