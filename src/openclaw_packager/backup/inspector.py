"""
Read-only archive inspection.

Validates the manifest exactly like an import would, then summarizes the
archive without touching the filesystem.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from openclaw_packager.backup.archive import (
    SECRETS_TEMPLATE_ENTRY,
    ArchiveError,
    ErrorKind,
    open_archive,
    read_manifest,
)
from openclaw_packager.manifest import Manifest
from openclaw_packager.redaction import is_secret_file

DEFAULT_PREVIEW_LIMIT = 20


@dataclass(frozen=True)
class EntryInfo:
    """One file entry of an archive."""

    name: str
    size: int
    sensitive: bool = False


@dataclass
class InspectResult:
    """Summary of an archive."""

    success: bool
    path: Path | None = None
    archive_size: int = 0
    manifest: Manifest | None = None
    entries: list[EntryInfo] = field(default_factory=list)
    has_secrets_template: bool = False
    preview_limit: int = DEFAULT_PREVIEW_LIMIT
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def preview(self) -> list[EntryInfo]:
        """The first preview_limit entries, sorted by name."""
        return self.entries[: self.preview_limit]

    @property
    def remaining(self) -> int:
        """Number of entries not shown in the preview."""
        return max(0, len(self.entries) - self.preview_limit)


def inspect_archive(archive_path: Path, preview_limit: int = DEFAULT_PREVIEW_LIMIT) -> InspectResult:
    """
    Inspect an archive.

    Args:
        archive_path: Path to the export archive.
        preview_limit: Number of entries to include in the preview.

    Returns:
        InspectResult; on a missing or invalid manifest, success is False and
        error/error_kind describe why.
    """
    archive_path = Path(archive_path)
    try:
        zf = open_archive(archive_path)
    except ArchiveError as e:
        return InspectResult(success=False, path=archive_path, error=str(e), error_kind=e.kind)

    with zf:
        try:
            manifest = read_manifest(zf)
        except ArchiveError as e:
            return InspectResult(success=False, path=archive_path, error=str(e), error_kind=e.kind)

        names = set(zf.namelist())
        entries = sorted(
            (
                EntryInfo(info.filename, info.file_size, is_secret_file(info.filename))
                for info in zf.infolist()
                if not info.is_dir()
            ),
            key=lambda e: e.name,
        )

    return InspectResult(
        success=True,
        path=archive_path,
        archive_size=archive_path.stat().st_size,
        manifest=manifest,
        entries=entries,
        has_secrets_template=SECRETS_TEMPLATE_ENTRY in names,
        preview_limit=preview_limit,
    )
