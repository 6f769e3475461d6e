"""
Export, import and inspection of OpenClaw backup archives.

Usage:
    from openclaw_packager.backup import ArchiveExporter, ArchiveImporter

    # Create an export
    result = ArchiveExporter(paths, ExportOptions()).export(Path("backup.zip"))

    # Restore it somewhere else
    result = ArchiveImporter(Path("backup.zip"), target_paths).run()

    # Look inside without importing
    result = inspect_archive(Path("backup.zip"))
"""

from openclaw_packager.backup.archive import (
    ArchiveError,
    ArchiveUnreadableError,
    ErrorKind,
    ManifestInvalidError,
    ManifestMissingError,
)
from openclaw_packager.backup.exporter import (
    ArchiveExporter,
    ExportOptions,
    ExportPreview,
    ExportResult,
    ExportStats,
    export_state,
)
from openclaw_packager.backup.importer import (
    ArchiveImporter,
    FileAction,
    ImportMode,
    ImportOptions,
    ImportResult,
    import_archive,
    map_entry_to_target,
)
from openclaw_packager.backup.inspector import InspectResult, inspect_archive

__all__ = [
    "ArchiveExporter",
    "ExportOptions",
    "ExportPreview",
    "ExportResult",
    "ExportStats",
    "export_state",
    "ArchiveImporter",
    "FileAction",
    "ImportMode",
    "ImportOptions",
    "ImportResult",
    "import_archive",
    "map_entry_to_target",
    "InspectResult",
    "inspect_archive",
    "ArchiveError",
    "ArchiveUnreadableError",
    "ManifestMissingError",
    "ManifestInvalidError",
    "ErrorKind",
]
