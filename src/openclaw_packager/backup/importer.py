"""
Import engine: restores an export archive onto a state directory.

Nothing is written until the archive's manifest has been validated. The
config file and the cron job list get structural merges; every other entry
is copied as a whole file. In merge mode (the default) existing files and
existing config values always win, so re-running an import is harmless. In
force mode existing files are replaced wholesale.
"""

from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

from openclaw_packager.backup.archive import (
    AGENTS_PREFIX,
    CONFIG_PREFIX,
    CREDENTIALS_PREFIX,
    CRON_PREFIX,
    RESERVED_ENTRIES,
    WORKSPACE_PREFIX,
    ArchiveError,
    ErrorKind,
    data_entries,
    open_archive,
    read_manifest,
    read_secrets_template,
)
from openclaw_packager.manifest import Manifest
from openclaw_packager.paths import (
    AGENT_SUBDIR,
    CONFIG_FILENAME,
    CRON_JOBS_FILENAME,
    StateDirectoryNotFoundError,
    StateRoot,
    resolve_state_root,
)
from openclaw_packager.redaction import SecretsTemplate
from openclaw_packager.utils import deep_merge, read_json, write_json

logger = logging.getLogger(__name__)

CRON_ENTRY = f"{CRON_PREFIX}{CRON_JOBS_FILENAME}"
CONFIG_ENTRY = f"{CONFIG_PREFIX}{CONFIG_FILENAME}"


class ImportMode(Enum):
    """How existing destination files are treated."""

    MERGE = "merge"
    FORCE = "force"


class FileAction(Enum):
    """What happened (or would happen) to one archive entry."""

    WRITE = "write"
    SKIP = "skip"
    OVERWRITE = "overwrite"


@dataclass
class ImportOptions:
    """Options for one import."""

    mode: ImportMode = ImportMode.MERGE
    skip_workspace: bool = False
    skip_cron: bool = False
    skip_config: bool = False
    skip_agents: bool = False
    dry_run: bool = False


@dataclass
class ImportPlan:
    """Which categories will be imported."""

    config: bool = False
    cron: bool = False
    workspace: bool = False
    agents: bool = False
    credentials: bool = False

    @classmethod
    def from_manifest(cls, manifest: Manifest, options: ImportOptions) -> ImportPlan:
        includes = manifest.includes
        return cls(
            config=includes.config and not options.skip_config,
            cron=includes.cron and not options.skip_cron,
            workspace=includes.workspace and not options.skip_workspace,
            agents=bool(includes.agents) and not options.skip_agents,
            credentials=includes.auth,
        )

    def allows(self, entry_name: str) -> bool:
        """True if the entry belongs to a category being imported."""
        if entry_name.startswith(CONFIG_PREFIX):
            return self.config
        if entry_name.startswith(CRON_PREFIX):
            return self.cron
        if entry_name.startswith(WORKSPACE_PREFIX):
            return self.workspace
        if entry_name.startswith(AGENTS_PREFIX):
            return self.agents
        if entry_name.startswith(CREDENTIALS_PREFIX):
            return self.credentials
        return False


@dataclass
class ImportStats:
    """Counters for an import run."""

    files_written: int = 0
    files_skipped: int = 0
    files_overwritten: int = 0
    cron_jobs_added: int = 0
    cron_jobs_skipped: int = 0
    config_keys_added: int = 0
    warnings: list[str] = field(default_factory=list)

    def count(self, action: FileAction) -> None:
        if action is FileAction.WRITE:
            self.files_written += 1
        elif action is FileAction.OVERWRITE:
            self.files_overwritten += 1
        else:
            self.files_skipped += 1


@dataclass
class ImportResult:
    """Result of an import operation."""

    success: bool
    manifest: Manifest | None = None
    plan: ImportPlan | None = None
    stats: ImportStats = field(default_factory=ImportStats)
    actions: list[tuple[FileAction, str]] = field(default_factory=list)
    secrets_template: SecretsTemplate | None = None
    fresh_install: bool = False
    dry_run: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def needs_secrets(self) -> bool:
        """True if the archive had secrets stripped that the user must refill."""
        return (
            self.manifest is not None
            and not self.manifest.secrets_included
            and self.manifest.secrets_stripped > 0
        )


@dataclass
class CronMergeResult:
    action: FileAction
    added: int = 0
    skipped: int = 0
    error: str | None = None


@dataclass
class ConfigMergeResult:
    action: FileAction
    keys_added: int = 0
    error: str | None = None


def _safe_relative(rest: str) -> PurePosixPath | None:
    """Reject empty, absolute or parent-escaping relative paths."""
    if not rest:
        return None
    rel = PurePosixPath(rest)
    if rel.is_absolute() or ".." in rel.parts or "\\" in rest:
        return None
    return rel


def map_entry_to_target(entry_name: str, paths: StateRoot) -> Path | None:
    """
    Map a virtual archive path to its destination on disk.

    agents/<name>/<rest> goes to <agents>/<name>/agent/<rest>. Reserved
    entries, unknown prefixes and unsafe paths map to None.
    """
    if entry_name in RESERVED_ENTRIES:
        return None

    prefixes = (
        (CONFIG_PREFIX, paths.root),
        (CRON_PREFIX, paths.cron),
        (WORKSPACE_PREFIX, paths.workspace),
        (CREDENTIALS_PREFIX, paths.credentials),
    )
    for prefix, base in prefixes:
        if entry_name.startswith(prefix):
            rel = _safe_relative(entry_name[len(prefix):])
            return base.joinpath(*rel.parts) if rel else None

    if entry_name.startswith(AGENTS_PREFIX):
        agent, _, rest = entry_name[len(AGENTS_PREFIX):].partition("/")
        rel = _safe_relative(rest)
        if not agent or agent in (".", "..") or rel is None:
            return None
        return paths.agents.joinpath(agent, AGENT_SUBDIR, *rel.parts)

    return None


def merge_cron_jobs(source: bytes, target_path: Path, mode: ImportMode) -> CronMergeResult:
    """
    Import a cron job list.

    When the target is absent or mode is force, the source file is written
    verbatim. Otherwise jobs are appended by id: ids already present at the
    destination are skipped, destination jobs are never changed or reordered.
    """
    try:
        source_data = json.loads(source.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        return CronMergeResult(FileAction.SKIP, error=f"Could not parse source cron/jobs.json: {e}")

    source_jobs = source_data.get("jobs") if isinstance(source_data, dict) else None
    if not isinstance(source_jobs, list):
        source_jobs = []

    exists = target_path.exists()
    if mode is ImportMode.FORCE or not exists:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_bytes(source)
        return CronMergeResult(
            FileAction.OVERWRITE if exists else FileAction.WRITE,
            added=len(source_jobs),
        )

    target_data = read_json(target_path)
    if not isinstance(target_data, dict) or not isinstance(target_data.get("jobs", []), list):
        return CronMergeResult(
            FileAction.SKIP, error=f"Existing {target_path} is not a valid job list; left untouched"
        )

    target_jobs: list[Any] = list(target_data.get("jobs", []))
    existing_ids = {job.get("id") for job in target_jobs if isinstance(job, dict)}

    result = CronMergeResult(FileAction.SKIP)
    for job in source_jobs:
        job_id = job.get("id") if isinstance(job, dict) else None
        if job_id in existing_ids:
            result.skipped += 1
            continue
        target_jobs.append(job)
        existing_ids.add(job_id)
        result.added += 1

    if result.added > 0:
        write_json(target_path, {**target_data, "jobs": target_jobs})
        result.action = FileAction.OVERWRITE

    return result


def merge_config(source: bytes, target_path: Path, mode: ImportMode) -> ConfigMergeResult:
    """
    Import the OpenClaw config file.

    When the target is absent or mode is force, the source file is written
    verbatim. Otherwise the archive config is merged in underneath the
    existing one: nested objects merge key by key and every value already
    set at the destination wins.
    """
    try:
        source_config = json.loads(source.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        return ConfigMergeResult(FileAction.SKIP, error=f"Could not parse source config: {e}")

    exists = target_path.exists()
    if mode is ImportMode.FORCE or not exists:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_bytes(source)
        return ConfigMergeResult(FileAction.OVERWRITE if exists else FileAction.WRITE)

    target_config = read_json(target_path)
    if not isinstance(target_config, dict) or not isinstance(source_config, dict):
        return ConfigMergeResult(
            FileAction.SKIP, error=f"Existing {target_path} could not be merged; left untouched"
        )

    merged, added = deep_merge(target_config, source_config)
    if added == 0:
        return ConfigMergeResult(FileAction.SKIP)

    write_json(target_path, merged)
    return ConfigMergeResult(FileAction.OVERWRITE, keys_added=added)


class ArchiveImporter:
    """
    Restores one archive onto one destination state root.

    Usage:
        importer = ArchiveImporter(Path("backup.zip"), derive_paths(target))
        result = importer.run()
    """

    def __init__(
        self,
        archive_path: Path,
        target: StateRoot,
        options: ImportOptions | None = None,
    ) -> None:
        self.archive_path = Path(archive_path)
        self.target = target
        self.options = options or ImportOptions()

    def run(self) -> ImportResult:
        """Validate the archive, then import (or preview) its entries."""
        try:
            zf = open_archive(self.archive_path)
        except ArchiveError as e:
            return ImportResult(success=False, error=str(e), error_kind=e.kind)

        with zf:
            try:
                manifest = read_manifest(zf)
            except ArchiveError as e:
                return ImportResult(success=False, error=str(e), error_kind=e.kind)

            result = ImportResult(
                success=True,
                manifest=manifest,
                plan=ImportPlan.from_manifest(manifest, self.options),
                fresh_install=not self.target.is_installed(),
                dry_run=self.options.dry_run,
            )

            try:
                if self.options.dry_run:
                    self._preview(zf, result.plan, result)
                else:
                    self._import(zf, result.plan, result)
            except zipfile.BadZipFile as e:
                result.success = False
                result.error = f"Corrupt archive entry: {e}"
                result.error_kind = ErrorKind.ARCHIVE_UNREADABLE
            except OSError as e:
                logger.exception("Import failed")
                result.success = False
                result.error = f"Write failed: {e}"
                result.error_kind = ErrorKind.WRITE_FAILURE

            if result.needs_secrets:
                result.secrets_template = read_secrets_template(zf)

        return result

    def _classify(self, target_path: Path) -> FileAction:
        if not target_path.exists():
            return FileAction.WRITE
        if self.options.mode is ImportMode.MERGE:
            return FileAction.SKIP
        return FileAction.OVERWRITE

    def _preview(self, zf: zipfile.ZipFile, plan: ImportPlan, result: ImportResult) -> None:
        for info in data_entries(zf):
            if not plan.allows(info.filename):
                continue
            target_path = map_entry_to_target(info.filename, self.target)
            if target_path is None:
                continue
            action = self._classify(target_path)
            result.actions.append((action, info.filename))
            result.stats.count(action)

    def _import(self, zf: zipfile.ZipFile, plan: ImportPlan, result: ImportResult) -> None:
        stats = result.stats
        names = set(zf.namelist())

        if plan.cron and CRON_ENTRY in names:
            cron = merge_cron_jobs(zf.read(CRON_ENTRY), self.target.cron_jobs, self.options.mode)
            stats.cron_jobs_added = cron.added
            stats.cron_jobs_skipped = cron.skipped
            stats.count(cron.action)
            result.actions.append((cron.action, CRON_ENTRY))
            if cron.error:
                logger.warning(cron.error)
                stats.warnings.append(cron.error)

        if plan.config and CONFIG_ENTRY in names:
            config = merge_config(zf.read(CONFIG_ENTRY), self.target.config, self.options.mode)
            stats.config_keys_added = config.keys_added
            stats.count(config.action)
            result.actions.append((config.action, CONFIG_ENTRY))
            if config.error:
                logger.warning(config.error)
                stats.warnings.append(config.error)

        for info in data_entries(zf):
            name = info.filename
            if name in (CRON_ENTRY, CONFIG_ENTRY) or not plan.allows(name):
                continue

            target_path = map_entry_to_target(name, self.target)
            if target_path is None:
                logger.debug(f"Ignoring unmapped archive entry: {name}")
                continue

            action = self._classify(target_path)
            if action is not FileAction.SKIP:
                target_path.parent.mkdir(parents=True, exist_ok=True)
                target_path.write_bytes(zf.read(info))

            stats.count(action)
            result.actions.append((action, name))

        logger.info(
            f"Import completed: {stats.files_written} written, "
            f"{stats.files_overwritten} overwritten, {stats.files_skipped} skipped"
        )


def import_archive(
    archive_path: Path,
    target: StateRoot | None = None,
    options: ImportOptions | None = None,
) -> ImportResult:
    """
    Convenience wrapper around ArchiveImporter.

    Without a target the local state directory is detected; if none is found
    the result fails with ErrorKind.ENVIRONMENT_NOT_FOUND and nothing is read.
    """
    if target is None:
        try:
            target = resolve_state_root()
        except StateDirectoryNotFoundError as e:
            return ImportResult(
                success=False, error=str(e), error_kind=ErrorKind.ENVIRONMENT_NOT_FOUND
            )

    return ArchiveImporter(archive_path, target, options).run()
