"""
Export engine: packs an OpenClaw state directory into a zip archive.

Categories are visited in a fixed order (config, cron, agents, credentials,
workspace), each file is mapped to a virtual archive path, JSON files are
redacted unless secrets were requested, and the archive is closed with a
manifest and, when anything was redacted, a secrets template.

The traversal is shared by the real export and the dry-run preview, so a
preview reports exactly what an export of the same tree would contain.
"""

from __future__ import annotations

import logging
import sys
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from openclaw_packager.backup.archive import (
    AGENTS_PREFIX,
    CONFIG_PREFIX,
    CREDENTIALS_PREFIX,
    CRON_PREFIX,
    MANIFEST_ENTRY,
    SECRETS_TEMPLATE_ENTRY,
    WORKSPACE_PREFIX,
    ErrorKind,
)
from openclaw_packager.exclusions import DEFAULT_POLICY, ExclusionPolicy
from openclaw_packager.manifest import (
    Manifest,
    ManifestIncludes,
    ManifestStats,
    create_manifest,
    format_size,
)
from openclaw_packager.paths import (
    StateDirectoryNotFoundError,
    StateRoot,
    list_agents,
    resolve_state_root,
)
from openclaw_packager.redaction import SecretsTemplate, redact
from openclaw_packager.utils import dump_json, get_timestamp, read_json, walk_dir

logger = logging.getLogger(__name__)

AUTH_PROFILES_MARKER = "auth-profiles"
MEMORY_FILE = "MEMORY.md"
MEMORY_DIR = "memory/"
SKILLS_DIR = "skills/"
SKILL_FILE = "SKILL.md"


@dataclass
class ExportOptions:
    """
    Resolved inclusion decisions for one export.

    Defaults include everything except auth material, secret values and
    the bulky personal workspace subtrees.
    """

    workspace: bool = True
    cron: bool = True
    config: bool = True
    agents: bool = True
    memory: bool = True
    auth: bool = False
    include_secrets: bool = False
    include_projects: bool = False
    agent_filter: list[str] | None = None
    compression_level: int = 9


@dataclass(frozen=True)
class PlannedFile:
    """A source file selected for export and where it goes in the archive."""

    source: Path
    archive_path: str
    category: str
    size: int
    agent: str | None = None
    auth_kind: str | None = None
    credential_name: str | None = None
    is_skill: bool = False


@dataclass
class CategoryTotals:
    files: int = 0
    size: int = 0


@dataclass
class ExportStats:
    """Counters accumulated while exporting (or previewing)."""

    total_files: int = 0
    total_size: int = 0
    cron_jobs: int = 0
    skills: int = 0
    agent_count: int = 0
    secrets_stripped: int = 0
    files_unreadable: int = 0
    categories: dict[str, CategoryTotals] = field(default_factory=dict)

    def record(self, planned: PlannedFile) -> None:
        self.total_files += 1
        self.total_size += planned.size
        totals = self.categories.setdefault(planned.category, CategoryTotals())
        totals.files += 1
        totals.size += planned.size
        if planned.is_skill:
            self.skills += 1


@dataclass
class ExportPreview:
    """Result of a dry run: what an export would contain."""

    stats: ExportStats
    agents: list[str]
    options: ExportOptions


@dataclass
class ExportResult:
    """Result of an export operation."""

    success: bool
    path: Path | None = None
    manifest: Manifest | None = None
    stats: ExportStats = field(default_factory=ExportStats)
    secrets_template: SecretsTemplate | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


def default_output_path(output_dir: Path | str = ".") -> Path:
    """Default archive name inside output_dir."""
    return Path(output_dir) / f"openclaw-export-{get_timestamp()}.zip"


def count_cron_jobs(jobs_file: Path) -> int:
    data = read_json(jobs_file)
    if isinstance(data, dict) and isinstance(data.get("jobs"), list):
        return len(data["jobs"])
    return 0


def detect_openclaw_version(paths: StateRoot) -> str | None:
    """Best-effort lookup of the installed OpenClaw version."""
    package = read_json(paths.root.parent / "openclaw" / "package.json")
    if isinstance(package, dict) and isinstance(package.get("version"), str):
        return package["version"]
    return None


def _is_memory_path(relative_path: str) -> bool:
    return relative_path == MEMORY_FILE or relative_path.startswith(MEMORY_DIR)


def _is_skill_path(relative_path: str) -> bool:
    return relative_path.startswith(SKILLS_DIR) and relative_path.endswith(SKILL_FILE)


class ArchiveExporter:
    """
    Builds export archives for one state root.

    Usage:
        exporter = ArchiveExporter(resolve_state_root(), ExportOptions())
        preview = exporter.preview()
        result = exporter.export(Path("backup.zip"))
    """

    def __init__(
        self,
        paths: StateRoot,
        options: ExportOptions | None = None,
        policy: ExclusionPolicy | None = None,
    ) -> None:
        self.paths = paths
        self.options = options or ExportOptions()
        self.policy = policy or DEFAULT_POLICY

    def selected_agents(self) -> list[str]:
        """Agent names that will be exported."""
        if not self.options.agents:
            return []
        agents = list_agents(self.paths.agents)
        if self.options.agent_filter is not None:
            wanted = set(self.options.agent_filter)
            agents = [a for a in agents if a in wanted]
        return agents

    def iter_plan(self) -> Iterator[PlannedFile]:
        """
        Yield every file the export would contain, in archive order.

        Reads nothing but directory listings and file metadata.
        """
        yield from self._plan_config()
        yield from self._plan_cron()
        yield from self._plan_agents()
        yield from self._plan_credentials()
        yield from self._plan_workspace()

    def _plan_config(self) -> Iterator[PlannedFile]:
        config = self.paths.config
        if not self.options.config or not config.is_file():
            return
        try:
            size = config.stat().st_size
        except OSError:
            return
        yield PlannedFile(config, f"{CONFIG_PREFIX}{config.name}", "config", size)

    def _plan_cron(self) -> Iterator[PlannedFile]:
        jobs_file = self.paths.cron_jobs
        if not self.options.cron or not jobs_file.is_file():
            return
        try:
            size = jobs_file.stat().st_size
        except OSError:
            return
        yield PlannedFile(jobs_file, f"{CRON_PREFIX}{jobs_file.name}", "cron", size)

    def _plan_agents(self) -> Iterator[PlannedFile]:
        for agent in self.selected_agents():
            agent_dir = self.paths.agent_dir(agent)
            if not agent_dir.is_dir():
                continue

            for entry in walk_dir(agent_dir):
                if self.policy.is_globally_excluded(entry.relative_path):
                    continue

                auth_kind = None
                if AUTH_PROFILES_MARKER in entry.relative_path:
                    if not self.options.auth:
                        continue
                    auth_kind = AUTH_PROFILES_MARKER

                yield PlannedFile(
                    entry.path,
                    f"{AGENTS_PREFIX}{agent}/{entry.relative_path}",
                    "agents",
                    entry.size,
                    agent=agent,
                    auth_kind=auth_kind,
                )

    def _plan_credentials(self) -> Iterator[PlannedFile]:
        if not self.options.auth or not self.paths.credentials.is_dir():
            return
        for entry in walk_dir(self.paths.credentials):
            if self.policy.is_globally_excluded(entry.relative_path):
                continue
            yield PlannedFile(
                entry.path,
                f"{CREDENTIALS_PREFIX}{entry.relative_path}",
                "credentials",
                entry.size,
                credential_name=entry.relative_path,
            )

    def _plan_workspace(self) -> Iterator[PlannedFile]:
        if not self.options.workspace or not self.paths.workspace.is_dir():
            return
        for entry in walk_dir(self.paths.workspace):
            relative = entry.relative_path
            if self.policy.is_workspace_excluded(relative, self.options.include_projects):
                continue
            if not self.options.memory and _is_memory_path(relative):
                continue
            yield PlannedFile(
                entry.path,
                f"{WORKSPACE_PREFIX}{relative}",
                "workspace",
                entry.size,
                is_skill=_is_skill_path(relative),
            )

    def preview(self) -> ExportPreview:
        """Dry run: walk and categorize exactly as export() would, writing nothing."""
        stats = ExportStats()
        agents = self.selected_agents()
        stats.agent_count = len(agents)

        for planned in self.iter_plan():
            if planned.category == "cron":
                stats.cron_jobs = count_cron_jobs(planned.source)
            stats.record(planned)

        return ExportPreview(stats=stats, agents=agents, options=self.options)

    def export(
        self,
        output_path: Path | None = None,
        stream: BinaryIO | None = None,
    ) -> ExportResult:
        """
        Create the archive.

        Args:
            output_path: Destination file. Ignored when stream is given.
            stream: Binary stream to write the archive to (e.g. stdout).

        Returns:
            ExportResult with the manifest and statistics.
        """
        if stream is None and output_path is None:
            output_path = default_output_path()

        try:
            if stream is not None:
                stats, manifest, template = self._write_archive(stream)
                stream.flush()
            else:
                output_path = Path(output_path)
                output_path.parent.mkdir(parents=True, exist_ok=True)
                with open(output_path, "wb") as fh:
                    stats, manifest, template = self._write_archive(fh)
        except OSError as e:
            logger.exception("Export failed")
            return ExportResult(
                success=False,
                path=output_path,
                error=f"Could not write archive: {e}",
                error_kind=ErrorKind.WRITE_FAILURE,
            )

        if output_path is not None and stream is None:
            logger.info(f"Export created: {output_path} ({stats.total_files} files)")

        return ExportResult(
            success=True,
            path=output_path if stream is None else None,
            manifest=manifest,
            stats=stats,
            secrets_template=template if stats.secrets_stripped > 0 else None,
        )

    def _write_archive(self, fh: BinaryIO) -> tuple[ExportStats, Manifest, SecretsTemplate]:
        stats = ExportStats()
        template = SecretsTemplate()
        agents = self.selected_agents()
        stats.agent_count = len(agents)

        with zipfile.ZipFile(
            fh,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.options.compression_level,
        ) as zf:
            current_category = None
            for planned in self.iter_plan():
                if planned.category != current_category:
                    current_category = planned.category
                    logger.info(f"Adding {current_category}...")

                if self._add_file(zf, planned, stats, template):
                    if planned.category == "cron":
                        stats.cron_jobs = count_cron_jobs(planned.source)

            manifest = create_manifest(
                includes=ManifestIncludes(
                    workspace=self.options.workspace,
                    cron=self.options.cron,
                    config=self.options.config,
                    agents=agents,
                    memory=self.options.memory,
                    auth=self.options.auth,
                ),
                secrets_included=self.options.include_secrets,
                secrets_stripped=stats.secrets_stripped,
                stats=ManifestStats(
                    total_files=stats.total_files,
                    total_size=format_size(stats.total_size),
                    cron_jobs=stats.cron_jobs,
                    skills=stats.skills,
                    agents=stats.agent_count,
                ),
                openclaw_version=detect_openclaw_version(self.paths),
            )

            zf.writestr(MANIFEST_ENTRY, dump_json(manifest.to_dict()))

            if not self.options.include_secrets and stats.secrets_stripped > 0:
                zf.writestr(SECRETS_TEMPLATE_ENTRY, dump_json(template.to_dict()))

        return stats, manifest, template

    def _add_file(
        self,
        zf: zipfile.ZipFile,
        planned: PlannedFile,
        stats: ExportStats,
        template: SecretsTemplate,
    ) -> bool:
        """Read, redact and append one file. Unreadable files are skipped."""
        try:
            content = planned.source.read_bytes()
        except OSError as e:
            logger.debug(f"Skipping unreadable file {planned.source}: {e}")
            stats.files_unreadable += 1
            return False

        if not self.options.include_secrets and planned.archive_path.endswith(".json"):
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError:
                text = None
            if text is not None:
                result = redact(text, planned.archive_path)
                if result.count > 0:
                    content = result.content.encode("utf-8")
                    stats.secrets_stripped += result.count
                    if planned.category == "config":
                        for key_path in result.paths:
                            template.add_config_secret(key_path)

        if planned.auth_kind and planned.agent:
            template.add_agent_auth(planned.agent, planned.auth_kind)
        if planned.credential_name:
            template.add_credential_file(planned.credential_name)

        zf.writestr(planned.archive_path, content)
        stats.record(planned)
        return True


def export_state(
    paths: StateRoot | None = None,
    options: ExportOptions | None = None,
    output_path: Path | None = None,
    to_stdout: bool = False,
    policy: ExclusionPolicy | None = None,
) -> ExportResult:
    """
    Convenience wrapper: export to a file or to standard output.

    Without explicit paths the state directory is detected; if none is found
    the result fails with ErrorKind.ENVIRONMENT_NOT_FOUND.
    """
    if paths is None:
        try:
            paths = resolve_state_root()
        except StateDirectoryNotFoundError as e:
            return ExportResult(
                success=False, error=str(e), error_kind=ErrorKind.ENVIRONMENT_NOT_FOUND
            )

    exporter = ArchiveExporter(paths, options, policy)
    if to_stdout:
        return exporter.export(stream=sys.stdout.buffer)
    return exporter.export(output_path)
