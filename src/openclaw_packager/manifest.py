"""
Manifest model for openclaw-packager archives.

Every archive carries a manifest.json describing what was exported, whether
secrets were stripped, and summary statistics. The manifest's ``tool``
field is the provenance check: an archive whose manifest does not name this
tool exactly is never imported or inspected.
"""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

MANIFEST_VERSION = "1.0.0"
TOOL_NAME = "openclaw-backup"

SIZE_UNITS = ("B", "KB", "MB", "GB")


def _flag(value: Any) -> bool:
    """Read a manifest flag; anything but a JSON boolean counts as false."""
    return value if isinstance(value, bool) else False


def _count(value: Any, default: int | None = 0) -> int | None:
    """Read a manifest counter; non-integers fall back to the default."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default


@dataclass
class ManifestIncludes:
    """Which categories an archive contains."""

    workspace: bool = False
    cron: bool = False
    config: bool = False
    agents: list[str] = field(default_factory=list)
    memory: bool = False
    auth: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspace": self.workspace,
            "cron": self.cron,
            "config": self.config,
            "agents": list(self.agents),
            "memory": self.memory,
            "auth": self.auth,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManifestIncludes:
        agents = data.get("agents") or []
        return cls(
            workspace=_flag(data.get("workspace")),
            cron=_flag(data.get("cron")),
            config=_flag(data.get("config")),
            agents=[str(a) for a in agents] if isinstance(agents, list) else [],
            memory=_flag(data.get("memory")),
            auth=_flag(data.get("auth")),
        )


@dataclass
class ManifestStats:
    """Aggregate export statistics."""

    total_files: int = 0
    total_size: str = "0B"
    cron_jobs: int | None = None
    skills: int | None = None
    agents: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "totalFiles": self.total_files,
            "totalSize": self.total_size,
        }
        if self.cron_jobs is not None:
            data["cronJobs"] = self.cron_jobs
        if self.skills is not None:
            data["skills"] = self.skills
        if self.agents is not None:
            data["agents"] = self.agents
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManifestStats:
        total_size = data.get("totalSize")
        return cls(
            total_files=_count(data.get("totalFiles")),
            total_size=total_size if isinstance(total_size, str) else "0B",
            cron_jobs=_count(data.get("cronJobs"), None),
            skills=_count(data.get("skills"), None),
            agents=_count(data.get("agents"), None),
        )


@dataclass
class Manifest:
    """
    Self-description embedded in every archive as manifest.json.

    Serialized with camelCase keys so archives stay readable by other
    implementations of the same format.

    Attributes:
        version: Archive format version.
        tool: Producing tool; must equal TOOL_NAME.
        exported_at: ISO-8601 export timestamp.
        platform: "<os>-<machine>" of the exporting host.
        runtime_version: Interpreter version of the exporting process.
        includes: Included categories and agent names.
        secrets_included: True if secret values were kept.
        secrets_stripped: Number of values replaced with placeholders.
        stats: Aggregate statistics.
        openclaw_version: Version of the OpenClaw install, when detectable.
    """

    version: str = MANIFEST_VERSION
    tool: str = TOOL_NAME
    exported_at: str = ""
    platform: str = ""
    runtime_version: str = ""
    includes: ManifestIncludes = field(default_factory=ManifestIncludes)
    secrets_included: bool = False
    secrets_stripped: int = 0
    stats: ManifestStats = field(default_factory=ManifestStats)
    openclaw_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert manifest to its JSON form."""
        data: dict[str, Any] = {
            "version": self.version,
            "tool": self.tool,
            "exportedAt": self.exported_at,
        }
        if self.openclaw_version:
            data["openclawVersion"] = self.openclaw_version
        data.update(
            {
                "platform": self.platform,
                "runtimeVersion": self.runtime_version,
                "includes": self.includes.to_dict(),
                "secretsIncluded": self.secrets_included,
                "secretsStripped": self.secrets_stripped,
                "stats": self.stats.to_dict(),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        """Create manifest from its JSON form (call validate_manifest first)."""
        includes = data.get("includes")
        stats = data.get("stats")
        openclaw_version = data.get("openclawVersion")
        return cls(
            version=str(data.get("version", "unknown")),
            tool=str(data.get("tool", "")),
            exported_at=str(data.get("exportedAt", "")),
            platform=str(data.get("platform", "")),
            runtime_version=str(data.get("runtimeVersion") or data.get("nodeVersion") or ""),
            includes=ManifestIncludes.from_dict(includes if isinstance(includes, dict) else {}),
            secrets_included=_flag(data.get("secretsIncluded")),
            secrets_stripped=_count(data.get("secretsStripped")),
            stats=ManifestStats.from_dict(stats if isinstance(stats, dict) else {}),
            openclaw_version=openclaw_version if isinstance(openclaw_version, str) else None,
        )


def create_manifest(**overrides: Any) -> Manifest:
    """
    Create a manifest with defaults for the current host.

    Defaults are: nothing included, zero stats, secrets stripped. Any field
    can be overridden by keyword.
    """
    manifest = Manifest(
        exported_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        platform=f"{sys.platform}-{platform.machine() or 'unknown'}",
        runtime_version=f"python-{platform.python_version()}",
    )
    for name, value in overrides.items():
        if not hasattr(manifest, name):
            raise TypeError(f"Unknown manifest field: {name}")
        setattr(manifest, name, value)
    return manifest


def validate_manifest(data: Any) -> bool:
    """
    Check that parsed manifest data is well-formed and produced by this tool.

    Requires string ``version`` and ``exportedAt``, ``tool`` equal to
    TOOL_NAME, and ``includes`` to be an object.
    """
    if not isinstance(data, dict):
        return False

    return (
        isinstance(data.get("version"), str)
        and data.get("tool") == TOOL_NAME
        and isinstance(data.get("exportedAt"), str)
        and isinstance(data.get("includes"), dict)
    )


def format_size(num_bytes: int | float) -> str:
    """
    Format a byte count for humans: 0B, 1023B, 1.0KB, 1.5MB.

    Bytes get no decimals, larger units one decimal.
    """
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1

    decimals = 1 if unit_index > 0 else 0
    return f"{size:.{decimals}f}{SIZE_UNITS[unit_index]}"
