"""
Exclusion policy for exports.

Two tiers:
    - Global exclusions are never exported: machine identity, session
      history, logs, caches, VCS metadata, OS junk files, bytecode, private
      keys and certificates.
    - Workspace exclusions cover bulky or personal workspace subtrees
      (projects, research, ...) that are portable but unwanted by default.
      They are lifted with include_projects.

Policies are immutable values; build a custom one with ExclusionPolicy.extended()
instead of mutating the default tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath

EXCLUDED_DIRS = frozenset(
    {
        "identity",  # device keypairs, machine-specific
        "sessions",  # session history, too large
        "logs",
        "browser",  # browser profile data
        "completions",  # tab completion cache
        "media",  # downloaded media files
        "delivery-queue",  # transient
        "node_modules",
        ".git",
        "__pycache__",
        ".cache",
    }
)

WORKSPACE_EXCLUDED_DIRS = frozenset(
    {
        "projects",
        "research",
        "planning",
        "fiverr",
        "analytics",
        "news-digest",
        "design",
        "patches",
        "temp",
        "backup",
        "config",
    }
)

EXCLUDED_FILES = frozenset({".DS_Store", "Thumbs.db"})

EXCLUDED_SUFFIXES = (".pyc", ".pyo", ".log", ".key", ".pem")


def _split(relative_path: str) -> list[str]:
    # Accept both separators so archive names and OS paths behave alike
    return [part for part in relative_path.replace("\\", "/").split("/") if part]


@dataclass(frozen=True)
class ExclusionPolicy:
    """Immutable exclusion tables plus the predicates that use them."""

    dirs: frozenset[str] = EXCLUDED_DIRS
    files: frozenset[str] = EXCLUDED_FILES
    suffixes: tuple[str, ...] = EXCLUDED_SUFFIXES
    workspace_dirs: frozenset[str] = WORKSPACE_EXCLUDED_DIRS

    def extended(
        self,
        dirs: list[str] | None = None,
        files: list[str] | None = None,
        workspace_dirs: list[str] | None = None,
    ) -> ExclusionPolicy:
        """Return a new policy with extra names added to each table."""
        return ExclusionPolicy(
            dirs=self.dirs | frozenset(dirs or ()),
            files=self.files | frozenset(files or ()),
            suffixes=self.suffixes,
            workspace_dirs=self.workspace_dirs | frozenset(workspace_dirs or ()),
        )

    def is_globally_excluded(self, relative_path: str) -> bool:
        """True if the path must never be exported, whatever the flags."""
        parts = _split(relative_path)
        if any(part in self.dirs for part in parts):
            return True
        if not parts:
            return False

        filename = parts[-1]
        if filename in self.files:
            return True
        return filename.endswith(self.suffixes)

    def is_workspace_excluded(self, relative_path: str, include_projects: bool = False) -> bool:
        """True if a workspace-relative path should be left out."""
        if self.is_globally_excluded(relative_path):
            return True

        if not include_projects:
            parts = _split(relative_path)
            if parts and parts[0] in self.workspace_dirs:
                return True

        return False


DEFAULT_POLICY = ExclusionPolicy()


def is_globally_excluded(relative_path: str | PurePath) -> bool:
    """Check a path against the default global exclusions."""
    return DEFAULT_POLICY.is_globally_excluded(str(relative_path))


def is_workspace_excluded(relative_path: str | PurePath, include_projects: bool = False) -> bool:
    """Check a workspace-relative path against the default policy."""
    return DEFAULT_POLICY.is_workspace_excluded(str(relative_path), include_projects)
