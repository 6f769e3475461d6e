"""
OpenClaw state directory detection and path mapping.

The state root is located by checking, in order, the OPENCLAW_STATE_DIR
environment variable, ~/.openclaw and ~/.openclaw-dev. A candidate only
counts if it actually looks like an OpenClaw installation (it holds the
config file or an agents directory), so an empty directory with the right
name is never picked up by accident.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

STATE_DIR_ENV = "OPENCLAW_STATE_DIR"
CONFIG_FILENAME = "openclaw.json"
CRON_DIRNAME = "cron"
CRON_JOBS_FILENAME = "jobs.json"
AGENTS_DIRNAME = "agents"
AGENT_SUBDIR = "agent"
WORKSPACE_DIRNAME = "workspace"
CREDENTIALS_DIRNAME = "credentials"


class StateDirectoryNotFoundError(Exception):
    """Raised when no OpenClaw state directory can be located."""

    pass


@dataclass(frozen=True)
class StateRoot:
    """
    Canonical paths of an OpenClaw installation.

    Attributes:
        root: The state directory itself.
        workspace: Workspace directory (symlinks resolved when it exists).
        config: The openclaw.json config file.
        cron: Directory holding the cron job list.
        agents: Directory with one subdirectory per agent.
        credentials: Directory with provider credential files.
    """

    root: Path
    workspace: Path
    config: Path
    cron: Path
    agents: Path
    credentials: Path

    @property
    def cron_jobs(self) -> Path:
        """Path of the cron job-list file."""
        return self.cron / CRON_JOBS_FILENAME

    def agent_dir(self, name: str) -> Path:
        """Path of the exported sub-level for one agent."""
        return self.agents / name / AGENT_SUBDIR

    def is_installed(self) -> bool:
        """True if the root already holds an OpenClaw installation."""
        return looks_like_state_dir(self.root)


def candidate_dirs() -> list[Path]:
    """Return the directories checked for a state root, in priority order."""
    candidates: list[Path] = []

    env_dir = os.environ.get(STATE_DIR_ENV)
    if env_dir:
        candidates.append(Path(env_dir).expanduser())

    home = Path.home()
    candidates.append(home / ".openclaw")
    candidates.append(home / ".openclaw-dev")
    return candidates


def looks_like_state_dir(path: Path) -> bool:
    """A directory qualifies if it holds the config file or an agents dir."""
    return (path / CONFIG_FILENAME).exists() or (path / AGENTS_DIRNAME).exists()


def detect_state_dir() -> Path | None:
    """Return the first qualifying candidate directory, or None."""
    for candidate in candidate_dirs():
        if candidate.exists() and looks_like_state_dir(candidate):
            return candidate
    return None


def derive_paths(root: Path) -> StateRoot:
    """
    Build the canonical paths for a state root.

    Pure path joining except for the workspace, which is resolved to its
    real path when it exists (it is commonly a symlink onto another volume).
    """
    root = Path(root)
    workspace = root / WORKSPACE_DIRNAME
    if workspace.exists():
        workspace = workspace.resolve()

    return StateRoot(
        root=root,
        workspace=workspace,
        config=root / CONFIG_FILENAME,
        cron=root / CRON_DIRNAME,
        agents=root / AGENTS_DIRNAME,
        credentials=root / CREDENTIALS_DIRNAME,
    )


def resolve_state_root() -> StateRoot:
    """
    Locate the state directory and derive its paths.

    Raises:
        StateDirectoryNotFoundError: If no candidate qualifies.
    """
    root = detect_state_dir()
    if root is None:
        checked = ", ".join(str(c) for c in candidate_dirs())
        raise StateDirectoryNotFoundError(
            f"Could not find OpenClaw directory (checked: {checked}). "
            f"Set {STATE_DIR_ENV} or pass an explicit path."
        )
    return derive_paths(root)


def list_agents(agents_dir: Path) -> list[str]:
    """List agent names (subdirectories of the agents directory), sorted."""
    try:
        return sorted(entry.name for entry in agents_dir.iterdir() if entry.is_dir())
    except OSError:
        return []
