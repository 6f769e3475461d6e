"""
Shared helpers: lazy directory walking, JSON I/O, deep merge, timestamps.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalkEntry:
    """A regular file found while walking a directory."""

    path: Path
    relative_path: str  # always "/"-separated
    size: int


def walk_dir(directory: Path, relative_to: Path | None = None) -> Iterator[WalkEntry]:
    """
    Lazily walk a directory tree depth-first, yielding regular files.

    Subdirectories are opened only when reached. A directory that cannot be
    listed ends that branch silently; files that cannot be stat'ed are
    skipped. Symbolic links inside the tree are not followed.
    """
    base = relative_to or directory

    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError:
        return

    for entry in entries:
        full_path = Path(entry.path)
        try:
            if entry.is_dir(follow_symlinks=False):
                yield from walk_dir(full_path, base)
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
            size = entry.stat().st_size
        except OSError:
            logger.debug(f"Skipping unreadable entry: {full_path}")
            continue

        relative = full_path.relative_to(base).as_posix()
        yield WalkEntry(path=full_path, relative_path=relative, size=size)


def read_json(path: Path) -> Any | None:
    """Read and parse a JSON file, returning None on any read/parse failure."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return None


def dump_json(data: Any) -> str:
    """Serialize JSON the way archives and merged files are written."""
    return json.dumps(data, indent=2, ensure_ascii=False)


def write_json(path: Path, data: Any) -> None:
    """Write JSON to a file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_json(data), encoding="utf-8")


def deep_merge(target: dict[str, Any], source: dict[str, Any]) -> tuple[dict[str, Any], int]:
    """
    Recursively merge source into a copy of target.

    Keys missing from target are filled in from source. Where both sides
    hold objects, they are merged key by key. For any other value present on
    both sides, target's value is kept.

    Returns:
        Tuple of (merged dict, number of keys added).
    """
    result = dict(target)
    changed = 0

    for key, source_val in source.items():
        if key not in target:
            result[key] = source_val
            changed += 1
            continue

        target_val = target[key]
        if isinstance(source_val, dict) and isinstance(target_val, dict):
            result[key], nested = deep_merge(target_val, source_val)
            changed += nested

    return result, changed


def get_timestamp() -> str:
    """Timestamp for filenames, e.g. 2024-01-15_10-30-00."""
    return datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
