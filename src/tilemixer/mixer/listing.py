"""Directory listing for tile pyramids on disk."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from tilemixer.config import SOURCE_DIR_SUFFIX
from tilemixer.core.errors import ConfigurationError


@dataclass(frozen=True)
class DirEntry:
    """A named child of a directory."""

    name: str
    path: Path
    is_dir: bool


def list_entries(directory: Path) -> list[DirEntry]:
    """List the children of ``directory`` sorted by name."""
    with os.scandir(directory) as it:
        entries = [
            DirEntry(entry.name, Path(entry.path), entry.is_dir())
            for entry in it
        ]
    return sorted(entries, key=lambda e: e.name)


def check_directory(path: Path) -> None:
    """Raise ConfigurationError unless ``path`` is an existing directory."""
    if not path.exists():
        raise ConfigurationError(f"Input directory {str(path)!r} doesn't exist")
    if not path.is_dir():
        raise ConfigurationError(f"{str(path)!r} is not a directory")


def check_output_directory(path: Path) -> None:
    """Require ``path`` to be missing or an empty directory."""
    if not path.exists():
        return
    if not path.is_dir():
        raise ConfigurationError(f"Output {str(path)!r} is not a directory")
    if any(path.iterdir()):
        raise ConfigurationError(f"Output directory {str(path)!r} is not empty")


def ensure_empty_directory(path: Path) -> None:
    """Create ``path`` if missing, otherwise require it to be an empty directory."""
    check_output_directory(path)
    path.mkdir(parents=True, exist_ok=True)


def find_source_directories(root: Path, suffix: str = SOURCE_DIR_SUFFIX) -> list[Path]:
    """Find the pyramid directories (``*.tiles``) directly under ``root``."""
    check_directory(root)
    return [
        entry.path.resolve()
        for entry in list_entries(root)
        if entry.is_dir and entry.name.endswith(suffix)
    ]
