"""Utility helpers for filesystem access and path handling."""

from __future__ import annotations

from pathlib import Path
from typing import List
import os

VCS_DIR_NAME = ".git"


def resolve_directory(path: Path | str) -> Path:
    """Resolve and validate a user supplied directory path."""
    dir_path = Path(path).expanduser().resolve()
    if not dir_path.exists():
        raise FileNotFoundError(f"Directory does not exist: {dir_path}")
    if not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    return dir_path


def normalize_path(path: Path | str) -> str:
    """Render *path* with forward slashes regardless of platform."""

    return str(path).replace("\\", "/")


def relative_posix(path: Path, root: Path) -> str:
    try:
        rel = path.relative_to(root)
    except ValueError:
        return normalize_path(path)
    return rel.as_posix()


def _is_within(path: Path, parent: Path) -> bool:
    return path == parent or parent in path.parents


def collect_files(root: Path | str, index_dir: Path | str | None = None) -> List[Path]:
    """Collect regular files under *root*, following symlinks.

    The index directory and any path with a ``.git`` component are pruned.
    """

    directory = resolve_directory(root)
    skip_dir = Path(index_dir).expanduser().resolve() if index_dir is not None else None
    files: List[Path] = []
    visited: set[str] = set()

    for dirpath, dirnames, filenames in os.walk(directory, topdown=True, followlinks=True):
        current_dir = Path(dirpath)
        real = os.path.realpath(dirpath)
        if real in visited:
            dirnames[:] = []
            continue
        visited.add(real)

        kept: list[str] = []
        for dirname in dirnames:
            if dirname == VCS_DIR_NAME:
                continue
            child = current_dir / dirname
            if skip_dir is not None and _is_within(child, skip_dir):
                continue
            kept.append(dirname)
        dirnames[:] = kept

        for filename in filenames:
            if filename == VCS_DIR_NAME:
                continue
            candidate = current_dir / filename
            if skip_dir is not None and _is_within(candidate, skip_dir):
                continue
            if not candidate.is_file():
                continue
            files.append(candidate)

    files.sort()
    return files
