"""Cache-key derivation shared by the cached tool handlers."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import DEFAULT_CACHE_GREP_FILES_TTL_SECS
from .utils import normalize_path


@dataclass(frozen=True, slots=True)
class PathStamp:
    mtime_nanos: int
    size_bytes: int


@dataclass(frozen=True, slots=True)
class RepoState:
    head_ref: str | None
    index_mtime_nanos: int | None


@dataclass(frozen=True, slots=True)
class GrepCacheKeyInputs:
    workspace_root: Path
    search_path: Path
    pattern: str
    include: str | None
    limit: int
    repo_state: RepoState | None = None


def canonical_json(value: Any) -> Any:
    """Return *value* with every mapping's keys sorted, recursively."""

    if isinstance(value, dict):
        return {key: canonical_json(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [canonical_json(item) for item in value]
    return value


def _dumps(value: Any) -> str:
    return json.dumps(canonical_json(value), separators=(",", ":"), ensure_ascii=False)


def sha256_hex(text: str | bytes) -> str:
    data = text.encode("utf-8") if isinstance(text, str) else text
    return hashlib.sha256(data).hexdigest()


def stamp_from_stat(stat: os.stat_result) -> PathStamp:
    return PathStamp(mtime_nanos=max(int(stat.st_mtime_ns), 0), size_bytes=int(stat.st_size))


def build_tool_cache_key(
    tool_name: str,
    args: Any,
    workspace_root: Path | str,
    target_path: Path | str,
    stamp: PathStamp,
) -> str:
    """Hash the tool name, canonical arguments, paths and stamp into a hex key."""

    try:
        serialized_args = _dumps(args)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"failed to serialize cache arguments: {exc}") from exc
    raw_key = (
        f"{tool_name}|{serialized_args}|{normalize_path(workspace_root)}"
        f"|{normalize_path(target_path)}|{stamp.mtime_nanos}|{stamp.size_bytes}"
    )
    return sha256_hex(raw_key)


def build_tool_cache_key_for_path(
    tool_name: str,
    args: Any,
    workspace_root: Path | str,
    target_path: Path | str,
) -> str:
    stamp = stamp_from_stat(os.stat(target_path))
    return build_tool_cache_key(tool_name, args, workspace_root, target_path, stamp)


def build_grep_cache_key(inputs: GrepCacheKeyInputs) -> str:
    repo_state = inputs.repo_state
    fingerprint = {
        "tool": "grep_files",
        "workspace": normalize_path(inputs.workspace_root),
        "path": normalize_path(inputs.search_path),
        "pattern": inputs.pattern,
        "include": inputs.include,
        "limit": inputs.limit,
        "git": (
            {
                "head": repo_state.head_ref,
                "index_mtime": repo_state.index_mtime_nanos,
            }
            if repo_state is not None
            else None
        ),
    }
    try:
        serialized = _dumps(fingerprint)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"failed to serialize cache key: {exc}") from exc
    return sha256_hex(serialized)


def cache_ttl_for_repo_state(configured: int, repo_state: RepoState | None) -> int:
    """Cap the grep TTL when results cannot be tied to a repository state."""

    if repo_state is not None:
        return configured
    return min(configured, DEFAULT_CACHE_GREP_FILES_TTL_SECS)


def resolve_git_dir(workspace_root: Path | str) -> Path | None:
    cursor = Path(workspace_root)
    for candidate_root in (cursor, *cursor.parents):
        candidate = candidate_root / ".git"
        try:
            if candidate.is_dir():
                return candidate
            if candidate.is_file():
                return _parse_gitdir_file(candidate, candidate_root)
        except OSError:
            return None
    return None


def _parse_gitdir_file(path: Path, repo_root: Path) -> Path | None:
    try:
        contents = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    for line in contents.splitlines():
        trimmed = line.strip()
        if not trimmed.startswith("gitdir:"):
            continue
        target = trimmed[len("gitdir:") :].strip()
        if not target:
            return None
        git_dir = Path(target)
        return git_dir if git_dir.is_absolute() else repo_root / git_dir
    return None


def detect_repo_state(workspace_root: Path | str) -> RepoState | None:
    """Fingerprint the repository's HEAD and index so grep results invalidate."""

    git_dir = resolve_git_dir(workspace_root)
    if git_dir is None:
        return None
    head_ref: str | None
    try:
        head_ref = (git_dir / "HEAD").read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        head_ref = None
    if not head_ref:
        head_ref = None
    try:
        index_mtime_nanos: int | None = (git_dir / "index").stat().st_mtime_ns
    except OSError:
        index_mtime_nanos = None
    if head_ref is None and index_mtime_nanos is None:
        return None
    return RepoState(head_ref=head_ref, index_mtime_nanos=index_mtime_nanos)
