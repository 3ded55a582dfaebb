"""`list_dir` tool: an indented, depth-limited directory listing."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

from ..cache_keys import build_tool_cache_key, stamp_from_stat
from ..config import CacheableTool
from ..errors import ToolError
from ..services.cache_service import CacheManager
from ..text import Messages
from .base import (
    ToolOutput,
    cached_text_call,
    ensure_accessible,
    int_argument,
    parse_arguments,
    resolve_path,
)

DEFAULT_OFFSET = 1
DEFAULT_LIMIT = 25
DEFAULT_DEPTH = 2
INDENT = "  "


def _entry_label(entry: os.DirEntry) -> str:
    if entry.is_symlink():
        return f"{entry.name}@"
    if entry.is_dir(follow_symlinks=False):
        return f"{entry.name}/"
    return entry.name


def _collect_entries(directory: Path, depth: int, level: int = 0) -> list[str]:
    """List *directory* sorted by name, children directly below their parent."""

    try:
        with os.scandir(directory) as iterator:
            children = sorted(iterator, key=lambda item: item.name)
    except OSError as exc:
        raise ToolError(
            Messages.ERROR_TOOL_PATH_ACCESS.format(path=directory, reason=exc)
        ) from exc
    entries: list[str] = []
    for child in children:
        entries.append(f"{INDENT * level}{_entry_label(child)}")
        if level + 1 < depth and child.is_dir(follow_symlinks=False):
            entries.extend(_collect_entries(Path(child.path), depth, level + 1))
    return entries


def _render_listing(path: Path, offset: int, limit: int, depth: int) -> str:
    entries = _collect_entries(path, depth)
    if entries and offset > len(entries):
        raise ToolError(Messages.ERROR_TOOL_OFFSET_RANGE)
    lines = [f"Absolute path: {path}", *entries[offset - 1 : offset - 1 + limit]]
    if offset - 1 + limit < len(entries):
        lines.append(f"More than {limit} entries found")
    return "\n".join(lines)


def list_dir(
    arguments: str | Mapping[str, Any],
    workspace_root: Path,
    cache: CacheManager | None = None,
) -> ToolOutput:
    args = parse_arguments(arguments)
    dir_path = args.get("dir_path")
    if not isinstance(dir_path, str) or not dir_path:
        raise ToolError(Messages.ERROR_TOOL_ARGS.format(reason="missing field `dir_path`"))
    offset = int_argument(args, "offset", DEFAULT_OFFSET)
    limit = int_argument(args, "limit", DEFAULT_LIMIT)
    depth = int_argument(args, "depth", DEFAULT_DEPTH)
    if offset == 0:
        raise ToolError(Messages.ERROR_TOOL_OFFSET_ZERO)
    if limit == 0:
        raise ToolError(Messages.ERROR_TOOL_LIMIT_ZERO)
    if depth == 0:
        raise ToolError(Messages.ERROR_TOOL_DEPTH_ZERO)

    path = resolve_path(workspace_root, dir_path)
    ensure_accessible(path)
    key_args = {"dir_path": dir_path, "offset": offset, "limit": limit, "depth": depth}
    # Only the directory's own stamp is hashed; edits deeper in the tree
    # surface once the entry's TTL runs out.
    return cached_text_call(
        cache,
        CacheableTool.LIST_DIR,
        lambda: build_tool_cache_key(
            CacheableTool.LIST_DIR.value,
            key_args,
            workspace_root,
            path,
            stamp_from_stat(os.stat(path)),
        ),
        lambda: _render_listing(path, offset, limit, depth),
    )
