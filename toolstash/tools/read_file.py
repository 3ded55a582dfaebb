"""`read_file` tool: numbered file slices."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from ..cache_keys import build_tool_cache_key_for_path
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
DEFAULT_LIMIT = 2000
MAX_LINE_LENGTH = 500


def _render_slice(path: Path, offset: int, limit: int) -> str:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ToolError(Messages.ERROR_TOOL_PATH_ACCESS.format(path=path, reason=exc)) from exc
    lines = data.decode("utf-8", errors="replace").splitlines()
    if offset > len(lines):
        raise ToolError(Messages.ERROR_TOOL_OFFSET_RANGE)
    rendered = []
    for number, line in enumerate(lines[offset - 1 : offset - 1 + limit], start=offset):
        rendered.append(f"L{number}: {line[:MAX_LINE_LENGTH]}")
    return "\n".join(rendered)


def read_file(
    arguments: str | Mapping[str, Any],
    workspace_root: Path,
    cache: CacheManager | None = None,
) -> ToolOutput:
    """Return up to ``limit`` lines of a file starting at the 1-based ``offset``."""

    args = parse_arguments(arguments)
    file_path = args.get("file_path")
    if not isinstance(file_path, str) or not file_path:
        raise ToolError(Messages.ERROR_TOOL_ARGS.format(reason="missing field `file_path`"))
    offset = int_argument(args, "offset", DEFAULT_OFFSET)
    limit = int_argument(args, "limit", DEFAULT_LIMIT)
    if offset == 0:
        raise ToolError(Messages.ERROR_TOOL_OFFSET_ZERO)
    if limit == 0:
        raise ToolError(Messages.ERROR_TOOL_LIMIT_ZERO)

    path = resolve_path(workspace_root, file_path)
    ensure_accessible(path)
    key_args = {"file_path": file_path, "offset": offset, "limit": limit}
    return cached_text_call(
        cache,
        CacheableTool.READ_FILE,
        lambda: build_tool_cache_key_for_path(
            CacheableTool.READ_FILE.value, key_args, workspace_root, path
        ),
        lambda: _render_slice(path, offset, limit),
    )
