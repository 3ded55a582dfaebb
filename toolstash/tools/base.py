"""Shared plumbing for the cached tool handlers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from ..config import CacheableTool
from ..errors import ToolError
from ..services.cache_service import CacheManager
from ..text import Messages

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolOutput:
    content: str
    success: bool | None = True


def parse_arguments(arguments: str | Mapping[str, Any]) -> dict[str, Any]:
    """Accept either a JSON object string or an already decoded mapping."""

    if isinstance(arguments, Mapping):
        return dict(arguments)
    try:
        parsed = json.loads(arguments)
    except (TypeError, ValueError) as exc:
        raise ToolError(Messages.ERROR_TOOL_ARGS.format(reason=exc)) from exc
    if not isinstance(parsed, dict):
        raise ToolError(Messages.ERROR_TOOL_ARGS.format(reason="expected a JSON object"))
    return parsed


def int_argument(args: Mapping[str, Any], name: str, default: int) -> int:
    value = args.get(name, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ToolError(
            Messages.ERROR_TOOL_ARGS.format(reason=f"`{name}` must be a non-negative integer")
        )
    return value


def resolve_path(workspace_root: Path, value: str | None) -> Path:
    if not value:
        return workspace_root
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else workspace_root / candidate


def ensure_accessible(path: Path) -> None:
    try:
        path.stat()
    except OSError as exc:
        raise ToolError(Messages.ERROR_TOOL_PATH_ACCESS.format(path=path, reason=exc)) from exc


def cached_text_call(
    cache: CacheManager | None,
    tool: CacheableTool,
    key_factory: Callable[[], str],
    compute: Callable[[], str],
) -> ToolOutput:
    """Serve *compute*'s text from the cache when a fresh entry exists."""

    if cache is None or not cache.enabled:
        return ToolOutput(content=compute())
    try:
        key: str | None = key_factory()
    except (OSError, ValueError) as exc:
        logger.warning("failed to compute cache key for %s: %s", tool.value, exc)
        key = None
    if key is not None:
        cached = cache.get(key, tool)
        if cached is not None:
            try:
                return ToolOutput(content=cached.decode("utf-8"))
            except UnicodeDecodeError:
                logger.warning("discarding cached %s output: not valid UTF-8", tool.value)
    content = compute()
    if key is not None:
        cache.put(key, content.encode("utf-8"), cache.ttl_for(tool), tool)
    return ToolOutput(content=content)

