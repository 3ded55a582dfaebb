"""`grep_files` tool: ripgrep-backed file search with repository-aware caching."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, List, Mapping, Sequence

from ..cache_keys import (
    GrepCacheKeyInputs,
    build_grep_cache_key,
    cache_ttl_for_repo_state,
    detect_repo_state,
)
from ..config import CacheableTool
from ..errors import ToolError
from ..services.cache_service import CacheManager
from ..text import Messages
from .base import ToolOutput, ensure_accessible, int_argument, parse_arguments, resolve_path

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 2000
COMMAND_TIMEOUT_SECS = 30
RG_BINARY = "rg"


@dataclass(slots=True)
class CachedGrepOutput:
    content: str
    success: bool | None = None

    def encode(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")


def decode_cached_output(payload: bytes) -> CachedGrepOutput | None:
    """Decode a cached payload; plain UTF-8 text is accepted as a successful result."""

    try:
        raw = json.loads(payload)
    except ValueError:
        raw = None
    if isinstance(raw, dict) and isinstance(raw.get("content"), str):
        success = raw.get("success")
        return CachedGrepOutput(
            content=raw["content"],
            success=success if isinstance(success, bool) else None,
        )
    try:
        return CachedGrepOutput(content=payload.decode("utf-8"), success=True)
    except UnicodeDecodeError:
        return None


def parse_results(stdout: bytes, limit: int) -> List[str]:
    results: List[str] = []
    for line in stdout.split(b"\n"):
        if not line:
            continue
        try:
            text = line.decode("utf-8")
        except UnicodeDecodeError:
            continue
        results.append(text)
        if len(results) == limit:
            break
    return results


def build_rg_command(pattern: str, include: str | None, search_path: Path) -> List[str]:
    command = [
        RG_BINARY,
        "--files-with-matches",
        "--sortr=modified",
        "--regexp",
        pattern,
        "--no-messages",
    ]
    if include is not None:
        command.extend(["--glob", include])
    command.extend(["--", str(search_path)])
    return command


def run_rg_search(
    pattern: str,
    include: str | None,
    search_path: Path,
    limit: int,
    cwd: Path,
) -> List[str]:
    """Run ripgrep and return up to *limit* matching file paths, newest first."""

    command = build_rg_command(pattern, include, search_path)
    try:
        completed = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            timeout=COMMAND_TIMEOUT_SECS,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise ToolError(Messages.ERROR_RG_TIMEOUT) from exc
    except OSError as exc:
        raise ToolError(Messages.ERROR_RG_LAUNCH.format(reason=exc)) from exc
    if completed.returncode == 0:
        return parse_results(completed.stdout, limit)
    if completed.returncode == 1:
        return []
    stderr = completed.stderr.decode("utf-8", errors="replace")
    raise ToolError(Messages.ERROR_RG_FAILED.format(stderr=stderr))


def _format_output(results: Sequence[str]) -> CachedGrepOutput:
    if not results:
        return CachedGrepOutput(content=Messages.INFO_GREP_NO_MATCHES, success=False)
    return CachedGrepOutput(content="\n".join(results), success=True)


def grep_files(
    arguments: str | Mapping[str, Any],
    workspace_root: Path,
    cache: CacheManager | None = None,
) -> ToolOutput:
    args = parse_arguments(arguments)
    raw_pattern = args.get("pattern")
    if not isinstance(raw_pattern, str):
        raise ToolError(Messages.ERROR_TOOL_ARGS.format(reason="missing field `pattern`"))
    pattern = raw_pattern.strip()
    if not pattern:
        raise ToolError(Messages.ERROR_TOOL_PATTERN_EMPTY)
    limit = int_argument(args, "limit", DEFAULT_LIMIT)
    if limit == 0:
        raise ToolError(Messages.ERROR_TOOL_LIMIT_ZERO)
    limit = min(limit, MAX_LIMIT)

    search_path = resolve_path(workspace_root, args.get("path"))
    ensure_accessible(search_path)
    include_raw = args.get("include")
    include = (include_raw.strip() or None) if isinstance(include_raw, str) else None

    use_cache = cache is not None and cache.enabled
    repo_state = detect_repo_state(workspace_root) if use_cache else None
    cache_key: str | None = None
    if use_cache:
        try:
            cache_key = build_grep_cache_key(
                GrepCacheKeyInputs(
                    workspace_root=workspace_root,
                    search_path=search_path,
                    pattern=pattern,
                    include=include,
                    limit=limit,
                    repo_state=repo_state,
                )
            )
        except ValueError as exc:
            logger.warning("failed to compute cache key for grep_files: %s", exc)

    if cache is not None and cache_key is not None:
        cached = cache.get(cache_key, CacheableTool.GREP_FILES)
        if cached is not None:
            decoded = decode_cached_output(cached)
            if decoded is not None:
                return ToolOutput(content=decoded.content, success=decoded.success)
            logger.warning("failed to decode cached grep_files output: not valid UTF-8")

    output = _format_output(run_rg_search(pattern, include, search_path, limit, workspace_root))

    if cache is not None and cache_key is not None:
        ttl = cache_ttl_for_repo_state(cache.ttl_for(CacheableTool.GREP_FILES), repo_state)
        cache.put(cache_key, output.encode(), ttl, CacheableTool.GREP_FILES)
    return ToolOutput(content=output.content, success=output.success)
