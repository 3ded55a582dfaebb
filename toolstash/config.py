"""Global configuration management for toolstash."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from contextlib import contextmanager
from contextvars import ContextVar
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

HOME_ENV = "TOOLSTASH_HOME"
DEFAULT_CONFIG_DIR = Path(
    os.environ.get(HOME_ENV) or Path(os.path.expanduser("~")) / ".toolstash"
).expanduser()
CONFIG_DIR = DEFAULT_CONFIG_DIR
CONFIG_FILE = CONFIG_DIR / "config.json"
_CONFIG_DIR_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "toolstash_config_dir_override",
    default=None,
)

DEFAULT_CACHE_DIR_NAME = "cache"
DEFAULT_CACHE_MAX_BYTES = 256 * 1024 * 1024
DEFAULT_CACHE_DEFAULT_TTL_SECS = 60
DEFAULT_CACHE_READ_FILE_TTL_SECS = 300
DEFAULT_CACHE_GREP_FILES_TTL_SECS = 10

DEFAULT_SEMANTIC_INDEX_DIR = ".toolstash-index"
DEFAULT_SEMANTIC_INDEX_MODEL = "text-embedding-3-small"
DEFAULT_SEMANTIC_INDEX_CHUNK_MAX_LINES = 120
DEFAULT_SEMANTIC_INDEX_RETRIEVE_TOP_K = 8
DEFAULT_SEMANTIC_INDEX_RETRIEVE_MAX_CHARS = 12_000

ENV_API_KEY = "TOOLSTASH_API_KEY"
OPENAI_ENV = "OPENAI_API_KEY"


class CacheableTool(str, Enum):
    READ_FILE = "read_file"
    LIST_DIR = "list_dir"
    GREP_FILES = "grep_files"

    @property
    def config_key(self) -> str:
        return self.value


@dataclass
class CacheToolTtl:
    read_file: int | None = DEFAULT_CACHE_READ_FILE_TTL_SECS
    list_dir: int | None = None
    grep_files: int | None = DEFAULT_CACHE_GREP_FILES_TTL_SECS

    def for_tool(self, tool: CacheableTool) -> int | None:
        return getattr(self, tool.config_key)

    def override_with(self, overrides: Mapping[str, Any] | None) -> None:
        if not overrides:
            return
        for tool in CacheableTool:
            value = overrides.get(tool.config_key)
            if value is not None:
                setattr(self, tool.config_key, int(value))


@dataclass
class CacheConfig:
    enabled: bool = True
    dir: Path = field(default_factory=lambda: _resolve_config_dir() / DEFAULT_CACHE_DIR_NAME)
    max_bytes: int = DEFAULT_CACHE_MAX_BYTES
    default_ttl: int = DEFAULT_CACHE_DEFAULT_TTL_SECS
    tool_ttl: CacheToolTtl = field(default_factory=CacheToolTtl)

    def ttl_for(self, tool: CacheableTool) -> int:
        ttl = self.tool_ttl.for_tool(tool)
        return self.default_ttl if ttl is None else ttl

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[str, Any] | None,
        *,
        config_dir: Path | None = None,
    ) -> "CacheConfig":
        raw = raw or {}
        base = config_dir if config_dir is not None else _resolve_config_dir()
        raw_dir = raw.get("dir")
        if raw_dir:
            dir_path = Path(raw_dir).expanduser()
            if not dir_path.is_absolute():
                dir_path = base / dir_path
        else:
            dir_path = base / DEFAULT_CACHE_DIR_NAME
        tool_ttl = CacheToolTtl()
        tool_ttl.override_with(raw.get("tool_ttl_sec"))
        config = cls(
            enabled=bool(raw.get("enabled", True)),
            dir=dir_path,
            max_bytes=int(raw.get("max_bytes", DEFAULT_CACHE_MAX_BYTES)),
            default_ttl=int(raw.get("default_ttl_sec", DEFAULT_CACHE_DEFAULT_TTL_SECS)),
            tool_ttl=tool_ttl,
        )
        logger.debug(
            "loaded cache config enabled=%s dir=%s max_bytes=%d default_ttl_secs=%d",
            config.enabled,
            config.dir,
            config.max_bytes,
            config.default_ttl,
        )
        return config


@dataclass
class ChunkingConfig:
    max_lines: int = DEFAULT_SEMANTIC_INDEX_CHUNK_MAX_LINES


@dataclass
class RetrieveConfig:
    top_k: int = DEFAULT_SEMANTIC_INDEX_RETRIEVE_TOP_K
    max_chars: int = DEFAULT_SEMANTIC_INDEX_RETRIEVE_MAX_CHARS


@dataclass
class SemanticIndexConfig:
    dir: Path
    enabled: bool = True
    embedding_model: str = DEFAULT_SEMANTIC_INDEX_MODEL
    chunk: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieve: RetrieveConfig = field(default_factory=RetrieveConfig)

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[str, Any] | None,
        workspace_root: Path,
    ) -> "SemanticIndexConfig":
        """Build the section, resolving the index directory against *workspace_root*."""

        raw = raw or {}
        dir_path = Path(raw.get("dir") or DEFAULT_SEMANTIC_INDEX_DIR).expanduser()
        if not dir_path.is_absolute():
            dir_path = workspace_root / dir_path
        chunk_raw = raw.get("chunk") or {}
        retrieve_raw = raw.get("retrieve") or {}
        config = cls(
            dir=dir_path,
            enabled=bool(raw.get("enabled", True)),
            embedding_model=raw.get("embedding_model") or DEFAULT_SEMANTIC_INDEX_MODEL,
            chunk=ChunkingConfig(
                max_lines=int(
                    chunk_raw.get("max_lines", DEFAULT_SEMANTIC_INDEX_CHUNK_MAX_LINES)
                ),
            ),
            retrieve=RetrieveConfig(
                top_k=int(retrieve_raw.get("top_k", DEFAULT_SEMANTIC_INDEX_RETRIEVE_TOP_K)),
                max_chars=int(
                    retrieve_raw.get("max_chars", DEFAULT_SEMANTIC_INDEX_RETRIEVE_MAX_CHARS)
                ),
            ),
        )
        logger.debug(
            "loaded semantic index config enabled=%s dir=%s embedding_model=%s "
            "chunk_max_lines=%d retrieve_top_k=%d retrieve_max_chars=%d",
            config.enabled,
            config.dir,
            config.embedding_model,
            config.chunk.max_lines,
            config.retrieve.top_k,
            config.retrieve.max_chars,
        )
        return config


@dataclass
class Config:
    workspace_root: Path
    cache: CacheConfig
    semantic_index: SemanticIndexConfig
    api_key: str | None = None
    base_url: str | None = None


def _resolve_config_dir() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    return override if override is not None else CONFIG_DIR


def _resolve_config_file() -> Path:
    override = _CONFIG_DIR_OVERRIDE.get()
    if override is not None:
        return override / "config.json"
    return CONFIG_FILE


@contextmanager
def config_dir_context(path: Path | str | None):
    """Temporarily override the config directory for the current context."""

    if path is None:
        yield
        return
    dir_path = Path(path).expanduser().resolve()
    if dir_path.exists() and not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    token = _CONFIG_DIR_OVERRIDE.set(dir_path)
    try:
        yield
    finally:
        _CONFIG_DIR_OVERRIDE.reset(token)


def set_config_dir(path: Path | str | None) -> None:
    global CONFIG_DIR, CONFIG_FILE
    if path is None:
        CONFIG_DIR = DEFAULT_CONFIG_DIR
    else:
        dir_path = Path(path).expanduser().resolve()
        if dir_path.exists() and not dir_path.is_dir():
            raise NotADirectoryError(f"Path is not a directory: {dir_path}")
        CONFIG_DIR = dir_path
    CONFIG_FILE = CONFIG_DIR / "config.json"


def load_raw_config() -> dict[str, Any]:
    config_file = _resolve_config_file()
    if not config_file.exists():
        return {}
    raw = json.loads(config_file.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return {}
    return raw


def load_config(workspace_root: Path | str | None = None) -> Config:
    """Load the config file and resolve workspace-relative settings."""

    root = Path(workspace_root).expanduser().resolve() if workspace_root else Path.cwd().resolve()
    raw = load_raw_config()
    config_dir = _resolve_config_dir()
    return Config(
        workspace_root=root,
        cache=CacheConfig.from_raw(raw.get("cache"), config_dir=config_dir),
        semantic_index=SemanticIndexConfig.from_raw(raw.get("semantic_index"), root),
        api_key=raw.get("api_key") or None,
        base_url=raw.get("base_url") or None,
    )


def resolve_api_key(configured: str | None) -> str | None:
    """Return the first available API key from config or environment."""

    if configured:
        return configured
    general = os.getenv(ENV_API_KEY)
    if general:
        return general
    openai_key = os.getenv(OPENAI_ENV)
    if openai_key:
        return openai_key
    return None
