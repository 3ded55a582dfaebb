"""toolstash package initialization."""

from __future__ import annotations

from .cache_store import CacheEntry, DiskCacheStore
from .errors import ToolstashError
from .services.cache_service import CacheManager
from .services.index_service import SemanticIndex

__all__ = [
    "__version__",
    "CacheEntry",
    "CacheManager",
    "DiskCacheStore",
    "SemanticIndex",
    "ToolstashError",
    "get_version",
]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
