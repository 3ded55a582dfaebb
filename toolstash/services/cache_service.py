"""Policy layer over the tool-result cache store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..cache_store import CacheEntry, CacheStore, CacheStoreStats, DiskCacheStore
from ..config import CacheConfig, CacheableTool
from ..telemetry import CacheTelemetry, CacheTelemetrySnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheStatus:
    enabled: bool
    dir: Path
    max_bytes: int
    stats: CacheStoreStats
    telemetry: CacheTelemetrySnapshot


class CacheManager:
    """Enabled flag, TTL lookup and telemetry on top of a ``CacheStore``.

    Lookup and store failures are logged and treated as a miss or a no-op so
    a broken cache never fails the tool call that uses it.
    """

    def __init__(self, config: CacheConfig, store: CacheStore | None = None) -> None:
        self.config = config
        self.store: CacheStore = (
            store if store is not None else DiskCacheStore(config.dir, config.max_bytes)
        )
        self.telemetry = CacheTelemetry()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def ttl_for(self, tool: CacheableTool) -> int:
        return self.config.ttl_for(tool)

    def get(self, key: str, tool: CacheableTool | None = None) -> bytes | None:
        if not self.enabled:
            return None
        try:
            entry = self.store.get(key)
        except OSError as exc:
            logger.warning("cache lookup failed: %s", exc)
            return None
        if entry is None:
            self.telemetry.record_miss(tool)
            return None
        self.telemetry.record_hit(tool)
        return entry.value

    def put(
        self,
        key: str,
        value: bytes,
        ttl: int,
        tool: CacheableTool | None = None,
    ) -> None:
        if not self.enabled:
            return
        try:
            outcome = self.store.put(CacheEntry(key=key, value=value, ttl=ttl))
        except OSError as exc:
            logger.warning("cache store failed: %s", exc)
            return
        self.telemetry.record_store(tool)
        for _ in range(outcome.evicted):
            self.telemetry.record_eviction(tool)

    def clear(self) -> None:
        self.store.clear()

    def status(self) -> CacheStatus:
        return CacheStatus(
            enabled=self.enabled,
            dir=self.config.dir,
            max_bytes=self.config.max_bytes,
            stats=self.store.stats(),
            telemetry=self.telemetry.snapshot(),
        )
