"""Lightweight metrics collector for cache operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Mapping

from .config import CacheableTool

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CounterSnapshot:
    hits: int = 0
    misses: int = 0
    stores: int = 0
    evictions: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float | None:
        lookups = self.lookups
        if lookups == 0:
            return None
        return self.hits / lookups


@dataclass(frozen=True, slots=True)
class CacheTelemetrySnapshot:
    hits: int
    misses: int
    stores: int
    evictions: int
    hit_rate: float | None
    by_tool: Mapping[CacheableTool, CounterSnapshot] = field(default_factory=dict)


class _Counters:
    __slots__ = ("hits", "misses", "stores", "evictions")

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.stores = 0
        self.evictions = 0

    def snapshot(self) -> CounterSnapshot:
        return CounterSnapshot(
            hits=self.hits,
            misses=self.misses,
            stores=self.stores,
            evictions=self.evictions,
        )


class CacheTelemetry:
    """Counts cache outcomes in aggregate and per tool.

    One instance belongs to each cache manager; the counters are shared by
    every caller of that manager and updated under a lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._total = _Counters()
        self._by_tool = {tool: _Counters() for tool in CacheableTool}

    def _bump(self, attr: str, tool: CacheableTool | None, amount: int = 1) -> None:
        if amount <= 0:
            return
        with self._lock:
            setattr(self._total, attr, getattr(self._total, attr) + amount)
            if tool is not None:
                counters = self._by_tool[tool]
                setattr(counters, attr, getattr(counters, attr) + amount)

    def record_hit(self, tool: CacheableTool | None = None) -> None:
        self._bump("hits", tool)
        logger.debug("cache hit recorded tool=%s", tool.value if tool else "-")

    def record_miss(self, tool: CacheableTool | None = None) -> None:
        self._bump("misses", tool)
        logger.debug("cache miss recorded tool=%s", tool.value if tool else "-")

    def record_store(self, tool: CacheableTool | None = None) -> None:
        self._bump("stores", tool)
        logger.debug("cache store recorded tool=%s", tool.value if tool else "-")

    def record_eviction(self, tool: CacheableTool | None = None, count: int = 1) -> None:
        self._bump("evictions", tool, count)
        logger.debug("cache eviction recorded tool=%s count=%d", tool.value if tool else "-", count)

    def snapshot(self) -> CacheTelemetrySnapshot:
        with self._lock:
            total = self._total.snapshot()
            by_tool = {tool: counters.snapshot() for tool, counters in self._by_tool.items()}
        return CacheTelemetrySnapshot(
            hits=total.hits,
            misses=total.misses,
            stores=total.stores,
            evictions=total.evictions,
            hit_rate=total.hit_rate,
            by_tool=by_tool,
        )
