"""Disk-backed tool-result cache with a byte budget and per-entry TTLs.

Payloads live as one file per key under ``entries/``; the metadata for every
entry is mirrored in ``index.json``. The in-memory index is guarded by a
single lock and written back to disk before the lock is released, so the two
views never diverge between operations.
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path
from threading import Lock
from typing import Iterator, Protocol

from .errors import CacheLockError
from .text import Messages

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
ENTRIES_DIRNAME = "entries"


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: bytes
    ttl: int


@dataclass(frozen=True, slots=True)
class CacheStoreStats:
    entries: int
    total_bytes: int


@dataclass(frozen=True, slots=True)
class PutOutcome:
    evicted: int = 0


class CacheStore(Protocol):
    """Storage capability consumed by the cache manager."""

    def get(self, key: str) -> CacheEntry | None:
        raise NotImplementedError  # pragma: no cover

    def put(self, entry: CacheEntry) -> PutOutcome:
        raise NotImplementedError  # pragma: no cover

    def remove(self, key: str) -> None:
        raise NotImplementedError  # pragma: no cover

    def clear(self) -> None:
        raise NotImplementedError  # pragma: no cover

    def stats(self) -> CacheStoreStats:
        raise NotImplementedError  # pragma: no cover


def now_epoch_secs() -> int:
    return int(time.time())


def is_safe_key(key: str) -> bool:
    """Keys name files directly under the entries directory."""

    return bool(key) and key not in (".", "..") and "/" not in key and "\\" not in key


@dataclass(slots=True)
class CacheIndexEntry:
    size_bytes: int
    inserted_epoch: int
    last_access_epoch: int
    ttl_secs: int

    def is_expired(self, now: int | None = None) -> bool:
        if self.ttl_secs == 0:
            return True
        current = now_epoch_secs() if now is None else now
        return max(current - self.inserted_epoch, 0) > self.ttl_secs


@dataclass(slots=True)
class CacheIndex:
    entries: dict[str, CacheIndexEntry] = field(default_factory=dict)
    total_bytes: int = 0

    @classmethod
    def from_json(cls, payload: bytes) -> "CacheIndex":
        raw = json.loads(payload)
        if not isinstance(raw, dict):
            raise ValueError("cache index must be a JSON object")
        raw_entries = raw.get("entries") or {}
        if not isinstance(raw_entries, dict):
            raise ValueError("cache index entries must be a JSON object")
        entries: dict[str, CacheIndexEntry] = {}
        for key, value in raw_entries.items():
            if not is_safe_key(key):
                logger.warning("dropping cache index entry with unsafe key %r", key)
                continue
            entries[key] = CacheIndexEntry(
                size_bytes=int(value["size_bytes"]),
                inserted_epoch=int(value["inserted_epoch"]),
                last_access_epoch=int(value["last_access_epoch"]),
                ttl_secs=int(value["ttl_secs"]),
            )
        return cls(entries=entries, total_bytes=int(raw.get("total_bytes", 0)))

    def to_json(self) -> bytes:
        payload = {
            "entries": {key: asdict(entry) for key, entry in self.entries.items()},
            "total_bytes": self.total_bytes,
        }
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    def remove_entry(self, key: str, entries_path: Path) -> None:
        entry = self.entries.pop(key, None)
        if entry is None:
            return
        self.total_bytes = max(self.total_bytes - entry.size_bytes, 0)
        _unlink_quietly(entries_path / key)

    def clear(self, entries_path: Path) -> None:
        for key in self.entries:
            _unlink_quietly(entries_path / key)
        self.entries.clear()
        self.total_bytes = 0

    def oldest_key(self) -> str | None:
        if not self.entries:
            return None
        return min(
            self.entries,
            key=lambda key: (self.entries[key].last_access_epoch, key),
        )

    def prune_expired(self, entries_path: Path) -> None:
        now = now_epoch_secs()
        expired = [key for key, entry in self.entries.items() if entry.is_expired(now)]
        for key in expired:
            self.remove_entry(key, entries_path)

    def recalculate_bytes(self, entries_path: Path) -> None:
        total = 0
        missing: list[str] = []
        for key in self.entries:
            try:
                total += (entries_path / key).stat().st_size
            except OSError:
                missing.append(key)
        for key in missing:
            del self.entries[key]
        self.total_bytes = total


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.debug("failed to remove cache payload %s: %s", path, exc)


class DiskCacheStore:
    """Cache store persisting one payload file per key plus a JSON index."""

    def __init__(self, cache_dir: Path | str, max_bytes: int) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.entries_path = self.cache_dir / ENTRIES_DIRNAME
        self.entries_path.mkdir(parents=True, exist_ok=True)
        self.index_path = self.cache_dir / INDEX_FILENAME
        self.max_bytes = max(int(max_bytes), 0)
        self._lock = Lock()
        self._poisoned = False
        index = self._load_index()
        index.prune_expired(self.entries_path)
        index.recalculate_bytes(self.entries_path)
        self._index = index

    def _load_index(self) -> CacheIndex:
        try:
            payload = self.index_path.read_bytes()
        except FileNotFoundError:
            return CacheIndex()
        except OSError as exc:
            logger.warning("failed to load cache index: %s", exc)
            return CacheIndex()
        try:
            return CacheIndex.from_json(payload)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("failed to load cache index: %s", exc)
            return CacheIndex()

    def _persist_index(self, index: CacheIndex) -> None:
        tmp_path = self.index_path.with_name(f"{self.index_path.name}.tmp")
        tmp_path.write_bytes(index.to_json())
        os.replace(tmp_path, self.index_path)

    def _entry_path(self, key: str) -> Path:
        return self.entries_path / key

    @contextmanager
    def _locked(self) -> Iterator[CacheIndex]:
        with self._lock:
            if self._poisoned:
                raise CacheLockError(Messages.ERROR_CACHE_LOCK)
            try:
                yield self._index
            except OSError:
                raise
            except BaseException:
                self._poisoned = True
                raise

    def get(self, key: str) -> CacheEntry | None:
        with self._locked() as index:
            entry = index.entries.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                index.remove_entry(key, self.entries_path)
                self._persist_index(index)
                return None
            try:
                value = self._entry_path(key).read_bytes()
            except FileNotFoundError:
                index.remove_entry(key, self.entries_path)
                self._persist_index(index)
                return None
            entry.last_access_epoch = now_epoch_secs()
            self._persist_index(index)
            return CacheEntry(key=key, value=value, ttl=entry.ttl_secs)

    def put(self, entry: CacheEntry) -> PutOutcome:
        if self.max_bytes == 0:
            return PutOutcome(evicted=0)
        with self._locked() as index:
            size_bytes = len(entry.value)
            if size_bytes > self.max_bytes:
                return PutOutcome(evicted=0)
            if entry.key in index.entries:
                index.remove_entry(entry.key, self.entries_path)
            evicted = 0
            while index.total_bytes + size_bytes > self.max_bytes:
                oldest = index.oldest_key()
                if oldest is None:
                    break
                index.remove_entry(oldest, self.entries_path)
                evicted += 1
            self._entry_path(entry.key).write_bytes(entry.value)
            now = now_epoch_secs()
            index.total_bytes += size_bytes
            index.entries[entry.key] = CacheIndexEntry(
                size_bytes=size_bytes,
                inserted_epoch=now,
                last_access_epoch=now,
                ttl_secs=int(entry.ttl),
            )
            self._persist_index(index)
            return PutOutcome(evicted=evicted)

    def remove(self, key: str) -> None:
        with self._locked() as index:
            index.remove_entry(key, self.entries_path)
            self._persist_index(index)

    def clear(self) -> None:
        with self._locked() as index:
            index.clear(self.entries_path)
            self._persist_index(index)

    def stats(self) -> CacheStoreStats:
        with self._locked() as index:
            return CacheStoreStats(entries=len(index.entries), total_bytes=index.total_bytes)
