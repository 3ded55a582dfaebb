"""SQLite-backed storage for the semantic index."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Sequence

import numpy as np

from .errors import EmbeddingDecodeError, IndexNotFoundError
from .text import Messages

logger = logging.getLogger(__name__)

DB_FILENAME = "index.sqlite"
_ELEMENT_SIZE = 4
_EMBEDDING_DTYPE = np.dtype("<f4")


class StoreMode(str, Enum):
    OPEN_EXISTING = "open_existing"
    CREATE_OR_OPEN = "create_or_open"
    RESET = "reset"


@dataclass(frozen=True, slots=True)
class IndexMeta:
    schema_version: int
    embedding_model: str
    dim: int
    chunk_size: int
    created_at: datetime
    workspace_fingerprint: str


@dataclass(frozen=True, slots=True)
class IndexStats:
    file_count: int = 0
    chunk_count: int = 0
    embedding_model: str | None = None
    embedding_dim: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class FileEntry:
    path: str
    content_hash: str
    mtime: int
    size: int


@dataclass(slots=True)
class ChunkEntry:
    file_path: str
    chunk_id: str
    start_line: int
    end_line: int
    text_hash: str
    embedding: Sequence[float]
    updated_at: datetime


@dataclass(slots=True)
class EmbeddingRecord:
    file_path: str
    chunk_id: str
    start_line: int
    end_line: int
    embedding: list[float]


def encode_embedding(embedding: Sequence[float]) -> bytes:
    """Serialize *embedding* as concatenated little-endian float32 values."""

    return np.asarray(embedding, dtype=_EMBEDDING_DTYPE).tobytes()


def decode_embedding(blob: bytes) -> list[float]:
    if len(blob) % _ELEMENT_SIZE:
        raise EmbeddingDecodeError(len(blob), _ELEMENT_SIZE)
    return np.frombuffer(blob, dtype=_EMBEDDING_DTYPE).astype(np.float32).tolist()


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.OperationalError as exc:
        if "readonly" not in str(exc).lower():
            raise
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute("PRAGMA temp_store = MEMORY;")
    conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS meta (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            schema_version INTEGER NOT NULL,
            embedding_model TEXT NOT NULL,
            dim INTEGER NOT NULL,
            chunk_size INTEGER NOT NULL,
            created_at TEXT NOT NULL,
            workspace_fingerprint TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS files (
            path TEXT PRIMARY KEY,
            content_hash TEXT NOT NULL,
            mtime INTEGER NOT NULL,
            size INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS chunks (
            file_path TEXT NOT NULL,
            chunk_id TEXT PRIMARY KEY,
            start_line INTEGER NOT NULL,
            end_line INTEGER NOT NULL,
            text_hash TEXT NOT NULL,
            embedding BLOB NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS chunks_by_file ON chunks(file_path);
        """
    )


def _remove_db_files(db_path: Path) -> None:
    for candidate in (
        db_path,
        db_path.with_name(f"{db_path.name}-wal"),
        db_path.with_name(f"{db_path.name}-shm"),
    ):
        candidate.unlink(missing_ok=True)


class VectorStore:
    """One connection to ``<index_dir>/index.sqlite``.

    Rows are written with autocommit-style transactions per statement group;
    a rebuild always starts from :attr:`StoreMode.RESET` so stale chunks from
    a previous generation never survive.
    """

    def __init__(self, conn: sqlite3.Connection, db_path: Path) -> None:
        self._conn = conn
        self.db_path = db_path

    @classmethod
    def open(cls, directory: Path | str, mode: StoreMode) -> "VectorStore":
        index_dir = Path(directory)
        db_path = index_dir / DB_FILENAME
        if mode is StoreMode.OPEN_EXISTING:
            if not db_path.exists():
                raise IndexNotFoundError(Messages.ERROR_INDEX_MISSING.format(path=db_path))
        else:
            index_dir.mkdir(parents=True, exist_ok=True)
        if mode is StoreMode.RESET and db_path.exists():
            logger.debug("resetting semantic index at %s", db_path)
            _remove_db_files(db_path)
        conn = _connect(db_path)
        try:
            _ensure_schema(conn)
        except sqlite3.DatabaseError:
            conn.close()
            raise
        return cls(conn, db_path)

    @staticmethod
    def clear(directory: Path | str) -> bool:
        """Delete the store under *directory*; return whether one existed."""

        db_path = Path(directory) / DB_FILENAME
        if not db_path.exists():
            return False
        _remove_db_files(db_path)
        return True

    def store_meta(self, meta: IndexMeta) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM meta")
            self._conn.execute(
                """
                INSERT INTO meta (
                    id, schema_version, embedding_model, dim, chunk_size, created_at, workspace_fingerprint
                ) VALUES (1, ?, ?, ?, ?, ?, ?)
                """,
                (
                    meta.schema_version,
                    meta.embedding_model,
                    meta.dim,
                    meta.chunk_size,
                    _format_timestamp(meta.created_at),
                    meta.workspace_fingerprint,
                ),
            )

    def store_file(self, entry: FileEntry) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO files (path, content_hash, mtime, size) VALUES (?, ?, ?, ?)",
                (entry.path, entry.content_hash, entry.mtime, entry.size),
            )

    def store_chunk(self, chunk: ChunkEntry) -> None:
        self.store_chunks((chunk,))

    def store_chunks(self, chunks: Sequence[ChunkEntry]) -> None:
        if not chunks:
            return
        with self._conn:
            self._conn.executemany(
                """
                INSERT OR REPLACE INTO chunks (
                    file_path, chunk_id, start_line, end_line, text_hash, embedding, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chunk.file_path,
                        chunk.chunk_id,
                        chunk.start_line,
                        chunk.end_line,
                        chunk.text_hash,
                        encode_embedding(chunk.embedding),
                        _format_timestamp(chunk.updated_at),
                    )
                    for chunk in chunks
                ],
            )

    def stats(self) -> IndexStats:
        file_count = self._conn.execute("SELECT COUNT(*) AS count FROM files").fetchone()["count"]
        chunk_count = self._conn.execute("SELECT COUNT(*) AS count FROM chunks").fetchone()["count"]
        meta = self._conn.execute(
            "SELECT embedding_model, dim, created_at FROM meta WHERE id = 1 LIMIT 1"
        ).fetchone()
        if meta is None:
            return IndexStats(file_count=int(file_count), chunk_count=int(chunk_count))
        return IndexStats(
            file_count=int(file_count),
            chunk_count=int(chunk_count),
            embedding_model=meta["embedding_model"],
            embedding_dim=int(meta["dim"]),
            created_at=_parse_timestamp(meta["created_at"]),
        )

    def load_meta(self) -> IndexMeta | None:
        row = self._conn.execute(
            """
            SELECT schema_version, embedding_model, dim, chunk_size, created_at, workspace_fingerprint
            FROM meta WHERE id = 1 LIMIT 1
            """
        ).fetchone()
        if row is None:
            return None
        created_at = _parse_timestamp(row["created_at"]) or datetime.fromtimestamp(0, timezone.utc)
        return IndexMeta(
            schema_version=int(row["schema_version"]),
            embedding_model=row["embedding_model"],
            dim=int(row["dim"]),
            chunk_size=int(row["chunk_size"]),
            created_at=created_at,
            workspace_fingerprint=row["workspace_fingerprint"],
        )

    def list_embeddings(self) -> list[EmbeddingRecord]:
        rows = self._conn.execute(
            "SELECT file_path, chunk_id, start_line, end_line, embedding FROM chunks"
        ).fetchall()
        return [
            EmbeddingRecord(
                file_path=row["file_path"],
                chunk_id=row["chunk_id"],
                start_line=int(row["start_line"]),
                end_line=int(row["end_line"]),
                embedding=decode_embedding(bytes(row["embedding"])),
            )
            for row in rows
        ]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "VectorStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
