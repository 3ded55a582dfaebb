"""Logic helpers for the `toolstash index` and `toolstash search` commands."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence

from ..config import SemanticIndexConfig
from ..errors import EmbeddingError, EmbeddingMismatchError, SemanticIndexDisabledError
from ..search import EmbeddingBackend, SearchHit, cosine_similarity, rank_hits
from ..text import Messages
from ..utils import collect_files, relative_posix
from ..vector_store import (
    ChunkEntry,
    FileEntry,
    IndexMeta,
    IndexStats,
    StoreMode,
    VectorStore,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass(frozen=True, slots=True)
class Chunk:
    start_line: int
    end_line: int
    text: str


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` with ``\\r\\n`` tolerated and no trailing empty line."""

    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def chunk_lines(lines: Sequence[str], max_lines: int) -> list[Chunk]:
    """Split *lines* into contiguous windows of at most *max_lines* lines.

    Line numbers are 1-based. Windows holding only whitespace are dropped
    without shifting the numbering of later windows.
    """

    if max_lines <= 0:
        return []
    chunks: list[Chunk] = []
    for offset in range(0, len(lines), max_lines):
        window = lines[offset : offset + max_lines]
        text = "\n".join(window)
        if not text.strip():
            continue
        start_line = offset + 1
        chunks.append(Chunk(start_line=start_line, end_line=start_line + len(window) - 1, text=text))
    return chunks


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_string(value: str) -> str:
    return hash_bytes(value.encode("utf-8"))


def chunk_id(path: str, start_line: int, end_line: int, text_hash: str) -> str:
    return hash_string(f"{path}:{start_line}-{end_line}:{text_hash}")


def fingerprint_workspace(path: Path | str) -> str:
    return hash_string(str(path))


class SemanticIndex:
    """Builds and queries the vector store for one workspace."""

    def __init__(
        self,
        workspace_root: Path | str,
        config: SemanticIndexConfig,
        embedder: EmbeddingBackend | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root).expanduser().resolve()
        self.config = config
        self.embedder = embedder

    @property
    def index_dir(self) -> Path:
        return self.config.dir

    def _ensure_enabled(self) -> None:
        if not self.config.enabled:
            raise SemanticIndexDisabledError(Messages.ERROR_INDEX_DISABLED)

    def _require_embedder(self) -> EmbeddingBackend:
        if self.embedder is None:
            raise EmbeddingError(Messages.ERROR_EMBEDDER_MISSING)
        return self.embedder

    async def build(self) -> IndexStats:
        """Rebuild the index from scratch and return the resulting stats."""

        self._ensure_enabled()
        embedder = self._require_embedder()
        created_at = datetime.now(timezone.utc)
        embedding_dim: int | None = None
        model = self.config.embedding_model
        max_lines = self.config.chunk.max_lines

        logger.info("starting semantic index build index_dir=%s", self.index_dir)
        with VectorStore.open(self.index_dir, StoreMode.RESET) as store:
            for file_path in collect_files(self.workspace_root, self.index_dir):
                relative = relative_posix(file_path, self.workspace_root)
                try:
                    stat = file_path.stat()
                except OSError as exc:
                    logger.warning("skipping file metadata error path=%s: %s", file_path, exc)
                    continue
                try:
                    data = file_path.read_bytes()
                except OSError as exc:
                    logger.warning("skipping unreadable file path=%s: %s", file_path, exc)
                    continue
                if not data or b"\x00" in data:
                    logger.debug("skipping empty or binary file path=%s", file_path)
                    continue
                chunks = chunk_lines(
                    split_lines(data.decode("utf-8", errors="replace")),
                    max_lines,
                )
                if not chunks:
                    continue

                store.store_file(
                    FileEntry(
                        path=relative,
                        content_hash=hash_bytes(data),
                        mtime=int(stat.st_mtime),
                        size=stat.st_size,
                    )
                )
                embeddings = await embedder.embed(model, [chunk.text for chunk in chunks])
                if len(embeddings) != len(chunks):
                    raise EmbeddingMismatchError(
                        Messages.ERROR_EMBED_FILE_COUNT.format(
                            path=file_path,
                            expected=len(chunks),
                            actual=len(embeddings),
                        )
                    )
                entries: list[ChunkEntry] = []
                for chunk, embedding in zip(chunks, embeddings):
                    if embedding_dim is None:
                        embedding_dim = len(embedding)
                    elif embedding_dim != len(embedding):
                        raise EmbeddingMismatchError(
                            Messages.ERROR_EMBED_DIM.format(
                                previous=embedding_dim,
                                current=len(embedding),
                            )
                        )
                    text_hash = hash_string(chunk.text)
                    entries.append(
                        ChunkEntry(
                            file_path=relative,
                            chunk_id=chunk_id(relative, chunk.start_line, chunk.end_line, text_hash),
                            start_line=chunk.start_line,
                            end_line=chunk.end_line,
                            text_hash=text_hash,
                            embedding=embedding,
                            updated_at=created_at,
                        )
                    )
                store.store_chunks(entries)

            store.store_meta(
                IndexMeta(
                    schema_version=SCHEMA_VERSION,
                    embedding_model=model,
                    dim=embedding_dim or 0,
                    chunk_size=max_lines,
                    created_at=created_at,
                    workspace_fingerprint=fingerprint_workspace(self.workspace_root),
                )
            )
            stats = store.stats()
        logger.info(
            "semantic index build complete files=%d chunks=%d",
            stats.file_count,
            stats.chunk_count,
        )
        return stats

    async def search(self, query: str, top_k: int) -> List[SearchHit]:
        """Return the *top_k* chunks closest to *query*."""

        self._ensure_enabled()
        if not query.strip():
            return []
        embedder = self._require_embedder()
        with VectorStore.open(self.index_dir, StoreMode.OPEN_EXISTING) as store:
            vectors = await embedder.embed(self.config.embedding_model, [query])
            if len(vectors) != 1:
                raise EmbeddingMismatchError(
                    Messages.ERROR_EMBED_COUNT.format(expected=1, actual=len(vectors))
                )
            query_vector = vectors[0]
            candidates = store.list_embeddings()
        hits: list[SearchHit] = []
        for candidate in candidates:
            score = cosine_similarity(query_vector, candidate.embedding)
            if score is None:
                continue
            hits.append(
                SearchHit(
                    file_path=candidate.file_path,
                    start_line=candidate.start_line,
                    end_line=candidate.end_line,
                    score=score,
                    chunk_id=candidate.chunk_id,
                )
            )
        ranked = rank_hits(hits, top_k)
        logger.debug("search scored %d candidates, returning %d", len(hits), len(ranked))
        return ranked

    def stats(self) -> IndexStats:
        with VectorStore.open(self.index_dir, StoreMode.OPEN_EXISTING) as store:
            return store.stats()

    def clear(self) -> None:
        if VectorStore.clear(self.index_dir):
            logger.info("semantic index cleared index_dir=%s", self.index_dir)
