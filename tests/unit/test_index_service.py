import asyncio
import hashlib
from pathlib import Path

import pytest

from toolstash.config import ChunkingConfig, SemanticIndexConfig
from toolstash.errors import (
    EmbeddingMismatchError,
    IndexNotFoundError,
    SemanticIndexDisabledError,
)
from toolstash.services.index_service import (
    Chunk,
    SemanticIndex,
    chunk_id,
    chunk_lines,
    fingerprint_workspace,
    hash_string,
    split_lines,
)
from toolstash.vector_store import StoreMode, VectorStore


class FakeEmbedder:
    """Maps each text to ``[count("alpha"), count("beta"), 1.0]``."""

    def __init__(self):
        self.calls = []

    async def embed(self, model, inputs):
        self.calls.append((model, list(inputs)))
        return [[float(text.count("alpha")), float(text.count("beta")), 1.0] for text in inputs]


class ShortEmbedder(FakeEmbedder):
    async def embed(self, model, inputs):
        vectors = await super().embed(model, inputs)
        return vectors[:-1]


class DriftingEmbedder(FakeEmbedder):
    async def embed(self, model, inputs):
        vectors = await super().embed(model, inputs)
        return [vector + [0.0] * len(self.calls) for vector in vectors]


def _config(root: Path, **overrides) -> SemanticIndexConfig:
    values = {"dir": root / ".toolstash-index", "chunk": ChunkingConfig(max_lines=2)}
    values.update(overrides)
    return SemanticIndexConfig(**values)


def _workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "alpha.txt").write_text("alpha one\nalpha two\nalpha three\n")
    (root / "beta.txt").write_text("beta\n")
    (root / "empty.txt").write_text("")
    (root / "blank.txt").write_text("   \n\n")
    (root / "binary.bin").write_bytes(b"abc\x00def")
    git_dir = root / ".git"
    git_dir.mkdir()
    (git_dir / "HEAD").write_text("alpha alpha alpha\n")
    return root


def test_chunk_lines_splits_by_max_lines():
    chunks = chunk_lines(["one", "two", "three", "four"], 2)

    assert chunks == [
        Chunk(start_line=1, end_line=2, text="one\ntwo"),
        Chunk(start_line=3, end_line=4, text="three\nfour"),
    ]


def test_chunk_lines_drops_blank_windows_and_keeps_numbering():
    chunks = chunk_lines(["one", "two", " ", "", "five"], 2)

    assert chunks == [
        Chunk(start_line=1, end_line=2, text="one\ntwo"),
        Chunk(start_line=5, end_line=5, text="five"),
    ]
    assert chunk_lines([" ", "\t"], 2) == []
    assert chunk_lines(["one"], 0) == []


def test_split_lines_handles_crlf_and_trailing_newline():
    assert split_lines("a\r\nb\n") == ["a", "b"]
    assert split_lines("a\n\nb") == ["a", "", "b"]
    assert split_lines("") == []


def test_chunk_id_is_hash_of_location_and_text():
    text_hash = hash_string("body")

    assert chunk_id("src/a.py", 1, 4, text_hash) == hashlib.sha256(
        f"src/a.py:1-4:{text_hash}".encode()
    ).hexdigest()
    assert fingerprint_workspace("/work") == hashlib.sha256(b"/work").hexdigest()


def test_build_indexes_text_files(tmp_path):
    root = _workspace(tmp_path)
    embedder = FakeEmbedder()
    index = SemanticIndex(root, _config(root, embedding_model="fake-model"), embedder)

    stats = asyncio.run(index.build())

    assert stats.file_count == 2
    assert stats.chunk_count == 3
    assert stats.embedding_model == "fake-model"
    assert stats.embedding_dim == 3
    assert stats.created_at is not None
    assert [call[1] for call in embedder.calls] == [
        ["alpha one\nalpha two", "alpha three"],
        ["beta"],
    ]
    with VectorStore.open(root / ".toolstash-index", StoreMode.OPEN_EXISTING) as store:
        meta = store.load_meta()
        files = {record.file_path for record in store.list_embeddings()}
    assert files == {"alpha.txt", "beta.txt"}
    assert meta.schema_version == 1
    assert meta.chunk_size == 2
    assert meta.workspace_fingerprint == fingerprint_workspace(root.resolve())


def test_build_excludes_index_directory(tmp_path):
    root = _workspace(tmp_path)
    index = SemanticIndex(root, _config(root), FakeEmbedder())
    asyncio.run(index.build())

    stats = asyncio.run(index.build())

    assert stats.file_count == 2


def test_rebuild_drops_deleted_files(tmp_path):
    root = _workspace(tmp_path)
    index = SemanticIndex(root, _config(root), FakeEmbedder())
    asyncio.run(index.build())
    (root / "beta.txt").unlink()

    stats = asyncio.run(index.build())

    assert stats.file_count == 1
    assert stats.chunk_count == 2


def test_build_without_chunks_records_zero_dimension(tmp_path):
    root = tmp_path / "empty"
    root.mkdir()
    (root / "blank.txt").write_text("\n\n")
    embedder = FakeEmbedder()

    stats = asyncio.run(SemanticIndex(root, _config(root), embedder).build())

    assert stats.file_count == 0
    assert stats.embedding_dim == 0
    assert embedder.calls == []


def test_build_fails_on_embedding_count_mismatch(tmp_path):
    root = _workspace(tmp_path)
    index = SemanticIndex(root, _config(root), ShortEmbedder())

    with pytest.raises(EmbeddingMismatchError, match="embedding response mismatch"):
        asyncio.run(index.build())


def test_build_fails_on_dimension_drift(tmp_path):
    root = _workspace(tmp_path)
    index = SemanticIndex(root, _config(root), DriftingEmbedder())

    with pytest.raises(EmbeddingMismatchError, match="embedding dimension changed from 4 to 5"):
        asyncio.run(index.build())


def test_disabled_index_rejects_build_and_search(tmp_path):
    root = _workspace(tmp_path)
    embedder = FakeEmbedder()
    index = SemanticIndex(root, _config(root, enabled=False), embedder)

    with pytest.raises(SemanticIndexDisabledError):
        asyncio.run(index.build())
    with pytest.raises(SemanticIndexDisabledError):
        asyncio.run(index.search("alpha", 3))
    assert embedder.calls == []


def test_search_ranks_by_similarity(tmp_path):
    root = _workspace(tmp_path)
    embedder = FakeEmbedder()
    index = SemanticIndex(root, _config(root), embedder)
    asyncio.run(index.build())

    hits = asyncio.run(index.search("beta", 2))

    assert embedder.calls[-1][1] == ["beta"]
    assert [(hit.file_path, hit.start_line) for hit in hits] == [
        ("beta.txt", 1),
        ("alpha.txt", 3),
    ]
    assert hits[0].score == pytest.approx(1.0)


def test_search_ties_break_by_path_and_line(tmp_path):
    root = _workspace(tmp_path)
    index = SemanticIndex(root, _config(root), FakeEmbedder())
    asyncio.run(index.build())

    hits = asyncio.run(index.search("nothing relevant", 5))

    assert [(hit.file_path, hit.start_line) for hit in hits] == [
        ("alpha.txt", 3),
        ("beta.txt", 1),
        ("alpha.txt", 1),
    ]


def test_blank_query_skips_embedder(tmp_path):
    root = _workspace(tmp_path)
    embedder = FakeEmbedder()
    index = SemanticIndex(root, _config(root), embedder)

    assert asyncio.run(index.search("   ", 5)) == []
    assert embedder.calls == []


def test_search_drops_mismatched_dimensions(tmp_path):
    root = _workspace(tmp_path)
    index = SemanticIndex(root, _config(root), FakeEmbedder())
    asyncio.run(index.build())

    class WideEmbedder:
        async def embed(self, model, inputs):
            return [[1.0, 0.0, 0.0, 0.0] for _ in inputs]

    wide = SemanticIndex(root, _config(root), WideEmbedder())
    assert asyncio.run(wide.search("alpha", 5)) == []


def test_stats_and_clear(tmp_path):
    root = _workspace(tmp_path)
    index = SemanticIndex(root, _config(root))

    with pytest.raises(IndexNotFoundError):
        index.stats()

    asyncio.run(SemanticIndex(root, _config(root), FakeEmbedder()).build())
    assert index.stats().chunk_count == 3

    index.clear()
    index.clear()
    with pytest.raises(IndexNotFoundError):
        index.stats()


@pytest.mark.parametrize("count", [0, 2])
def test_search_requires_exactly_one_query_vector(tmp_path, count):
    root = _workspace(tmp_path)
    asyncio.run(SemanticIndex(root, _config(root), FakeEmbedder()).build())

    class BatchEmbedder:
        async def embed(self, model, inputs):
            return [[1.0, 0.0, 1.0]] * count

    index = SemanticIndex(root, _config(root), BatchEmbedder())
    with pytest.raises(EmbeddingMismatchError, match=f"expected 1, got {count}"):
        asyncio.run(index.search("alpha", 3))
