"""Similarity scoring and ranking for semantic search hits."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Protocol, Sequence

import numpy as np


@dataclass(slots=True)
class SearchHit:
    """Container describing a single semantic search hit."""

    file_path: str
    start_line: int
    end_line: int
    score: float
    chunk_id: str


class EmbeddingBackend(Protocol):
    """Minimal protocol for components that can embed text batches."""

    async def embed(self, model: str, inputs: Sequence[str]) -> List[List[float]]:
        """Return one vector per entry of *inputs*, in order."""
        raise NotImplementedError  # pragma: no cover


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float | None:
    """Return the cosine similarity of two vectors, or ``None`` when undefined.

    Vectors of different length, empty vectors and zero-magnitude vectors have
    no score.
    """

    if len(left) != len(right) or len(left) == 0:
        return None
    a = np.asarray(left, dtype=np.float64)
    b = np.asarray(right, dtype=np.float64)
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0 or not math.isfinite(norm):
        return None
    return float(np.dot(a, b) / norm)


def score_key(hit: SearchHit) -> tuple[float, str, int]:
    return (-hit.score, hit.file_path, hit.start_line)


def rank_hits(hits: Iterable[SearchHit], top_k: int) -> List[SearchHit]:
    """Sort by descending score, then path and start line; keep the first *top_k*."""

    ordered = sorted(hits, key=score_key)
    return ordered[: max(top_k, 0)]
