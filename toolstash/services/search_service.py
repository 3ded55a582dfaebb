"""Logic helpers for rendering `toolstash search` results."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Sequence

from ..search import SearchHit
from ..text import Messages
from .index_service import split_lines


@dataclass(frozen=True, slots=True)
class SnippetLine:
    line_number: int
    text: str


@dataclass(slots=True)
class SearchResult:
    """A ranked hit together with the source lines it points at."""

    file_path: str
    start_line: int
    end_line: int
    score: float
    snippet: List[SnippetLine] = field(default_factory=list)
    snippet_error: str | None = None


def read_snippet_lines(
    path: Path,
    start_line: int,
    end_line: int,
    max_chars: int,
) -> List[SnippetLine]:
    """Return lines ``start_line..end_line`` of *path* within a shared character budget.

    A *max_chars* of zero disables the budget. The line that exhausts the
    budget is cut short and reading stops there.
    """

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise OSError(f"failed to read {path}") from exc
    if not data:
        return []
    start = max(start_line, 1)
    end = max(end_line, start)
    remaining: int | None = max_chars if max_chars > 0 else None
    lines: List[SnippetLine] = []
    for line_number, line in enumerate(split_lines(data.decode("utf-8", errors="replace")), 1):
        if line_number < start:
            continue
        if line_number > end:
            break
        if remaining == 0 and lines:
            break
        text = line if remaining is None else line[:remaining]
        if remaining is not None:
            remaining -= len(text)
        lines.append(SnippetLine(line_number=line_number, text=text))
        if remaining == 0:
            break
    return lines


def build_search_results(
    workspace_root: Path,
    hits: Iterable[SearchHit],
    max_chars: int,
) -> List[SearchResult]:
    results: List[SearchResult] = []
    for hit in hits:
        snippet: List[SnippetLine] = []
        snippet_error: str | None = None
        try:
            snippet = read_snippet_lines(
                workspace_root / hit.file_path,
                hit.start_line,
                hit.end_line,
                max_chars,
            )
        except OSError as exc:
            snippet_error = str(exc)
        results.append(
            SearchResult(
                file_path=hit.file_path,
                start_line=hit.start_line,
                end_line=hit.end_line,
                score=hit.score,
                snippet=snippet,
                snippet_error=snippet_error,
            )
        )
    return results


def format_search_results(results: Sequence[SearchResult]) -> List[str]:
    if not results:
        return [Messages.INFO_NO_RESULTS]
    lines: List[str] = []
    for result in results:
        lines.append(
            f"{result.file_path}:{result.start_line}-{result.end_line} score={result.score:.3f}"
        )
        if not result.snippet:
            if result.snippet_error is not None:
                lines.append(f"  (snippet unavailable: {result.snippet_error})")
            else:
                lines.append("  (no snippet)")
            continue
        width = max(len(str(result.end_line)), 1)
        for snippet_line in result.snippet:
            lines.append(f"  {snippet_line.line_number:>{width}} | {snippet_line.text}")
    return lines


def results_to_json(query: str, top_k: int, results: Sequence[SearchResult]) -> dict[str, Any]:
    return {
        "query": query,
        "top_k": top_k,
        "results": [
            {
                "file_path": result.file_path,
                "start_line": result.start_line,
                "end_line": result.end_line,
                "score": result.score,
                "snippet": [
                    {"line_number": line.line_number, "text": line.text}
                    for line in result.snippet
                ],
                "snippet_error": result.snippet_error,
            }
            for result in results
        ],
    }
