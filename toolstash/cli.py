"""Command line interface for toolstash."""

from __future__ import annotations

import asyncio
import json
import sys
from difflib import get_close_matches
from pathlib import Path
from typing import Any, NoReturn, Optional

import click
import typer
from rich.console import Console
from rich.table import Table
from typer.core import TyperGroup

from . import __version__
from .config import CacheableTool, Config, load_config
from .errors import ToolstashError
from .log import configure_logging
from .providers.openai import OpenAIEmbeddingBackend
from .search import EmbeddingBackend
from .services.cache_service import CacheManager, CacheStatus
from .services.index_service import SemanticIndex
from .services.search_service import (
    build_search_results,
    format_search_results,
    results_to_json,
)
from .telemetry import CounterSnapshot
from .text import Messages, Styles
from .vector_store import IndexStats

console = Console()


class DefaultSearchGroup(TyperGroup):
    """Treat unknown subcommands as search queries."""

    def resolve_command(
        self,
        ctx: click.Context,
        args: list[str],
    ) -> tuple[str | None, click.Command | None, list[str]]:
        original_args = list(args)
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError:
            if not original_args:
                raise
            token = original_args[0]
            if token.startswith("-"):
                raise
            if self.suggest_commands and self.commands:
                matches = get_close_matches(
                    token,
                    list(self.commands.keys()),
                    cutoff=0.8,
                )
                if matches:
                    raise
            command = self.get_command(ctx, "search")
            if command is None:
                raise
            return "search", command, original_args


app = typer.Typer(
    help=Messages.APP_HELP,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
    cls=DefaultSearchGroup,
)
cache_app = typer.Typer(help=Messages.HELP_CACHE, no_args_is_help=True)
index_app = typer.Typer(help=Messages.HELP_INDEX, no_args_is_help=True)
app.add_typer(cache_app, name="cache")
app.add_typer(index_app, name="index")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"toolstash v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help=Messages.HELP_VERBOSE),
) -> None:
    """Global Typer callback for shared options."""
    configure_logging("DEBUG" if verbose else None, force=verbose)


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def _fail(message: str) -> NoReturn:
    console.print(_styled(message, Styles.ERROR))
    raise typer.Exit(code=1)


def _load(path: Optional[Path]) -> Config:
    try:
        return load_config(path)
    except (OSError, ValueError) as exc:
        _fail(str(exc))


def _build_embedder(config: Config) -> EmbeddingBackend:
    return OpenAIEmbeddingBackend(api_key=config.api_key, base_url=config.base_url)


def _build_index(config: Config) -> SemanticIndex:
    embedder = _build_embedder(config) if config.semantic_index.enabled else None
    return SemanticIndex(config.workspace_root, config.semantic_index, embedder)


def _format_hit_rate(rate: float | None) -> str:
    if rate is None:
        return "n/a"
    return f"{rate * 100:.1f}%"


def _status_payload(status: CacheStatus) -> dict[str, Any]:
    telemetry = status.telemetry

    def counters(snapshot: CounterSnapshot) -> dict[str, Any]:
        return {
            "hits": snapshot.hits,
            "misses": snapshot.misses,
            "stores": snapshot.stores,
            "evictions": snapshot.evictions,
            "hit_rate": snapshot.hit_rate,
        }

    return {
        "enabled": status.enabled,
        "dir": str(status.dir),
        "entries": status.stats.entries,
        "total_bytes": status.stats.total_bytes,
        "max_bytes": status.max_bytes,
        "hits": telemetry.hits,
        "misses": telemetry.misses,
        "stores": telemetry.stores,
        "evictions": telemetry.evictions,
        "hit_rate": telemetry.hit_rate,
        "by_tool": {
            tool.value: counters(telemetry.by_tool.get(tool, CounterSnapshot()))
            for tool in CacheableTool
        },
    }


def _render_by_tool(status: CacheStatus) -> None:
    console.print(_styled(Messages.TABLE_TITLE_BY_TOOL, Styles.TITLE))
    table = Table(show_header=True, header_style=Styles.TABLE_HEADER)
    table.add_column(Messages.TABLE_HEADER_TOOL)
    table.add_column(Messages.TABLE_HEADER_HITS, justify="right")
    table.add_column(Messages.TABLE_HEADER_MISSES, justify="right")
    table.add_column(Messages.TABLE_HEADER_STORES, justify="right")
    table.add_column(Messages.TABLE_HEADER_EVICTIONS, justify="right")
    table.add_column(Messages.TABLE_HEADER_HIT_RATE, justify="right")
    for tool in CacheableTool:
        snapshot = status.telemetry.by_tool.get(tool, CounterSnapshot())
        table.add_row(
            tool.value,
            str(snapshot.hits),
            str(snapshot.misses),
            str(snapshot.stores),
            str(snapshot.evictions),
            _format_hit_rate(snapshot.hit_rate),
        )
    console.print(table)


@cache_app.command("status", help=Messages.HELP_CACHE_STATUS)
def cache_status(
    by_tool: bool = typer.Option(False, "--by-tool", help=Messages.HELP_CACHE_BY_TOOL),
    as_json: bool = typer.Option(False, "--json", help=Messages.HELP_JSON),
) -> None:
    config = _load(None)
    try:
        status = CacheManager(config.cache).status()
    except OSError as exc:
        _fail(Messages.ERROR_CACHE_STATUS.format(reason=exc))
    if as_json:
        typer.echo(json.dumps(_status_payload(status), indent=2))
        return
    typer.echo(Messages.INFO_CACHE_ENABLED.format(value=str(status.enabled).lower()))
    typer.echo(Messages.INFO_CACHE_DIR.format(path=status.dir))
    typer.echo(Messages.INFO_CACHE_ENTRIES.format(count=status.stats.entries))
    typer.echo(Messages.INFO_CACHE_SIZE.format(value=status.stats.total_bytes))
    typer.echo(Messages.INFO_CACHE_MAX.format(value=status.max_bytes))
    typer.echo(Messages.INFO_CACHE_HIT_RATE.format(value=_format_hit_rate(status.telemetry.hit_rate)))
    if by_tool:
        _render_by_tool(status)


@cache_app.command("clear", help=Messages.HELP_CACHE_CLEAR)
def cache_clear() -> None:
    config = _load(None)
    try:
        CacheManager(config.cache).clear()
    except OSError as exc:
        _fail(str(exc))
    console.print(_styled(Messages.INFO_CACHE_CLEARED, Styles.SUCCESS))


def _print_index_stats(config: Config, stats: IndexStats, *, detailed: bool) -> None:
    typer.echo(Messages.INFO_INDEX_DIR.format(path=config.semantic_index.dir))
    typer.echo(Messages.INFO_INDEX_FILES.format(count=stats.file_count))
    typer.echo(Messages.INFO_INDEX_CHUNKS.format(count=stats.chunk_count))
    if stats.embedding_model is not None:
        typer.echo(Messages.INFO_INDEX_MODEL.format(model=stats.embedding_model))
    if not detailed:
        return
    if stats.embedding_dim is not None:
        typer.echo(Messages.INFO_INDEX_DIM.format(dim=stats.embedding_dim))
    if stats.created_at is not None:
        typer.echo(Messages.INFO_INDEX_CREATED.format(value=stats.created_at.isoformat()))


@index_app.command("build", help=Messages.HELP_INDEX_BUILD)
def index_build(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help=Messages.HELP_WORKSPACE),
) -> None:
    config = _load(path)
    console.print(
        _styled(Messages.INFO_INDEX_RUNNING.format(path=config.workspace_root), Styles.INFO)
    )
    try:
        index = _build_index(config)
        stats = asyncio.run(index.build())
    except (ToolstashError, OSError) as exc:
        _fail(str(exc))
    _print_index_stats(config, stats, detailed=False)


@index_app.command("stats", help=Messages.HELP_INDEX_STATS)
def index_stats(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help=Messages.HELP_WORKSPACE),
) -> None:
    config = _load(path)
    index = SemanticIndex(config.workspace_root, config.semantic_index, None)
    try:
        stats = index.stats()
    except (ToolstashError, OSError) as exc:
        _fail(str(exc))
    _print_index_stats(config, stats, detailed=True)


@index_app.command("clear", help=Messages.HELP_INDEX_CLEAR)
def index_clear(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help=Messages.HELP_WORKSPACE),
) -> None:
    config = _load(path)
    index = SemanticIndex(config.workspace_root, config.semantic_index, None)
    try:
        index.clear()
    except OSError as exc:
        _fail(str(exc))
    console.print(_styled(Messages.INFO_INDEX_CLEARED, Styles.SUCCESS))


@app.command()
def search(
    query: list[str] = typer.Argument(..., help=Messages.HELP_QUERY),
    top: Optional[int] = typer.Option(None, "--top", "-k", min=1, help=Messages.HELP_SEARCH_TOP),
    as_json: bool = typer.Option(False, "--json", help=Messages.HELP_JSON),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help=Messages.HELP_WORKSPACE),
) -> None:
    """Run a semantic search over the workspace index."""
    clean_query = " ".join(query).strip()
    if not clean_query:
        _fail(Messages.ERROR_EMPTY_QUERY)
    config = _load(path)
    retrieve = config.semantic_index.retrieve
    top_k = top if top is not None else retrieve.top_k
    try:
        index = _build_index(config)
        hits = asyncio.run(index.search(clean_query, top_k))
    except (ToolstashError, OSError) as exc:
        _fail(str(exc))
    results = build_search_results(config.workspace_root, hits, retrieve.max_chars)
    if as_json:
        typer.echo(json.dumps(results_to_json(clean_query, top_k, results), indent=2))
        return
    for line in format_search_results(results):
        typer.echo(line)


def run(argv: list[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    args = list(argv) if argv is not None else sys.argv[1:]
    if argv is None:
        app()
    else:
        app(args=args)
