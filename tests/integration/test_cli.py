import json
import re
from typing import List, Sequence

import pytest
from typer.testing import CliRunner

from toolstash import __version__
from toolstash.cache_store import CacheEntry, DiskCacheStore
from toolstash.cli import app, run
from toolstash.text import Messages


ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


class FakeEmbedder:
    """Counts ``alpha``/``beta`` occurrences; the constant term keeps norms non-zero."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def embed(self, model: str, inputs: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(inputs))
        return [[float(text.count("alpha")), float(text.count("beta")), 1.0] for text in inputs]


@pytest.fixture(autouse=True)
def temp_config_home(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    config_file = config_dir / "config.json"
    monkeypatch.setattr("toolstash.config.CONFIG_DIR", config_dir)
    monkeypatch.setattr("toolstash.config.CONFIG_FILE", config_file)
    return config_file


@pytest.fixture
def embedder(monkeypatch):
    fake = FakeEmbedder()
    monkeypatch.setattr("toolstash.cli._build_embedder", lambda config: fake)
    return fake


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    (root / "alpha.txt").write_text("alpha one\nalpha two\n")
    (root / "beta.txt").write_text("beta\n")
    return root


def _lines(output: str) -> list[str]:
    return [line.rstrip() for line in strip_ansi(output).splitlines()]


def test_version_flag():
    result = CliRunner().invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"toolstash v{__version__}" in strip_ansi(result.stdout)


def test_cache_status_plain_output(temp_config_home):
    result = CliRunner().invoke(app, ["cache", "status"])

    assert result.exit_code == 0
    lines = _lines(result.stdout)
    assert "Cache enabled: true" in lines
    assert f"Cache dir: {temp_config_home.parent / 'cache'}" in lines
    assert "Entries: 0" in lines
    assert "Size bytes: 0" in lines
    assert f"Max bytes: {256 * 1024 * 1024}" in lines
    assert "Hit rate: n/a" in lines


def test_cache_status_by_tool_lists_every_tool():
    result = CliRunner().invoke(app, ["cache", "status", "--by-tool"])

    assert result.exit_code == 0
    output = strip_ansi(result.stdout)
    assert Messages.TABLE_TITLE_BY_TOOL in output
    for tool in ("read_file", "list_dir", "grep_files"):
        assert tool in output


def test_cache_status_json():
    result = CliRunner().invoke(app, ["cache", "status", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["enabled"] is True
    assert payload["entries"] == 0
    assert payload["hit_rate"] is None
    assert sorted(payload["by_tool"]) == ["grep_files", "list_dir", "read_file"]
    assert payload["by_tool"]["read_file"]["hits"] == 0


def test_cache_clear_reports_success(temp_config_home):
    cache_dir = temp_config_home.parent / "cache"
    DiskCacheStore(cache_dir, 1024).put(CacheEntry(key="k", value=b"payload", ttl=60))

    result = CliRunner().invoke(app, ["cache", "clear"])

    assert result.exit_code == 0
    assert Messages.INFO_CACHE_CLEARED in strip_ansi(result.stdout)
    assert DiskCacheStore(cache_dir, 1024).stats().entries == 0


def test_index_build_stats_and_clear(workspace, embedder):
    runner = CliRunner()

    built = runner.invoke(app, ["index", "build", "--path", str(workspace)])
    assert built.exit_code == 0, built.stdout
    built_lines = _lines(built.stdout)
    assert "Files: 2" in built_lines
    assert "Chunks: 2" in built_lines
    assert "Embedding model: text-embedding-3-small" in built_lines
    assert not any(line.startswith("Embedding dim") for line in built_lines)
    assert embedder.calls == [["alpha one\nalpha two"], ["beta"]]

    stats = runner.invoke(app, ["index", "stats", "-p", str(workspace)])
    assert stats.exit_code == 0
    stats_lines = _lines(stats.stdout)
    assert f"Index dir: {workspace.resolve() / '.toolstash-index'}" in stats_lines
    assert "Embedding dim: 3" in stats_lines
    assert any(line.startswith("Created at: ") for line in stats_lines)

    cleared = runner.invoke(app, ["index", "clear", "--path", str(workspace)])
    assert cleared.exit_code == 0
    assert Messages.INFO_INDEX_CLEARED in strip_ansi(cleared.stdout)

    missing = runner.invoke(app, ["index", "stats", "--path", str(workspace)])
    assert missing.exit_code == 1
    assert "semantic index not found" in strip_ansi(missing.stdout)


def test_search_text_and_json(workspace, embedder):
    runner = CliRunner()
    assert runner.invoke(app, ["index", "build", "--path", str(workspace)]).exit_code == 0

    text = runner.invoke(app, ["search", "alpha", "--path", str(workspace), "--top", "1"])
    assert text.exit_code == 0
    assert _lines(text.stdout) == [
        "alpha.txt:1-2 score=0.949",
        "  1 | alpha one",
        "  2 | alpha two",
    ]

    as_json = runner.invoke(app, ["search", "alpha", "--json", "--path", str(workspace)])
    assert as_json.exit_code == 0
    payload = json.loads(as_json.stdout)
    assert payload["query"] == "alpha"
    assert payload["top_k"] == 8
    assert [item["file_path"] for item in payload["results"]] == ["alpha.txt", "beta.txt"]
    assert payload["results"][1]["score"] == pytest.approx(0.5)


def test_unknown_command_falls_back_to_search(workspace, embedder):
    runner = CliRunner()
    assert runner.invoke(app, ["index", "build", "--path", str(workspace)]).exit_code == 0

    result = runner.invoke(app, ["beta", "--top", "1", "--path", str(workspace)])

    assert result.exit_code == 0
    assert _lines(result.stdout)[0] == "beta.txt:1-1 score=1.000"


def test_search_without_index_fails(workspace, embedder):
    result = CliRunner().invoke(app, ["search", "alpha", "--path", str(workspace)])

    assert result.exit_code == 1
    assert "semantic index not found" in strip_ansi(result.stdout)


def test_search_blank_query_fails(workspace, embedder):
    result = CliRunner().invoke(app, ["search", " ", "--path", str(workspace)])

    assert result.exit_code == 1
    assert Messages.ERROR_EMPTY_QUERY in strip_ansi(result.stdout)


def test_disabled_index_is_reported(workspace, embedder, temp_config_home):
    temp_config_home.parent.mkdir(parents=True)
    temp_config_home.write_text(json.dumps({"semantic_index": {"enabled": False}}))

    result = CliRunner().invoke(app, ["index", "build", "--path", str(workspace)])

    assert result.exit_code == 1
    assert "semantic index is disabled" in strip_ansi(result.stdout)
    assert embedder.calls == []


def test_run_accepts_argv(capsys):
    with pytest.raises(SystemExit) as excinfo:
        run(["--version"])

    assert excinfo.value.code == 0
    assert f"toolstash v{__version__}" in capsys.readouterr().out
