import os

from toolstash.cache_keys import (
    GrepCacheKeyInputs,
    PathStamp,
    RepoState,
    build_grep_cache_key,
    build_tool_cache_key,
    build_tool_cache_key_for_path,
    cache_ttl_for_repo_state,
    canonical_json,
    detect_repo_state,
    sha256_hex,
    stamp_from_stat,
)


def test_canonical_json_sorts_nested_keys():
    value = {"b": 1, "a": {"d": [{"z": 1, "y": 2}], "c": None}}

    assert list(canonical_json(value)) == ["a", "b"]
    assert list(canonical_json(value)["a"]) == ["c", "d"]
    assert list(canonical_json(value)["a"]["d"][0]) == ["y", "z"]


def test_tool_key_ignores_argument_order(tmp_path):
    stamp = PathStamp(mtime_nanos=1, size_bytes=2)
    first = build_tool_cache_key("read_file", {"a": 1, "b": 2}, tmp_path, tmp_path / "f", stamp)
    second = build_tool_cache_key("read_file", {"b": 2, "a": 1}, tmp_path, tmp_path / "f", stamp)

    assert first == second
    assert len(first) == 64


def test_tool_key_matches_documented_layout():
    stamp = PathStamp(mtime_nanos=123, size_bytes=45)

    key = build_tool_cache_key("read_file", {"b": 1, "a": 2}, "C:\\work", "C:\\work\\f.txt", stamp)

    assert key == sha256_hex('read_file|{"a":2,"b":1}|C:/work|C:/work/f.txt|123|45')


def test_tool_key_changes_with_stamp(tmp_path):
    args = {"file_path": "f"}
    first = build_tool_cache_key("read_file", args, tmp_path, tmp_path / "f", PathStamp(1, 10))
    second = build_tool_cache_key("read_file", args, tmp_path, tmp_path / "f", PathStamp(2, 10))
    third = build_tool_cache_key("read_file", args, tmp_path, tmp_path / "f", PathStamp(1, 11))

    assert len({first, second, third}) == 3


def test_key_for_path_uses_current_stat(tmp_path):
    target = tmp_path / "f.txt"
    target.write_text("one")
    before = build_tool_cache_key_for_path("read_file", {}, tmp_path, target)

    target.write_text("one two")
    after = build_tool_cache_key_for_path("read_file", {}, tmp_path, target)

    assert before != after
    assert after == build_tool_cache_key(
        "read_file", {}, tmp_path, target, stamp_from_stat(os.stat(target))
    )


def test_detect_repo_state_without_repository(tmp_path, monkeypatch):
    workspace = tmp_path / "plain"
    workspace.mkdir()
    monkeypatch.setattr("toolstash.cache_keys.resolve_git_dir", lambda root: None)

    assert detect_repo_state(workspace) is None


def test_detect_repo_state_from_git_directory(tmp_path):
    git_dir = tmp_path / ".git"
    git_dir.mkdir()
    (git_dir / "HEAD").write_text("ref: refs/heads/main\n")
    (git_dir / "index").write_bytes(b"index")
    nested = tmp_path / "src" / "pkg"
    nested.mkdir(parents=True)

    state = detect_repo_state(nested)

    assert state is not None
    assert state.head_ref == "ref: refs/heads/main"
    assert state.index_mtime_nanos == os.stat(git_dir / "index").st_mtime_ns


def test_detect_repo_state_follows_gitdir_file(tmp_path):
    real_git = tmp_path / "real-git"
    real_git.mkdir()
    (real_git / "HEAD").write_text("abc123")
    worktree = tmp_path / "worktree"
    worktree.mkdir()
    (worktree / ".git").write_text("gitdir: ../real-git\n")

    state = detect_repo_state(worktree)

    assert state == RepoState(head_ref="abc123", index_mtime_nanos=None)


def test_empty_git_dir_yields_no_state(tmp_path):
    (tmp_path / ".git").mkdir()

    assert detect_repo_state(tmp_path) is None


def _grep_inputs(tmp_path, repo_state):
    return GrepCacheKeyInputs(
        workspace_root=tmp_path,
        search_path=tmp_path / "src",
        pattern="needle",
        include="*.py",
        limit=100,
        repo_state=repo_state,
    )


def test_grep_key_changes_with_repo_state(tmp_path):
    no_repo = build_grep_cache_key(_grep_inputs(tmp_path, None))
    head_a = build_grep_cache_key(_grep_inputs(tmp_path, RepoState("a", 1)))
    head_b = build_grep_cache_key(_grep_inputs(tmp_path, RepoState("b", 1)))
    index_changed = build_grep_cache_key(_grep_inputs(tmp_path, RepoState("a", 2)))

    assert len({no_repo, head_a, head_b, index_changed}) == 4
    assert head_a == build_grep_cache_key(_grep_inputs(tmp_path, RepoState("a", 1)))


def test_ttl_capped_without_repository():
    assert cache_ttl_for_repo_state(300, None) == 10
    assert cache_ttl_for_repo_state(5, None) == 5
    assert cache_ttl_for_repo_state(300, RepoState("a", None)) == 300
