from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from affected.cli import app
from affected.git import GitError, get_changed_paths, get_working_tree_paths
from tests.helpers_git import commit_all, git, init_repo, write_file, write_snapshot
from tests.helpers_graph import package

runner = CliRunner()

PACKAGES = [package("a"), package("b", deps=["a"]), package("c", deps=["b"])]


def _seed_repo(tmp_path: Path) -> Path:
    repo = init_repo(tmp_path)
    for name in "abc":
        write_file(repo, f"crates/{name}/src/lib.rs", f"// {name}\n")
    write_file(repo, "README.md", "# workspace\n")
    commit_all(repo, "initial")
    return repo


def test_get_changed_paths_between_revisions(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path)
    write_file(repo, "crates/b/src/lib.rs", "// b changed\n")
    git(repo, "mv", "crates/c/src/lib.rs", "crates/c/src/main.rs")
    commit_all(repo, "change")

    paths = get_changed_paths(repo, "HEAD~1", "HEAD")
    assert sorted(paths) == [
        "crates/b/src/lib.rs",
        "crates/c/src/lib.rs",
        "crates/c/src/main.rs",
    ]


def test_get_working_tree_paths_includes_untracked(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path)
    write_file(repo, "crates/a/src/lib.rs", "// a edited\n")
    write_file(repo, "crates/a/src/new.rs", "// new\n")

    assert get_working_tree_paths(repo) == ["crates/a/src/lib.rs", "crates/a/src/new.rs"]


def test_unknown_revision_raises_git_error(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path)
    with pytest.raises(GitError):
        get_changed_paths(repo, "no-such-rev")


def test_compute_command_reads_changes_from_git(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path)
    snapshots = tmp_path / "snapshots"
    snapshots.mkdir()
    old = write_snapshot(snapshots / "old.json", PACKAGES)
    new = write_snapshot(snapshots / "new.json", PACKAGES)

    write_file(repo, "crates/b/src/lib.rs", "// b changed\n")
    write_file(repo, "README.md", "# workspace, edited\n")
    commit_all(repo, "change b")

    result = runner.invoke(
        app,
        [
            "compute",
            "--old",
            str(old),
            "--new",
            str(new),
            "--repo",
            str(repo),
            "--base",
            "HEAD~1",
            "--head",
            "HEAD",
            "--format",
            "json",
        ],
    )
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert [item["package"] for item in payload["affected"]] == ["b", "c"]
    assert payload["meta"]["base"] == "HEAD~1"
    assert payload["meta"]["head"] == "HEAD"


def test_compute_command_rejects_head_without_base(tmp_path: Path) -> None:
    repo = _seed_repo(tmp_path)
    old = write_snapshot(tmp_path / "old.json", PACKAGES)
    result = runner.invoke(
        app,
        ["compute", "--old", str(old), "--new", str(old), "--repo", str(repo), "--head", "HEAD"],
    )
    assert result.exit_code == 2
