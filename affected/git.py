"""Git subprocess helpers for collecting changed paths."""

from __future__ import annotations

from pathlib import Path
from subprocess import CalledProcessError, run


class GitError(RuntimeError):
    """Raised when git command execution fails."""


def get_changed_paths(repo: Path, base: str, head: str | None = None) -> list[str]:
    """Return workspace-relative paths changed between ``base`` and ``head``.

    Without ``head`` the working tree is compared against ``base``. Renames are
    reported as both the old and the new path.
    """
    args = ["diff", "--name-only", "--no-renames", "-z", base]
    if head is not None:
        args.append(head)
    return _split_nul(_run_git(repo, args))


def get_working_tree_paths(repo: Path) -> list[str]:
    """Return paths with uncommitted changes, including untracked files."""
    changed = _split_nul(_run_git(repo, ["diff", "--name-only", "--no-renames", "-z", "HEAD"]))
    untracked = _split_nul(
        _run_git(repo, ["ls-files", "--others", "--exclude-standard", "-z"])
    )
    return sorted(set(changed) | set(untracked))


def _split_nul(output: str) -> list[str]:
    return [item for item in output.split("\0") if item]


def _run_git(repo: Path, args: list[str]) -> str:
    try:
        completed = run(
            ["git", *args],
            cwd=repo,
            check=True,
            capture_output=True,
            text=True,
        )
    except CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise GitError(stderr or f"git {' '.join(args)} failed") from exc
    except FileNotFoundError as exc:
        raise GitError("git executable not found") from exc

    return completed.stdout
