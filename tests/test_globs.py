from __future__ import annotations

import pytest

from affected.rules.globs import GlobSyntaxError, compile_glob, compile_globs


def _matches(glob: str, path: str) -> bool:
    return compile_glob(glob).fullmatch(path) is not None


@pytest.mark.parametrize(
    ("glob", "path", "expected"),
    [
        ("Cargo.toml", "Cargo.toml", True),
        ("Cargo.toml", "crates/a/Cargo.toml", False),
        ("*.md", "README.md", True),
        ("*.md", "docs/README.md", False),
        ("**/*.md", "README.md", True),
        ("**/*.md", "crates/a/docs/guide.md", True),
        ("docs/**", "docs/index.rst", True),
        ("docs/**", "docs/api/index.rst", True),
        ("docs/**", "docs", False),
        ("crates/**/tests/*.rs", "crates/tests/lib.rs", True),
        ("crates/**/tests/*.rs", "crates/a/b/tests/lib.rs", True),
        ("crates/**/tests/*.rs", "crates/a/tests/deep/lib.rs", False),
        ("src/?.rs", "src/a.rs", True),
        ("src/?.rs", "src/ab.rs", False),
        ("LICENSE*", "LICENSE-MIT", True),
        ("[abc].txt", "b.txt", True),
        ("[!abc].txt", "b.txt", False),
        ("[!abc].txt", "d.txt", True),
        ("[a-c]x", "bx", True),
        ("*.{yml,yaml}", "ci.yaml", True),
        ("*.{yml,yaml}", "ci.json", False),
        ("/scripts/gen.sh", "scripts/gen.sh", True),
        ("a\\*b", "a*b", True),
        ("a\\*b", "axb", False),
        ("**", "any/depth/file", True),
    ],
)
def test_glob_semantics(glob: str, path: str, expected: bool) -> None:
    assert _matches(glob, path) is expected


def test_star_does_not_cross_segments() -> None:
    assert not _matches("crates/*", "crates/a/src/lib.rs")
    assert _matches("crates/*", "crates/a")


def test_compile_globs_matches_any_member() -> None:
    pattern = compile_globs(["*.lock", "docs/**"])
    assert pattern.fullmatch("Cargo.lock")
    assert pattern.fullmatch("docs/guide.md")
    assert not pattern.fullmatch("src/main.rs")


@pytest.mark.parametrize(
    "glob",
    ["", "a//b", "a**/b", "[abc", "[]", "{a,b", "{a,{b}}", "trailing\\", "[z-a]", "src/[b-a]*"],
)
def test_invalid_globs_raise(glob: str) -> None:
    with pytest.raises(GlobSyntaxError):
        compile_glob(glob)


def test_compile_globs_requires_at_least_one_glob() -> None:
    with pytest.raises(GlobSyntaxError, match="at least one glob"):
        compile_globs([])


def test_compile_globs_reports_reversed_range() -> None:
    with pytest.raises(GlobSyntaxError) as excinfo:
        compile_globs(["docs/**", "src/[z-a].rs"])
    assert excinfo.value.glob == "src/[z-a].rs"
