"""Bundled default rules, merged below user rules."""

from __future__ import annotations

from functools import cache

from affected.config import PathRule, parse_rules_text

DEFAULT_RULES_TOML = """\
# Root manifests and lockfiles: their effect shows up as manifest changes in
# the graph snapshots, so the files themselves mark nothing.
[[path-rule]]
name = "workspace-manifests"
globs = [
  "Cargo.toml",
  "Cargo.lock",
  "pyproject.toml",
  "uv.lock",
  "poetry.lock",
  "package-lock.json",
  "pnpm-lock.yaml",
  "yarn.lock",
]
mark-changed = []

# Toolchain pins change how every package builds.
[[path-rule]]
name = "toolchain"
globs = [
  "rust-toolchain",
  "rust-toolchain.toml",
  ".cargo/config",
  ".cargo/config.toml",
  ".python-version",
  ".tool-versions",
]
mark-changed = "all"

[[path-rule]]
name = "documentation"
globs = ["**/*.md", "**/*.rst", "docs/**", "LICENSE*"]
mark-changed = []
"""


@cache
def default_path_rules() -> tuple[PathRule, ...]:
    """Parse the bundled rules document."""
    path_rules, _package_rules = parse_rules_text(DEFAULT_RULES_TOML, source="default rules")
    return tuple(path_rules)
