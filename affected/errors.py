"""Exception taxonomy for affected-set determination."""

from __future__ import annotations


class AffectedError(Exception):
    """Base class for errors raised by the determination engine."""


class ConfigError(AffectedError, ValueError):
    """Raised when rule configuration is malformed or references unknown packages."""


class GraphError(AffectedError, ValueError):
    """Raised when a dependency-graph snapshot is malformed."""


class GraphMismatch(AffectedError):
    """Raised when two snapshots do not describe the same workspace."""

    def __init__(self, old_workspace: str, new_workspace: str) -> None:
        super().__init__(
            f"graphs describe different workspaces: {old_workspace!r} != {new_workspace!r}"
        )
        self.old_workspace = old_workspace
        self.new_workspace = new_workspace
