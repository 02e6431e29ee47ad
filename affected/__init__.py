"""Affected-package determination for multi-package workspaces."""

__version__ = "0.1.0"
