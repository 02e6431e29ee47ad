"""Output rendering."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

import click

from affected import __version__
from affected.determine import AffectedSet
from affected.matcher import Classification


def render_human(result: AffectedSet, *, verbose: bool = False) -> str:
    """Render a compact colorized summary."""
    if result.workspace_marked:
        headline = f"{len(result)} packages affected (workspace-wide change)"
        color = "red"
    elif result.packages:
        headline = f"{len(result)} packages affected"
        color = "yellow"
    else:
        headline = "No packages affected"
        color = "green"
    lines: list[str] = [click.style(headline, fg=color, bold=True)]

    if result.packages:
        lines.append(click.style("Affected packages:", bold=True))
        for item in result.packages:
            marker = "*" if item.is_direct else "-"
            reasons = item.reasons if verbose else _summary_reasons(item.reasons)
            lines.append(f"{marker} {item.id}: {', '.join(str(reason) for reason in reasons)}")

    delta = _graph_delta_lines(result)
    if delta:
        lines.append(click.style("Graph changes:", bold=True))
        lines.extend(delta)

    if result.unattributed_paths:
        lines.append(click.style("Unattributed paths (no rule, no package):", fg="yellow"))
        for path in result.unattributed_paths:
            lines.append(f"  {path}")
    return "\n".join(lines)


def render_json(result: AffectedSet, *, base: str | None = None, head: str | None = None) -> str:
    """Render stable JSON output for CI and automation."""
    return json.dumps(build_json_payload(result, base=base, head=head), sort_keys=True)


def build_json_payload(
    result: AffectedSet,
    *,
    base: str | None = None,
    head: str | None = None,
) -> dict[str, Any]:
    """Build stable JSON payload for CI and automation."""
    payload = result.to_dict()
    payload["meta"] = {
        "generated_at": datetime.now(tz=UTC)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z"),
        "base": base,
        "head": head,
        "version": __version__,
    }
    return payload


def render_classification(item: Classification) -> str:
    """One-line explanation of how a path was classified."""
    rules = ", ".join(item.matched_rules) if item.matched_rules else "no rule"
    if item.outcome == "unmatched" and item.owner is None:
        return f"{item.path}: unattributed ({rules})"
    packages = ", ".join(str(package_id) for package_id in sorted(item.packages)) or "-"
    return f"{item.path}: {item.outcome} [{rules}] -> {packages}"


def _summary_reasons(reasons: tuple[Any, ...], limit: int = 3) -> list[Any]:
    if len(reasons) <= limit:
        return list(reasons)
    return [*reasons[:limit], f"+{len(reasons) - limit} more"]


def _graph_delta_lines(result: AffectedSet) -> list[str]:
    lines: list[str] = []
    for label, items in (
        ("added", result.added),
        ("removed", result.removed),
        ("manifest changed", result.manifest_changed),
    ):
        if items:
            joined = ", ".join(str(item) for item in sorted(items))
            lines.append(f"- {label}: {joined}")
    return lines
