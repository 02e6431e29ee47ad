"""CLI entrypoint for affected."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from affected import __version__
from affected.config import AppConfig, default_config_template, load_app_config
from affected.determine import AffectedSet, compute
from affected.errors import GraphMismatch
from affected.git import GitError, get_changed_paths, get_working_tree_paths
from affected.graph import PackageGraph, load_graph
from affected.matcher import PathMatcher
from affected.output import render_classification, render_human, render_json
from affected.rules import RuleSet, build_rule_set

app = typer.Typer(
    name="affected",
    no_args_is_help=True,
    help="Determine which workspace packages are affected by a set of changes.",
)


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log to stderr.")] = False,
) -> None:
    """Root command callback."""
    _ = version
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )


@app.command("compute")
def compute_command(
    old: Annotated[Path, typer.Option("--old", help="Graph snapshot JSON before the change.")],
    new: Annotated[Path, typer.Option("--new", help="Graph snapshot JSON after the change.")],
    paths_file: Annotated[
        Path | None, typer.Option(help="File listing changed paths, one per line.")
    ] = None,
    stdin: Annotated[bool, typer.Option(help="Read changed paths from stdin.")] = False,
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    base: Annotated[str | None, typer.Option(help="Base git revision.")] = None,
    head: Annotated[str | None, typer.Option(help="Head git revision.")] = None,
    kind: Annotated[
        list[str] | None,
        typer.Option("--kind", help="Dependency kind to traverse (repeatable)."),
    ] = None,
    workers: Annotated[int | None, typer.Option(help="Worker threads for path matching.")] = None,
    format: Annotated[
        str | None, typer.Option(help="Output format: human|json.", show_default="human")
    ] = None,
    fail_on_unattributed: Annotated[
        bool,
        typer.Option(help="Exit nonzero when a changed path matches no rule and no package."),
    ] = False,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Compute the affected package set."""
    app_config = _load_config_or_raise(repo, config_file)
    output_format = _output_format_or_raise(format or app_config.format)

    if paths_file and stdin:
        raise typer.BadParameter("Use either --paths-file or --stdin, not both.")
    if head is not None and base is None:
        raise typer.BadParameter("--head requires --base.")

    old_graph = _load_graph_or_raise(old, "--old")
    new_graph = _load_graph_or_raise(new, "--new")
    rule_set = _build_rule_set_or_raise(app_config)
    changed = _resolve_changed_paths(
        paths_file=paths_file, stdin=stdin, repo=repo, base=base, head=head
    )

    result = _compute_or_raise(
        old_graph,
        new_graph,
        changed,
        rule_set,
        dependency_kinds=kind if kind else app_config.dependency_kinds,
        workers=workers if workers is not None else app_config.workers,
    )

    if output_format == "json":
        typer.echo(render_json(result, base=base, head=head))
    else:
        typer.echo(render_human(result))

    if fail_on_unattributed and result.unattributed_paths:
        raise typer.Exit(code=1)


@app.command("classify")
def classify_command(
    paths: Annotated[list[str], typer.Argument(help="Changed paths to classify.")],
    new: Annotated[Path, typer.Option("--new", help="Graph snapshot JSON after the change.")],
    old: Annotated[
        Path | None,
        typer.Option("--old", help="Graph snapshot JSON before the change (defaults to --new)."),
    ] = None,
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Explain which rule classifies each path."""
    output_format = _output_format_or_raise(format)
    app_config = _load_config_or_raise(repo, config_file)
    new_graph = _load_graph_or_raise(new, "--new")
    old_graph = _load_graph_or_raise(old, "--old") if old is not None else new_graph
    rule_set = _build_rule_set_or_raise(app_config)
    try:
        bound = rule_set.bind(old_graph, new_graph)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc

    matcher = PathMatcher(bound, new_graph)
    classifications = [matcher.classify(path) for path in paths]
    if output_format == "json":
        payload = {"paths": [item.to_dict() for item in classifications]}
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo("\n".join(render_classification(item) for item in classifications))


@app.command("rules")
def rules_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """List effective path and package rules in precedence order."""
    output_format = _output_format_or_raise(format)
    app_config = _load_config_or_raise(repo, config_file)
    rule_set = _build_rule_set_or_raise(app_config)
    rule_info = rule_set.describe()

    if output_format == "json":
        payload = {
            "path_rules": [
                {
                    "rule_id": item.rule_id,
                    "tier": item.tier,
                    "name": item.name,
                    "globs": list(item.globs),
                    "mark_changed": item.mark_changed,
                    "post_rule": item.post_rule,
                }
                for item in rule_info
            ],
            "package_rules": [
                {"rule_id": compiled.rule_id, **compiled.rule.to_dict()}
                for compiled in rule_set.package_rules
            ],
            "meta": {
                "config_source": app_config.source,
                "match_policy": rule_set.match_policy,
            },
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [f"Path rules (match policy: {rule_set.match_policy}):"]
    for item in rule_info:
        target = _describe_target(item.mark_changed, empty="ignore")
        lines.append(f"- {item.rule_id} [{item.post_rule}] {', '.join(item.globs)} -> {target}")
    if rule_set.package_rules:
        lines.append("Package rules:")
        for compiled in rule_set.package_rules:
            target = _describe_target(compiled.rule.mark_changed.to_config(), empty="nothing")
            lines.append(
                f"- {compiled.rule_id} on {', '.join(compiled.rule.on_affected)} -> {target}"
            )
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Show resolved configuration."""
    output_format = _output_format_or_raise(format)
    app_config = _load_config_or_raise(repo, config_file)
    rule_set = _build_rule_set_or_raise(app_config)
    payload = app_config.to_dict()
    payload["active_rule_ids"] = [rule.rule_id for rule in rule_set.path_rules]

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- format: {payload['format']}",
        f"- use_default_rules: {payload['use_default_rules']}",
        f"- match_policy: {payload['match_policy']}",
        f"- dependency_kinds: {payload['dependency_kinds']}",
        f"- workers: {payload['workers']}",
        f"- active_rule_ids: {payload['active_rule_ids']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".affected.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter repository config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    repo: Annotated[Path, typer.Option(help="Repository path.")] = Path("."),
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config TOML file to validate."),
    ] = Path(".affected.toml"),
    old: Annotated[
        Path | None, typer.Option("--old", help="Also resolve package names against this graph.")
    ] = None,
    new: Annotated[
        Path | None, typer.Option("--new", help="Also resolve package names against this graph.")
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Validate a config file, optionally binding its package names to graphs."""
    output_format = _output_format_or_raise(format)
    app_config = _load_config_or_raise(repo, config_file)
    rule_set = _build_rule_set_or_raise(app_config)

    old_graph = _load_graph_or_raise(old, "--old") if old is not None else None
    new_graph = _load_graph_or_raise(new, "--new") if new is not None else None
    if old_graph is None:
        old_graph = new_graph
    if new_graph is None:
        new_graph = old_graph
    if old_graph is not None and new_graph is not None:
        try:
            rule_set.bind(old_graph, new_graph)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="config") from exc

    payload = {
        "ok": True,
        "source": app_config.source,
        "active_rule_ids": [rule.rule_id for rule in rule_set.path_rules],
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(
        "\n".join(
            [
                "Config is valid.",
                f"- source: {payload['source']}",
                f"- active_rule_ids: {payload['active_rule_ids']}",
            ]
        )
    )


def main() -> None:
    """Console script entrypoint."""
    app()


def _resolve_changed_paths(
    *,
    paths_file: Path | None,
    stdin: bool,
    repo: Path,
    base: str | None,
    head: str | None,
) -> list[str]:
    if paths_file is not None:
        try:
            return _split_lines(paths_file.read_text(encoding="utf-8"))
        except OSError as exc:
            raise typer.BadParameter(
                f"Cannot read paths file: {exc}", param_hint="--paths-file"
            ) from exc

    if stdin:
        return _split_lines(sys.stdin.read())

    try:
        if base is not None:
            return get_changed_paths(repo, base, head)
        return get_working_tree_paths(repo)
    except GitError as exc:
        raise typer.BadParameter(str(exc), param_hint="git") from exc


def _split_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _describe_target(marked: str | list[str], *, empty: str) -> str:
    if isinstance(marked, str):
        return marked
    return ", ".join(marked) or empty


def _output_format_or_raise(value: str) -> str:
    output_format = value.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")
    return output_format


def _load_config_or_raise(repo: Path, config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(repo, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _build_rule_set_or_raise(app_config: AppConfig) -> RuleSet:
    try:
        return build_rule_set(app_config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.path-rule") from exc


def _load_graph_or_raise(path: Path, param_hint: str) -> PackageGraph:
    try:
        return load_graph(path)
    except OSError as exc:
        raise typer.BadParameter(
            f"Cannot read graph snapshot: {exc}", param_hint=param_hint
        ) from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint=param_hint) from exc


def _compute_or_raise(
    old_graph: PackageGraph,
    new_graph: PackageGraph,
    changed: list[str],
    rule_set: RuleSet,
    *,
    dependency_kinds: list[str],
    workers: int | None,
) -> AffectedSet:
    try:
        return compute(
            old_graph,
            new_graph,
            changed,
            rule_set,
            dependency_kinds,
            workers=workers,
        )
    except GraphMismatch as exc:
        raise typer.BadParameter(str(exc), param_hint="--old/--new") from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc
