"""Affected-set determination.

``compute`` wires the pipeline together: changed paths are classified by the
rule matcher while the two graph snapshots are diffed, both outputs are
unioned into the directly-affected seeds, and the closure over the new graph
expands the seeds to every transitive dependent. Package rules are then
applied until no rule fires anymore.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Literal

from affected.closure import ClosureComputer
from affected.errors import GraphMismatch
from affected.graph import DEPENDENCY_KINDS, PackageGraph, PackageId
from affected.graph_diff import GraphDiff, diff_graphs
from affected.matcher import Classification, MatchResult, PathMatcher
from affected.rules import BoundRuleSet, RuleSet

logger = logging.getLogger(__name__)

ReasonKind = Literal["path", "manifest-changed", "added", "workspace", "package-rule", "dependent"]

_REASON_ORDER: dict[str, int] = {
    "path": 0,
    "manifest-changed": 1,
    "added": 2,
    "workspace": 3,
    "package-rule": 4,
    "dependent": 5,
}


@dataclass(frozen=True, slots=True)
class Reason:
    """Why a package is in the affected set.

    ``detail`` is the changed path, the rule id, or the affected dependency,
    depending on ``kind``.
    """

    kind: ReasonKind
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}" if self.detail else self.kind

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "detail": self.detail}


@dataclass(frozen=True, slots=True)
class AffectedPackage:
    """One member of the affected set with its reasons."""

    id: PackageId
    reasons: tuple[Reason, ...]

    @property
    def is_direct(self) -> bool:
        return any(reason.kind != "dependent" for reason in self.reasons)

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": str(self.id),
            "name": self.id.name,
            "source": self.id.source,
            "direct": self.is_direct,
            "reasons": [reason.to_dict() for reason in self.reasons],
        }


@dataclass(frozen=True, slots=True)
class AffectedSet:
    """Immutable result of one computation, ordered by PackageId."""

    packages: tuple[AffectedPackage, ...]
    classifications: tuple[Classification, ...]
    unattributed_paths: tuple[str, ...]
    added: frozenset[PackageId]
    removed: frozenset[PackageId]
    manifest_changed: frozenset[PackageId]
    path_changed: frozenset[PackageId]
    workspace_marked: bool
    dependency_kinds: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.packages)

    def __iter__(self) -> Iterator[PackageId]:
        return (item.id for item in self.packages)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self.ids

    @property
    def ids(self) -> frozenset[PackageId]:
        return frozenset(item.id for item in self.packages)

    @property
    def names(self) -> list[str]:
        return [item.id.name for item in self.packages]

    def reasons_for(self, package_id: PackageId) -> tuple[Reason, ...]:
        for item in self.packages:
            if item.id == package_id:
                return item.reasons
        return ()

    def classification(self, path: str) -> Classification | None:
        for item in self.classifications:
            if item.path == path:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "affected": [item.to_dict() for item in self.packages],
            "diagnostics": {
                "unattributed_paths": list(self.unattributed_paths),
                "added": [str(item) for item in sorted(self.added)],
                "removed": [str(item) for item in sorted(self.removed)],
                "manifest_changed": [str(item) for item in sorted(self.manifest_changed)],
                "path_changed": [str(item) for item in sorted(self.path_changed)],
                "workspace_marked": self.workspace_marked,
            },
            "paths": [item.to_dict() for item in self.classifications],
            "dependency_kinds": list(self.dependency_kinds),
        }


def compute(
    old_graph: PackageGraph,
    new_graph: PackageGraph,
    changed_paths: Iterable[str],
    rules: RuleSet | None = None,
    dependency_kinds: Iterable[str] | None = None,
    *,
    workers: int | None = None,
) -> AffectedSet:
    """Determine the packages affected by ``changed_paths`` and the graph delta.

    Raises ``GraphMismatch`` when the snapshots belong to different workspaces
    and ``ConfigError`` when the rules cannot be bound to the snapshots. The
    content of the changes never causes an error.
    """
    if old_graph.workspace != new_graph.workspace:
        raise GraphMismatch(old_graph.workspace, new_graph.workspace)

    rule_set = rules if rules is not None else RuleSet.default()
    bound = rule_set.bind(old_graph, new_graph)
    closure = ClosureComputer(new_graph, dependency_kinds)
    matcher = PathMatcher(bound, new_graph)
    paths = list(changed_paths)

    match, graph_diff = _match_and_diff(matcher, old_graph, new_graph, paths, workers=workers)

    reasons: dict[PackageId, set[Reason]] = defaultdict(set)
    for package_id, matched_paths in match.paths_by_package().items():
        if package_id in new_graph:
            reasons[package_id].update(Reason("path", path) for path in matched_paths)
    path_changed = frozenset(reasons)

    for package_id in graph_diff.added:
        reasons[package_id].add(Reason("added"))
    for package_id in graph_diff.manifest_changed:
        reasons[package_id].add(Reason("manifest-changed"))
    if match.workspace:
        workspace_paths = [
            item.path for item in match.classifications.values() if item.outcome == "workspace"
        ]
        for node in new_graph:
            reasons[node.id].update(Reason("workspace", path) for path in workspace_paths)

    affected = closure.closure(reasons)
    affected = _apply_package_rules(bound, new_graph, closure, reasons, affected)

    for package_id in affected:
        for dependency in closure.affected_dependencies(package_id, affected):
            reasons[package_id].add(Reason("dependent", str(dependency)))

    packages = tuple(
        AffectedPackage(id=package_id, reasons=tuple(sorted(reasons[package_id], key=_reason_key)))
        for package_id in sorted(affected)
    )
    classifications = tuple(match.classifications[path] for path in sorted(match.classifications))

    logger.info(
        "%d of %d packages affected (%d paths, %d added, %d removed, %d manifest changes)",
        len(packages),
        len(new_graph),
        len(classifications),
        len(graph_diff.added),
        len(graph_diff.removed),
        len(graph_diff.manifest_changed),
    )
    return AffectedSet(
        packages=packages,
        classifications=classifications,
        unattributed_paths=tuple(match.unattributed_paths),
        added=graph_diff.added,
        removed=graph_diff.removed,
        manifest_changed=graph_diff.manifest_changed,
        path_changed=path_changed,
        workspace_marked=match.workspace,
        dependency_kinds=tuple(
            kind for kind in DEPENDENCY_KINDS if kind in closure.dependency_kinds
        ),
    )


def _match_and_diff(
    matcher: PathMatcher,
    old_graph: PackageGraph,
    new_graph: PackageGraph,
    paths: list[str],
    *,
    workers: int | None,
) -> tuple[MatchResult, GraphDiff]:
    if workers is not None and workers <= 1:
        return (matcher.match(paths), diff_graphs(old_graph, new_graph))

    with ThreadPoolExecutor(max_workers=workers) as executor:
        diff_future = executor.submit(diff_graphs, old_graph, new_graph)
        match = matcher.match(paths, executor=executor)
        return (match, diff_future.result())


def _apply_package_rules(
    bound: BoundRuleSet,
    new_graph: PackageGraph,
    closure: ClosureComputer,
    reasons: dict[PackageId, set[Reason]],
    affected: frozenset[PackageId],
) -> frozenset[PackageId]:
    fired: set[str] = set()
    while True:
        changed = False
        for rule in bound.package_rules:
            if rule.rule_id in fired or not rule.on_affected & affected:
                continue
            fired.add(rule.rule_id)
            targets = new_graph.package_ids if rule.workspace else rule.packages
            for package_id in targets:
                if package_id in new_graph:
                    reasons[package_id].add(Reason("package-rule", rule.rule_id))
                    changed = True
        if not changed:
            return affected
        logger.debug("package rules fired: %s", ", ".join(sorted(fired)))
        affected = closure.closure(reasons)


def _reason_key(reason: Reason) -> tuple[int, str]:
    return (_REASON_ORDER[reason.kind], reason.detail)
