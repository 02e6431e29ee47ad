"""Per-path classification of changed files."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Literal

from affected.graph import PackageGraph, PackageId, normalize_path
from affected.rules import BoundRuleSet

logger = logging.getLogger(__name__)

Outcome = Literal["ignored", "affects", "workspace", "unmatched"]

PARALLEL_THRESHOLD = 512
BATCH_SIZE = 256


@dataclass(frozen=True, slots=True)
class Classification:
    """Resolved outcome of rule evaluation for one changed path."""

    path: str
    outcome: Outcome
    packages: frozenset[PackageId] = frozenset()
    matched_rules: tuple[str, ...] = ()
    owner: PackageId | None = None

    @property
    def unattributed(self) -> bool:
        return self.outcome == "unmatched" and self.owner is None

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "outcome": self.outcome,
            "packages": [str(item) for item in sorted(self.packages)],
            "matched_rules": list(self.matched_rules),
            "owner": str(self.owner) if self.owner is not None else None,
        }


@dataclass(slots=True)
class MatchResult:
    """Merged per-path classifications."""

    classifications: dict[str, Classification] = field(default_factory=dict)
    packages: set[PackageId] = field(default_factory=set)
    workspace: bool = False

    def merge(self, other: MatchResult) -> None:
        self.classifications.update(other.classifications)
        self.packages.update(other.packages)
        self.workspace = self.workspace or other.workspace

    @property
    def unattributed_paths(self) -> list[str]:
        return sorted(
            path for path, item in self.classifications.items() if item.unattributed
        )

    def paths_by_package(self) -> dict[PackageId, list[str]]:
        mapping: dict[PackageId, list[str]] = {}
        for path in sorted(self.classifications):
            for package_id in self.classifications[path].packages:
                mapping.setdefault(package_id, []).append(path)
        return mapping


class PathMatcher:
    """Classifies changed paths against bound rules and the new graph's member roots."""

    def __init__(self, rules: BoundRuleSet, new_graph: PackageGraph) -> None:
        self._rules = rules
        self._roots: Mapping[str, PackageId] = new_graph.member_roots

    def classify(self, path: str) -> Classification:
        normalized = normalize_path(path)
        evaluation = self._rules.evaluate(normalized)
        owner = self.owner_of(normalized) if evaluation.attribute_owner else None

        packages = set(evaluation.packages)
        if owner is not None:
            packages.add(owner)

        if not evaluation.matched:
            return Classification(
                path=normalized,
                outcome="unmatched",
                packages=frozenset(packages),
                owner=owner,
            )
        if evaluation.workspace:
            outcome: Outcome = "workspace"
        elif packages:
            outcome = "affects"
        else:
            outcome = "ignored"
        return Classification(
            path=normalized,
            outcome=outcome,
            packages=frozenset(packages),
            matched_rules=evaluation.matched_rules,
            owner=owner,
        )

    def owner_of(self, path: str) -> PackageId | None:
        """Return the member whose root is the longest prefix of ``path``."""
        candidate = path
        while True:
            owner = self._roots.get(candidate)
            if owner is not None:
                return owner
            if not candidate:
                return None
            candidate = candidate.rpartition("/")[0]

    def match(self, paths: Iterable[str], executor: Executor | None = None) -> MatchResult:
        """Classify every path; batches run on ``executor`` for large change sets."""
        normalized = {normalize_path(path) for path in paths}
        normalized.discard("")
        unique = sorted(normalized)
        if executor is None or len(unique) < PARALLEL_THRESHOLD:
            return self._match_batch(unique)

        batches = [unique[idx : idx + BATCH_SIZE] for idx in range(0, len(unique), BATCH_SIZE)]
        logger.debug("matching %d paths in %d batches", len(unique), len(batches))
        futures = [executor.submit(self._match_batch, batch) for batch in batches]
        merged = MatchResult()
        for future in futures:
            merged.merge(future.result())
        return merged

    def _match_batch(self, paths: Sequence[str]) -> MatchResult:
        result = MatchResult()
        for path in paths:
            classification = self.classify(path)
            result.classifications[path] = classification
            result.packages.update(classification.packages)
            if classification.outcome == "workspace":
                result.workspace = True
        return result
