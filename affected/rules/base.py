"""Compiled rule and rule-evaluation models."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from affected.config import PackageRule, PathRule
from affected.graph import PackageId

RuleTier = Literal["user", "default"]


@dataclass(frozen=True, slots=True)
class CompiledPathRule:
    """A path rule with its globs compiled into one anchored pattern."""

    rule_id: str
    tier: RuleTier
    position: int
    rule: PathRule
    pattern: re.Pattern[str]

    def matches(self, path: str) -> bool:
        return self.pattern.fullmatch(path) is not None


@dataclass(frozen=True, slots=True)
class CompiledPackageRule:
    """A package rule in declaration order."""

    rule_id: str
    position: int
    rule: PackageRule


@dataclass(frozen=True, slots=True)
class RuleEvaluation:
    """Outcome of scanning the ordered rule list for one path.

    ``attribute_owner`` is true when evaluation did not stop at a ``skip``
    rule, so the path is also attributed to its containing workspace member.
    """

    matched_rules: tuple[str, ...]
    packages: frozenset[PackageId]
    workspace: bool
    attribute_owner: bool

    @property
    def matched(self) -> bool:
        return bool(self.matched_rules)


def rule_id_for(name: str | None, tier: RuleTier, position: int) -> str:
    if name:
        return f"{tier}:{name}"
    return f"{tier}[{position}]"
