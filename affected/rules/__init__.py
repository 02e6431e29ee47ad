"""Rules package."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from affected.config import (
    MATCH_POLICIES,
    AppConfig,
    MarkChanged,
    MatchPolicy,
    PackageRule,
    PathRule,
)
from affected.errors import ConfigError
from affected.graph import PackageGraph, PackageId
from affected.rules.base import (
    CompiledPackageRule,
    CompiledPathRule,
    RuleEvaluation,
    RuleTier,
    rule_id_for,
)
from affected.rules.defaults import default_path_rules
from affected.rules.globs import GlobSyntaxError, compile_globs

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RuleInfo:
    """Rule metadata for listing, in precedence order."""

    rule_id: str
    tier: RuleTier
    name: str | None
    globs: tuple[str, ...]
    mark_changed: str | list[str]
    post_rule: str


@dataclass(frozen=True, slots=True)
class BoundPackageRule:
    """A package rule with its package names resolved against a graph pair."""

    rule_id: str
    on_affected: frozenset[PackageId]
    packages: frozenset[PackageId]
    workspace: bool


class RuleSet:
    """Ordered, compiled path and package rules.

    User rules precede default rules; inside a tier, declaration order is
    precedence order. A RuleSet holds no graph state and can be bound to any
    number of graph pairs.
    """

    __slots__ = ("_path_rules", "_package_rules", "match_policy", "use_default_rules")

    def __init__(
        self,
        path_rules: Sequence[PathRule] = (),
        package_rules: Sequence[PackageRule] = (),
        *,
        use_default_rules: bool = True,
        match_policy: MatchPolicy = "first-match",
    ) -> None:
        if match_policy not in MATCH_POLICIES:
            choices = ", ".join(MATCH_POLICIES)
            raise ConfigError(f"match-policy must be one of: {choices}")
        self.match_policy = match_policy
        self.use_default_rules = use_default_rules

        compiled: list[CompiledPathRule] = [
            _compile_path_rule(rule, "user", position) for position, rule in enumerate(path_rules)
        ]
        if use_default_rules:
            compiled.extend(
                _compile_path_rule(rule, "default", position)
                for position, rule in enumerate(default_path_rules())
            )
        _reject_duplicate_ids(rule.rule_id for rule in compiled)

        compiled_packages = [
            CompiledPackageRule(
                rule_id=rule_id_for(rule.name, "user", position),
                position=position,
                rule=rule,
            )
            for position, rule in enumerate(package_rules)
        ]
        _reject_duplicate_ids(rule.rule_id for rule in compiled_packages)

        self._path_rules = tuple(compiled)
        self._package_rules = tuple(compiled_packages)

    @classmethod
    def default(cls) -> RuleSet:
        return cls()

    @property
    def path_rules(self) -> tuple[CompiledPathRule, ...]:
        return self._path_rules

    @property
    def package_rules(self) -> tuple[CompiledPackageRule, ...]:
        return self._package_rules

    def describe(self) -> list[RuleInfo]:
        return [
            RuleInfo(
                rule_id=compiled.rule_id,
                tier=compiled.tier,
                name=compiled.rule.name,
                globs=compiled.rule.globs,
                mark_changed=compiled.rule.mark_changed.to_config(),
                post_rule=compiled.rule.post_rule,
            )
            for compiled in self._path_rules
        ]

    def bind(self, old_graph: PackageGraph, new_graph: PackageGraph) -> BoundRuleSet:
        """Resolve package names against both snapshots."""
        path_actions: list[tuple[frozenset[PackageId], bool]] = []
        for compiled in self._path_rules:
            path_actions.append(
                _resolve_action(
                    compiled.rule.mark_changed,
                    old_graph,
                    new_graph,
                    field_name=f"path rule {compiled.rule_id}",
                )
            )

        package_rules: list[BoundPackageRule] = []
        for compiled in self._package_rules:
            field_name = f"package rule {compiled.rule_id}"
            on_affected = _resolve_names(
                compiled.rule.on_affected, old_graph, new_graph, field_name=field_name
            )
            packages, workspace = _resolve_action(
                compiled.rule.mark_changed, old_graph, new_graph, field_name=field_name
            )
            package_rules.append(
                BoundPackageRule(
                    rule_id=compiled.rule_id,
                    on_affected=on_affected,
                    packages=packages,
                    workspace=workspace,
                )
            )

        logger.debug(
            "bound %d path rules and %d package rules (policy=%s)",
            len(path_actions),
            len(package_rules),
            self.match_policy,
        )
        return BoundRuleSet(self, tuple(path_actions), tuple(package_rules))


class BoundRuleSet:
    """A RuleSet whose package names are resolved to PackageIds."""

    __slots__ = ("rule_set", "_path_actions", "package_rules")

    def __init__(
        self,
        rule_set: RuleSet,
        path_actions: tuple[tuple[frozenset[PackageId], bool], ...],
        package_rules: tuple[BoundPackageRule, ...],
    ) -> None:
        self.rule_set = rule_set
        self._path_actions = path_actions
        self.package_rules = package_rules

    def evaluate(self, path: str) -> RuleEvaluation:
        """Scan rules in precedence order for one normalized path."""
        union = self.rule_set.match_policy == "union"
        matched: list[str] = []
        packages: set[PackageId] = set()
        workspace = False
        for compiled, (targets, marks_workspace) in zip(
            self.rule_set.path_rules, self._path_actions, strict=True
        ):
            if not compiled.matches(path):
                continue
            matched.append(compiled.rule_id)
            packages.update(targets)
            workspace = workspace or marks_workspace

            post_rule = "fallthrough" if union else compiled.rule.post_rule
            if post_rule == "skip":
                return RuleEvaluation(tuple(matched), frozenset(packages), workspace, False)
            if post_rule == "skip-rules":
                return RuleEvaluation(tuple(matched), frozenset(packages), workspace, True)

        return RuleEvaluation(tuple(matched), frozenset(packages), workspace, True)


def build_rule_set(app_config: AppConfig) -> RuleSet:
    """Build the RuleSet described by a resolved configuration."""
    return RuleSet(
        app_config.path_rules,
        app_config.package_rules,
        use_default_rules=app_config.use_default_rules,
        match_policy=app_config.match_policy,
    )


def _compile_path_rule(rule: PathRule, tier: RuleTier, position: int) -> CompiledPathRule:
    rule_id = rule_id_for(rule.name, tier, position)
    try:
        pattern = compile_globs(rule.globs)
    except GlobSyntaxError as exc:
        raise ConfigError(f"path rule {rule_id}: {exc}") from exc
    return CompiledPathRule(
        rule_id=rule_id,
        tier=tier,
        position=position,
        rule=rule,
        pattern=pattern,
    )


def _resolve_action(
    mark_changed: MarkChanged,
    old_graph: PackageGraph,
    new_graph: PackageGraph,
    *,
    field_name: str,
) -> tuple[frozenset[PackageId], bool]:
    if mark_changed.kind == "workspace":
        return (frozenset(), True)
    if mark_changed.kind == "ignore":
        return (frozenset(), False)
    resolved = _resolve_names(mark_changed.packages, old_graph, new_graph, field_name=field_name)
    return (resolved, False)


def _resolve_names(
    names: Iterable[str],
    old_graph: PackageGraph,
    new_graph: PackageGraph,
    *,
    field_name: str,
) -> frozenset[PackageId]:
    resolved: set[PackageId] = set()
    missing: list[str] = []
    for name in names:
        ids = set(new_graph.ids_named(name)) | set(old_graph.ids_named(name))
        if not ids:
            missing.append(name)
        resolved.update(ids)
    if missing:
        raise ConfigError(f"{field_name} references unknown packages: {', '.join(missing)}")
    return frozenset(resolved)


def _reject_duplicate_ids(rule_ids: Iterable[str]) -> None:
    seen: set[str] = set()
    for rule_id in rule_ids:
        if rule_id in seen:
            raise ConfigError(f"duplicate rule name: {rule_id}")
        seen.add(rule_id)
