from __future__ import annotations

import pytest

from affected.config import AppConfig, MarkChanged, PackageRule, PathRule
from affected.errors import ConfigError
from affected.graph import PackageId
from affected.rules import BoundRuleSet, RuleSet, build_rule_set
from affected.rules.defaults import default_path_rules
from tests.helpers_graph import abc_graph, ids


def _bind(rule_set: RuleSet) -> BoundRuleSet:
    graph = abc_graph()
    return rule_set.bind(graph, graph)


def test_default_rules_are_loaded_in_order() -> None:
    rule_ids = [rule.rule_id for rule in RuleSet.default().path_rules]
    assert rule_ids == [
        "default:workspace-manifests",
        "default:toolchain",
        "default:documentation",
    ]
    assert all(rule.post_rule == "skip" for rule in default_path_rules())


def test_user_rules_precede_default_rules() -> None:
    rule_set = RuleSet([PathRule(globs=("**/*.md",), mark_changed=MarkChanged.of(["a"]))])
    evaluation = _bind(rule_set).evaluate("crates/c/README.md")

    assert evaluation.matched_rules == ("user[0]",)
    assert evaluation.packages == ids("a")
    assert not evaluation.workspace


def test_default_documentation_rule_ignores_docs() -> None:
    evaluation = _bind(RuleSet.default()).evaluate("crates/a/README.md")

    assert evaluation.matched_rules == ("default:documentation",)
    assert evaluation.packages == frozenset()
    assert not evaluation.attribute_owner


def test_toolchain_rule_marks_workspace() -> None:
    evaluation = _bind(RuleSet.default()).evaluate("rust-toolchain.toml")
    assert evaluation.workspace


def test_disabling_default_rules() -> None:
    evaluation = _bind(RuleSet(use_default_rules=False)).evaluate("README.md")
    assert not evaluation.matched
    assert evaluation.attribute_owner


def test_first_match_wins_within_user_tier() -> None:
    rule_set = RuleSet(
        [
            PathRule(globs=("scripts/**",), mark_changed=MarkChanged.of(["b"]), name="scripts"),
            PathRule(globs=("scripts/gen.sh",), mark_changed=MarkChanged.of(["a"]), name="gen"),
        ]
    )
    evaluation = _bind(rule_set).evaluate("scripts/gen.sh")
    assert evaluation.matched_rules == ("user:scripts",)
    assert evaluation.packages == ids("b")


def test_fallthrough_continues_to_later_rules() -> None:
    rule_set = RuleSet(
        [
            PathRule(
                globs=("scripts/**",),
                mark_changed=MarkChanged.of(["b"]),
                post_rule="fallthrough",
                name="scripts",
            ),
            PathRule(globs=("scripts/gen.sh",), mark_changed=MarkChanged.of(["a"]), name="gen"),
        ]
    )
    evaluation = _bind(rule_set).evaluate("scripts/gen.sh")
    assert evaluation.matched_rules == ("user:scripts", "user:gen")
    assert evaluation.packages == ids("a", "b")
    assert not evaluation.attribute_owner


def test_skip_rules_stops_scan_but_keeps_owner_attribution() -> None:
    rule_set = RuleSet(
        [
            PathRule(
                globs=("crates/a/build.rs",),
                mark_changed=MarkChanged.of(["c"]),
                post_rule="skip-rules",
            ),
            PathRule(globs=("**",), mark_changed=MarkChanged.workspace()),
        ]
    )
    evaluation = _bind(rule_set).evaluate("crates/a/build.rs")
    assert evaluation.matched_rules == ("user[0]",)
    assert evaluation.packages == ids("c")
    assert not evaluation.workspace
    assert evaluation.attribute_owner


def test_union_policy_applies_every_matching_rule() -> None:
    rule_set = RuleSet(
        [
            PathRule(globs=("**/*.md",), mark_changed=MarkChanged.of(["b"]), name="md"),
            PathRule(globs=("crates/**",), mark_changed=MarkChanged.of(["c"]), name="crates"),
        ],
        match_policy="union",
    )
    evaluation = _bind(rule_set).evaluate("crates/a/README.md")
    assert evaluation.matched_rules == ("user:md", "user:crates", "default:documentation")
    assert evaluation.packages == ids("b", "c")
    assert evaluation.attribute_owner


def test_unknown_match_policy_is_rejected() -> None:
    with pytest.raises(ConfigError, match="match-policy"):
        RuleSet(match_policy="last-match")  # type: ignore[arg-type]


def test_invalid_glob_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="path rule user:broken"):
        RuleSet([PathRule(globs=("[abc",), mark_changed=MarkChanged.ignore(), name="broken")])


def test_duplicate_rule_names_are_rejected() -> None:
    rule = PathRule(globs=("a/**",), mark_changed=MarkChanged.ignore(), name="same")
    with pytest.raises(ConfigError, match="duplicate rule name"):
        RuleSet([rule, rule])


def test_binding_unknown_package_raises() -> None:
    rule_set = RuleSet([PathRule(globs=("x/**",), mark_changed=MarkChanged.of(["ghost"]))])
    with pytest.raises(ConfigError, match="unknown packages: ghost"):
        _bind(rule_set)


def test_binding_unknown_package_rule_target_raises() -> None:
    rule_set = RuleSet(
        package_rules=[PackageRule(on_affected=("nope",), mark_changed=MarkChanged.of(["a"]))]
    )
    with pytest.raises(ConfigError, match="package rule user\\[0\\]"):
        _bind(rule_set)


def test_names_resolve_against_either_snapshot() -> None:
    old = abc_graph()
    new = abc_graph(c={"name": "d", "root": "crates/d", "dependencies": []})
    rule_set = RuleSet([PathRule(globs=("x/**",), mark_changed=MarkChanged.of(["c", "d"]))])

    bound = rule_set.bind(old, new)
    assert bound.evaluate("x/y").packages == ids("c", "d")


def test_rule_set_is_reusable_across_graph_pairs() -> None:
    rule_set = RuleSet([PathRule(globs=("x/**",), mark_changed=MarkChanged.of(["a"]))])
    first = abc_graph()
    second = abc_graph()

    assert rule_set.bind(first, first).evaluate("x/1").packages == ids("a")
    assert rule_set.bind(second, second).evaluate("x/2").packages == ids("a")


def test_bound_package_rules_resolve_workspace_target() -> None:
    rule_set = RuleSet(
        package_rules=[
            PackageRule(on_affected=("a",), mark_changed=MarkChanged.workspace(), name="all")
        ]
    )
    (bound_rule,) = _bind(rule_set).package_rules
    assert bound_rule.rule_id == "user:all"
    assert bound_rule.on_affected == frozenset({PackageId("a")})
    assert bound_rule.workspace


def test_build_rule_set_from_app_config() -> None:
    app_config = AppConfig(
        use_default_rules=False,
        match_policy="union",
        path_rules=[PathRule(globs=("ci/**",), mark_changed=MarkChanged.workspace(), name="ci")],
    )
    rule_set = build_rule_set(app_config)
    assert [rule.rule_id for rule in rule_set.path_rules] == ["user:ci"]
    assert rule_set.match_policy == "union"
    (info,) = rule_set.describe()
    assert info.mark_changed == "all"


def test_reversed_class_range_is_a_config_error() -> None:
    with pytest.raises(ConfigError, match="path rule user\\[0\\]"):
        RuleSet([PathRule(globs=("src/[z-a].rs",), mark_changed=MarkChanged.ignore())])
