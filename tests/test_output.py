from __future__ import annotations

import json

from affected.config import MarkChanged, PathRule
from affected.determine import compute
from affected.graph import PackageId
from affected.matcher import Classification
from affected.output import build_json_payload, render_classification, render_human, render_json
from affected.rules import RuleSet
from tests.helpers_graph import abc_graph, package


def test_render_human_for_empty_result() -> None:
    graph = abc_graph()
    text = render_human(compute(graph, graph, []))
    assert "No packages affected" in text
    assert "Affected packages:" not in text


def test_render_human_lists_direct_and_transitive_packages() -> None:
    old = abc_graph()
    new = abc_graph(a=package("a", version="1.0.0"), d=package("d"))
    text = render_human(compute(old, new, ["scratch/notes.txt"]))

    assert "4 packages affected" in text
    assert "* a: manifest-changed" in text
    assert "- b: dependent: a" in text
    assert "* d: added" in text
    assert "Graph changes:" in text
    assert "- added: d" in text
    assert "- manifest changed: a" in text
    assert "Unattributed paths (no rule, no package):" in text
    assert "  scratch/notes.txt" in text


def test_render_human_flags_workspace_wide_change() -> None:
    graph = abc_graph()
    text = render_human(compute(graph, graph, [".python-version"]))
    assert "3 packages affected (workspace-wide change)" in text


def test_render_human_truncates_reasons_unless_verbose() -> None:
    graph = abc_graph()
    paths = [f"crates/a/src/f{idx}.rs" for idx in range(5)]
    result = compute(graph, graph, paths)

    assert "+2 more" in render_human(result)
    verbose = render_human(result, verbose=True)
    assert "+2 more" not in verbose
    assert "path: crates/a/src/f4.rs" in verbose


def test_json_payload_contains_meta_block() -> None:
    graph = abc_graph()
    payload = build_json_payload(compute(graph, graph, ["crates/c/x.rs"]), base="main", head="HEAD")

    assert payload["meta"]["base"] == "main"
    assert payload["meta"]["head"] == "HEAD"
    assert payload["meta"]["generated_at"].endswith("Z")
    assert [item["package"] for item in payload["affected"]] == ["c"]


def test_render_json_is_parseable() -> None:
    graph = abc_graph()
    rules = RuleSet([PathRule(globs=("ci/**",), mark_changed=MarkChanged.workspace())])
    payload = json.loads(render_json(compute(graph, graph, ["ci/build.yml"], rules)))

    assert payload["diagnostics"]["workspace_marked"] is True
    assert payload["paths"][0]["outcome"] == "workspace"


def test_render_classification_variants() -> None:
    assert (
        render_classification(Classification(path="x", outcome="unmatched"))
        == "x: unattributed (no rule)"
    )
    affects = Classification(
        path="tools/gen.sh",
        outcome="affects",
        packages=frozenset({PackageId("b"), PackageId("a")}),
        matched_rules=("user:gen",),
    )
    assert render_classification(affects) == "tools/gen.sh: affects [user:gen] -> a, b"
