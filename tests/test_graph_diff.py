from __future__ import annotations

from affected.graph_diff import diff_graphs
from tests.helpers_graph import abc_graph, ids, package


def test_identical_graphs_have_empty_diff() -> None:
    diff = diff_graphs(abc_graph(), abc_graph())
    assert diff.is_empty()
    assert diff.directly_changed == frozenset()


def test_added_removed_and_manifest_changes_are_disjoint() -> None:
    old = abc_graph(d=package("d"))
    new = abc_graph(a=package("a", version="0.2.0"), e=package("e"))

    diff = diff_graphs(old, new)
    assert diff.added == ids("e")
    assert diff.removed == ids("d")
    assert diff.manifest_changed == ids("a")
    assert diff.directly_changed == ids("a", "e")
    assert diff.to_dict() == {"added": ["e"], "removed": ["d"], "manifest_changed": ["a"]}


def test_dependency_requirement_change_changes_fingerprint() -> None:
    old = abc_graph()
    new = abc_graph(b={**package("b", deps=["a"]), "features": ["extra"]})
    assert diff_graphs(old, new).manifest_changed == ids("b")


def test_moving_a_package_root_is_not_a_manifest_change() -> None:
    old = abc_graph()
    new = abc_graph(c=package("c", root="apps/c", deps=["b"]))
    assert diff_graphs(old, new).is_empty()
