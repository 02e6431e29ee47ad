"""Structural diff between two graph snapshots."""

from __future__ import annotations

from dataclasses import dataclass

from affected.graph import PackageGraph, PackageId


@dataclass(frozen=True, slots=True)
class GraphDiff:
    """Disjoint package-level changes between an old and a new snapshot."""

    added: frozenset[PackageId]
    removed: frozenset[PackageId]
    manifest_changed: frozenset[PackageId]

    @property
    def directly_changed(self) -> frozenset[PackageId]:
        """Packages present in the new graph that changed on their own."""
        return self.added | self.manifest_changed

    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.manifest_changed)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "added": [str(item) for item in sorted(self.added)],
            "removed": [str(item) for item in sorted(self.removed)],
            "manifest_changed": [str(item) for item in sorted(self.manifest_changed)],
        }


def diff_graphs(old_graph: PackageGraph, new_graph: PackageGraph) -> GraphDiff:
    """Correlate packages by PackageId and compare manifest fingerprints."""
    old_ids = old_graph.package_ids
    new_ids = new_graph.package_ids

    manifest_changed: set[PackageId] = set()
    for package_id in old_ids & new_ids:
        old_node = old_graph.get(package_id)
        new_node = new_graph.get(package_id)
        if old_node is None or new_node is None:
            continue
        if old_node.fingerprint != new_node.fingerprint:
            manifest_changed.add(package_id)

    return GraphDiff(
        added=new_ids - old_ids,
        removed=old_ids - new_ids,
        manifest_changed=frozenset(manifest_changed),
    )
