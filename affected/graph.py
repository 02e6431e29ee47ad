"""Dependency-graph snapshot model and JSON loader."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal

from affected.errors import GraphError

DependencyKind = Literal["normal", "build", "dev"]

DEPENDENCY_KINDS: tuple[DependencyKind, ...] = ("normal", "build", "dev")
ALL_DEPENDENCY_KINDS: frozenset[str] = frozenset(DEPENDENCY_KINDS)
DEFAULT_SOURCE = "workspace"


@dataclass(frozen=True, slots=True, order=True)
class PackageId:
    """Stable package identity: name plus source location, never the version."""

    name: str
    source: str = DEFAULT_SOURCE

    def __str__(self) -> str:
        if self.source == DEFAULT_SOURCE:
            return self.name
        return f"{self.name} ({self.source})"


@dataclass(frozen=True, slots=True)
class PackageNode:
    """A package inside one graph snapshot."""

    id: PackageId
    fingerprint: str
    root: str | None = None
    version: str | None = None

    @property
    def is_member(self) -> bool:
        return self.root is not None


@dataclass(frozen=True, slots=True)
class Dependency:
    """Dependency edge, directed from dependent to dependency."""

    dependent: PackageId
    dependency: PackageId
    kind: DependencyKind = "normal"


class PackageGraph:
    """Immutable arena-backed dependency graph.

    Nodes are addressed by integer handles in insertion order. Edges are
    stored as ``(dependent_handle, dependency_handle, kind)`` triples.
    """

    __slots__ = ("workspace", "_nodes", "_index", "_by_name", "_edges", "_member_roots")

    def __init__(
        self,
        workspace: str,
        nodes: Iterable[PackageNode],
        dependencies: Iterable[Dependency] = (),
    ) -> None:
        self.workspace = workspace
        node_list: list[PackageNode] = []
        index: dict[PackageId, int] = {}
        by_name: dict[str, list[PackageId]] = {}
        member_roots: dict[str, PackageId] = {}

        for node in nodes:
            if node.id in index:
                raise GraphError(f"duplicate package id in graph: {node.id}")
            index[node.id] = len(node_list)
            node_list.append(node)
            by_name.setdefault(node.id.name, []).append(node.id)
            if node.root is not None:
                root = normalize_path(node.root)
                owner = member_roots.get(root)
                if owner is not None:
                    raise GraphError(
                        f"packages {owner} and {node.id} share workspace root {root!r}"
                    )
                member_roots[root] = node.id

        edges: set[tuple[int, int, str]] = set()
        for dep in dependencies:
            if dep.kind not in ALL_DEPENDENCY_KINDS:
                raise GraphError(f"unknown dependency kind {dep.kind!r} on {dep.dependent}")
            source = index.get(dep.dependent)
            target = index.get(dep.dependency)
            if source is None:
                raise GraphError(f"dependency edge from unknown package {dep.dependent}")
            if target is None:
                raise GraphError(f"{dep.dependent} depends on unknown package {dep.dependency}")
            edges.add((source, target, dep.kind))

        self._nodes = tuple(node_list)
        self._index = MappingProxyType(index)
        self._by_name = MappingProxyType({name: tuple(ids) for name, ids in by_name.items()})
        self._edges = tuple(sorted(edges))
        self._member_roots = MappingProxyType(member_roots)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[PackageNode]:
        return iter(self._nodes)

    def __contains__(self, package_id: object) -> bool:
        return package_id in self._index

    def __repr__(self) -> str:
        return (
            f"PackageGraph(workspace={self.workspace!r}, packages={len(self._nodes)}, "
            f"edges={len(self._edges)})"
        )

    @property
    def package_ids(self) -> frozenset[PackageId]:
        return frozenset(self._index)

    @property
    def member_roots(self) -> Mapping[str, PackageId]:
        """Normalized workspace-relative root path -> member package."""
        return self._member_roots

    def handle(self, package_id: PackageId) -> int | None:
        return self._index.get(package_id)

    def node(self, handle: int) -> PackageNode:
        return self._nodes[handle]

    def get(self, package_id: PackageId) -> PackageNode | None:
        handle = self._index.get(package_id)
        return None if handle is None else self._nodes[handle]

    def ids_named(self, name: str) -> tuple[PackageId, ...]:
        return self._by_name.get(name, ())

    def dependencies(self) -> Iterator[Dependency]:
        for source, target, kind in self._edges:
            yield Dependency(
                dependent=self._nodes[source].id,
                dependency=self._nodes[target].id,
                kind=kind,  # type: ignore[arg-type]
            )

    def reverse_adjacency(self, kinds: Iterable[str] | None = None) -> list[tuple[int, ...]]:
        """Return dependency -> dependents adjacency restricted to ``kinds``."""
        return self._adjacency(kinds, reverse=True)

    def forward_adjacency(self, kinds: Iterable[str] | None = None) -> list[tuple[int, ...]]:
        """Return dependent -> dependencies adjacency restricted to ``kinds``."""
        return self._adjacency(kinds, reverse=False)

    def _adjacency(self, kinds: Iterable[str] | None, *, reverse: bool) -> list[tuple[int, ...]]:
        included = ALL_DEPENDENCY_KINDS if kinds is None else frozenset(kinds)
        buckets: list[set[int]] = [set() for _ in self._nodes]
        for source, target, kind in self._edges:
            if kind not in included:
                continue
            if reverse:
                buckets[target].add(source)
            else:
                buckets[source].add(target)
        return [tuple(sorted(bucket)) for bucket in buckets]


def normalize_path(raw: str) -> str:
    """Normalize a workspace-relative path to ``a/b/c`` form ("" is the workspace root)."""
    value = raw.replace("\\", "/")
    parts = [part for part in value.split("/") if part not in ("", ".")]
    return "/".join(parts)


def manifest_fingerprint(
    version: str | None,
    dependencies: Iterable[Mapping[str, Any]] = (),
    features: Iterable[str] = (),
) -> str:
    """Derive a comparable fingerprint from the declared manifest contents."""
    deps = sorted(
        (
            str(dep.get("name", "")),
            str(dep.get("source", DEFAULT_SOURCE)),
            str(dep.get("kind", "normal")),
            str(dep.get("req", "")),
        )
        for dep in dependencies
    )
    payload = {
        "version": version,
        "dependencies": [list(item) for item in deps],
        "features": sorted(set(features)),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def load_graph(path: Path) -> PackageGraph:
    """Load a graph snapshot from a JSON file."""
    try:
        loaded = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise GraphError(f"Invalid JSON in {path}: {exc}") from exc
    return graph_from_mapping(loaded, source=str(path))


def graph_from_mapping(mapping: Any, *, source: str = "<mapping>") -> PackageGraph:
    """Build a graph snapshot from its JSON-compatible mapping form."""
    if not isinstance(mapping, dict):
        raise GraphError(f"{source}: graph snapshot must be an object")
    workspace = mapping.get("workspace")
    if not isinstance(workspace, str) or not workspace:
        raise GraphError(f"{source}: 'workspace' must be a non-empty string")
    raw_packages = mapping.get("packages")
    if not isinstance(raw_packages, list):
        raise GraphError(f"{source}: 'packages' must be a list")

    nodes: list[PackageNode] = []
    dependencies: list[Dependency] = []
    for position, item in enumerate(raw_packages):
        field_name = f"{source}: packages[{position}]"
        if not isinstance(item, dict):
            raise GraphError(f"{field_name} must be an object")
        package_id = PackageId(
            name=_as_str(item.get("name"), f"{field_name}.name"),
            source=_as_str(item.get("source", DEFAULT_SOURCE), f"{field_name}.source"),
        )
        raw_deps = item.get("dependencies", [])
        if not isinstance(raw_deps, list) or not all(isinstance(dep, dict) for dep in raw_deps):
            raise GraphError(f"{field_name}.dependencies must be a list of objects")
        version = _as_optional_str(item.get("version"), f"{field_name}.version")
        features = item.get("features", [])
        if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
            raise GraphError(f"{field_name}.features must be a list of strings")
        fingerprint = _as_optional_str(item.get("fingerprint"), f"{field_name}.fingerprint")
        if fingerprint is None:
            fingerprint = manifest_fingerprint(version, raw_deps, features)

        nodes.append(
            PackageNode(
                id=package_id,
                fingerprint=fingerprint,
                root=_as_optional_str(item.get("root"), f"{field_name}.root"),
                version=version,
            )
        )
        for dep_position, dep in enumerate(raw_deps):
            dep_field = f"{field_name}.dependencies[{dep_position}]"
            kind = _as_str(dep.get("kind", "normal"), f"{dep_field}.kind")
            if kind not in ALL_DEPENDENCY_KINDS:
                choices = ", ".join(DEPENDENCY_KINDS)
                raise GraphError(f"{dep_field}.kind must be one of: {choices}")
            dependencies.append(
                Dependency(
                    dependent=package_id,
                    dependency=PackageId(
                        name=_as_str(dep.get("name"), f"{dep_field}.name"),
                        source=_as_str(dep.get("source", DEFAULT_SOURCE), f"{dep_field}.source"),
                    ),
                    kind=kind,  # type: ignore[arg-type]
                )
            )

    return PackageGraph(workspace, nodes, dependencies)


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise GraphError(f"{field_name} must be a string")
    return value


def _as_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, field_name)
