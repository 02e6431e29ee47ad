"""Transitive-dependent closure over the new graph snapshot."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from affected.errors import ConfigError
from affected.graph import ALL_DEPENDENCY_KINDS, DEPENDENCY_KINDS, PackageGraph, PackageId

logger = logging.getLogger(__name__)


class ClosureComputer:
    """Multi-source reachability over the reverse dependency view.

    The reverse adjacency is built once per instance; every ``closure`` call is
    a single worklist traversal seeded from all inputs at once, O(V + E).
    """

    def __init__(self, graph: PackageGraph, dependency_kinds: Iterable[str] | None = None) -> None:
        kinds = ALL_DEPENDENCY_KINDS if dependency_kinds is None else frozenset(dependency_kinds)
        unknown = sorted(kinds - ALL_DEPENDENCY_KINDS)
        if unknown:
            choices = ", ".join(DEPENDENCY_KINDS)
            raise ConfigError(
                f"Unknown dependency kinds: {', '.join(unknown)}. Expected any of: {choices}"
            )
        self.graph = graph
        self.dependency_kinds = kinds
        self._reverse = graph.reverse_adjacency(kinds)
        self._forward = graph.forward_adjacency(kinds)

    def closure(self, seeds: Iterable[PackageId]) -> frozenset[PackageId]:
        """Return the seeds plus every package that depends on one of them."""
        handles = sorted(
            handle for handle in (self.graph.handle(seed) for seed in seeds) if handle is not None
        )
        visited = [False] * len(self.graph)
        queue: deque[int] = deque()
        for handle in handles:
            if not visited[handle]:
                visited[handle] = True
                queue.append(handle)

        while queue:
            current = queue.popleft()
            for dependent in self._reverse[current]:
                if not visited[dependent]:
                    visited[dependent] = True
                    queue.append(dependent)

        reached = frozenset(
            self.graph.node(handle).id for handle, seen in enumerate(visited) if seen
        )
        logger.debug("closure: %d seeds reached %d packages", len(handles), len(reached))
        return reached

    def affected_dependencies(
        self, package_id: PackageId, affected: frozenset[PackageId]
    ) -> list[PackageId]:
        """Direct dependencies of ``package_id`` (over included kinds) that are affected."""
        handle = self.graph.handle(package_id)
        if handle is None:
            return []
        dependencies = (self.graph.node(target).id for target in self._forward[handle])
        return sorted(dep for dep in dependencies if dep in affected)
