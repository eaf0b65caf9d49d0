"""Resource Graph Builder.

Orders a static set of ResourceSpecs so that every resource follows all of
its declared dependencies. Ties are broken by input order, so a set that is
already sorted comes back unchanged. Pure: no cluster calls, no logging.
"""

from __future__ import annotations

from collections.abc import Iterable

from kubedeploy.errors import CyclicDependencyError, DuplicateResourceError, UnknownDependencyError
from kubedeploy.models.resources import ResourceRef, ResourceSpec


class ResourceGraph:
    """An acyclic, validated dependency graph over ResourceSpecs."""

    def __init__(self, resources: Iterable[ResourceSpec]) -> None:
        self._specs: dict[ResourceRef, ResourceSpec] = {}
        for spec in resources:
            if spec.ref in self._specs:
                raise DuplicateResourceError(spec.ref)
            self._specs[spec.ref] = spec

        for spec in self._specs.values():
            for dep in spec.depends_on:
                if dep not in self._specs:
                    raise UnknownDependencyError(spec.ref, dep)

        self._order = self._topological_order()

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, ref: object) -> bool:
        return ref in self._specs

    @property
    def ordered(self) -> list[ResourceSpec]:
        """Apply order: every resource after its dependencies."""
        return [self._specs[ref] for ref in self._order]

    @property
    def reverse_ordered(self) -> list[ResourceSpec]:
        """Teardown order: every resource before its dependencies."""
        return [self._specs[ref] for ref in reversed(self._order)]

    def levels(self) -> list[list[ResourceSpec]]:
        """Group resources by dependency depth.

        Resources in the same level have no ordering constraint among
        themselves; level N only depends on levels < N.
        """
        depth: dict[ResourceRef, int] = {}
        for ref in self._order:
            deps = self._specs[ref].depends_on
            depth[ref] = 1 + max((depth[d] for d in deps), default=-1)
        grouped: list[list[ResourceSpec]] = []
        for ref in self._order:
            level = depth[ref]
            while len(grouped) <= level:
                grouped.append([])
            grouped[level].append(self._specs[ref])
        return grouped

    def _topological_order(self) -> list[ResourceRef]:
        # Kahn's algorithm; always picks the earliest-declared ready node.
        position = {ref: i for i, ref in enumerate(self._specs)}
        remaining = {ref: set(spec.depends_on) for ref, spec in self._specs.items()}
        order: list[ResourceRef] = []

        while remaining:
            ready = [ref for ref, deps in remaining.items() if not deps]
            if not ready:
                raise CyclicDependencyError(self._find_cycle(remaining))
            nxt = min(ready, key=position.__getitem__)
            order.append(nxt)
            del remaining[nxt]
            for deps in remaining.values():
                deps.discard(nxt)
        return order

    def _find_cycle(self, remaining: dict[ResourceRef, set[ResourceRef]]) -> list[ResourceRef]:
        # Every node left has an unresolved dependency, so walking
        # dependencies from any of them must revisit a node.
        start = next(iter(remaining))
        path: list[ResourceRef] = []
        seen: dict[ResourceRef, int] = {}
        current = start
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            current = min(remaining[current], key=str)
        return [*path[seen[current] :], current]


def build_graph(resources: Iterable[ResourceSpec]) -> ResourceGraph:
    """Validate *resources* and return their dependency graph.

    Raises:
        DuplicateResourceError: the same identity appears twice.
        UnknownDependencyError: a declared dependency is not in the set.
        CyclicDependencyError: the dependencies contain a cycle.
    """
    return ResourceGraph(resources)

