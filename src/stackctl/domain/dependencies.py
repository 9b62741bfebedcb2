"""DependencyGraph — NetworkX DiGraph of ``depends_on`` relationships.

Edges point from a dependency to its dependent (``db -> backend``), so a
topological sort is a valid startup order. Built once per invocation from
the composition file; at stack scale (tens of services) this is instant.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeAlias

import networkx as nx

from stackctl.domain.compose import DependencyCondition

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stackctl.domain.compose import ComposeFile

_Graph: TypeAlias = nx.DiGraph


class DependencyCycleError(ValueError):
    """The ``depends_on`` relationships contain a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__("Dependency cycle: " + " -> ".join([*cycle, cycle[0]]))
        self.cycle = cycle


class DependencyGraph:
    """Startup ordering over the services of one composition file."""

    def __init__(self, compose: ComposeFile) -> None:
        self._graph: _Graph = nx.DiGraph()
        self.unknown: list[tuple[str, str]] = []

        for name in compose.services:
            self._graph.add_node(name)
        for name, svc in compose.services.items():
            for dep, spec in svc.depends_on.items():
                if dep not in compose.services:
                    self.unknown.append((name, dep))
                    continue
                self._graph.add_edge(
                    dep,
                    name,
                    condition=spec.condition,
                    required=spec.required,
                )

    @property
    def graph(self) -> _Graph:
        return self._graph

    def find_cycle(self) -> list[str] | None:
        """Return the services of one cycle, or None when acyclic."""
        try:
            edges = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:
            return None
        return [source for source, _target in edges]

    def _require_acyclic(self) -> None:
        cycle = self.find_cycle()
        if cycle is not None:
            raise DependencyCycleError(cycle)

    def startup_order(self, names: Iterable[str] | None = None) -> list[list[str]]:
        """Topological generations, each sorted by name.

        When *names* is given, only those services are included (callers
        normally pass a :meth:`select` result).
        """
        self._require_acyclic()
        graph = self._graph if names is None else self._graph.subgraph(set(names))
        return [sorted(gen) for gen in nx.topological_generations(graph)]

    def shutdown_order(self, names: Iterable[str] | None = None) -> list[str]:
        """Dependents before dependencies."""
        flat = [name for gen in self.startup_order(names) for name in gen]
        return list(reversed(flat))

    def dependencies_of(self, name: str) -> set[str]:
        """All transitive dependencies of *name*."""
        self._check_known(name)
        return set(nx.ancestors(self._graph, name))

    def dependents_of(self, name: str) -> set[str]:
        """All services that transitively depend on *name*."""
        self._check_known(name)
        return set(nx.descendants(self._graph, name))

    def direct_dependencies(self, name: str) -> dict[str, DependencyCondition]:
        """Direct dependencies of *name* mapped to their start condition."""
        self._check_known(name)
        return {
            dep: self._graph.edges[dep, name]["condition"]
            for dep in sorted(self._graph.predecessors(name))
        }

    def is_required(self, dependency: str, dependent: str) -> bool:
        return bool(self._graph.edges[dependency, dependent]["required"])

    def select(self, names: Iterable[str] | None, *, include_deps: bool = True) -> list[str]:
        """Requested services plus (optionally) their transitive dependencies.

        ``None`` or an empty selection means every service.
        """
        requested = list(names or [])
        if not requested:
            return sorted(self._graph.nodes)
        selected: set[str] = set()
        for name in requested:
            self._check_known(name)
            selected.add(name)
            if include_deps:
                selected |= self.dependencies_of(name)
        return sorted(selected)

    def _check_known(self, name: str) -> None:
        if name not in self._graph:
            raise KeyError(f"Unknown service: {name}")
