# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/provisio/deploy/graph.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from ..config.models import ResourceDescriptor
from ..errors import CycleDetected, SelfDependency, UnknownDependency


@dataclass
class DependencyGraph:
    """Edges point from a dependency to the descriptor that needs it."""

    nodes: Dict[str, ResourceDescriptor] = field(default_factory=dict)
    predecessors: Dict[str, Set[str]] = field(default_factory=dict)
    successors: Dict[str, Set[str]] = field(default_factory=dict)

    def add_node(self, descriptor: ResourceDescriptor) -> None:
        self.nodes[descriptor.id] = descriptor
        self.predecessors.setdefault(descriptor.id, set())
        self.successors.setdefault(descriptor.id, set())

    def add_edge(self, src: str, dst: str) -> None:
        self.successors[src].add(dst)
        self.predecessors[dst].add(src)

    def edges(self) -> List[Tuple[str, str]]:
        return sorted((src, dst) for src, dsts in self.successors.items() for dst in dsts)

    def find_cycle(self) -> List[str]:
        """Return the members of one cycle in encounter order, or []."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {n: WHITE for n in self.nodes}
        path: List[str] = []

        def visit(n: str) -> List[str]:
            color[n] = GREY
            path.append(n)
            for m in sorted(self.successors[n]):
                if color[m] == GREY:
                    return path[path.index(m):]
                if color[m] == WHITE:
                    found = visit(m)
                    if found:
                        return found
            path.pop()
            color[n] = BLACK
            return []

        for n in sorted(self.nodes):
            if color[n] == WHITE:
                found = visit(n)
                if found:
                    return list(found)
        return []


def _validate(descriptors: Sequence[ResourceDescriptor]) -> None:
    names: Set[str] = {d.id for d in descriptors}
    for d in descriptors:
        if d.id in d.references():
            raise SelfDependency(f"Resource '{d.id}' depends on itself", [d.id])
    for d in descriptors:
        for dep in d.references():
            if dep not in names:
                raise UnknownDependency(
                    f"Resource '{d.id}' depends on unknown resource '{dep}'", [d.id, dep]
                )


def build_graph(descriptors: Iterable[ResourceDescriptor]) -> DependencyGraph:
    """
    Build the dependency graph from explicit ``depends_on`` lists and from
    every output reference. Raises SelfDependency, UnknownDependency or
    CycleDetected.
    """
    descriptors = list(descriptors)
    _validate(descriptors)

    graph = DependencyGraph()
    for d in sorted(descriptors, key=lambda x: x.id):
        graph.add_node(d)
    for d in descriptors:
        for dep in d.references():
            graph.add_edge(dep, d.id)

    cycle = graph.find_cycle()
    if cycle:
        raise CycleDetected(cycle)
    return graph
