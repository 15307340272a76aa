# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config.models import Deployment, ResourceDescriptor
from ..errors import ProvisioError, SchedulerInvariantViolated
from .conditions import filter_descriptors
from .graph import DependencyGraph, build_graph

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import PlanComputed, PlanFailed, ResourceExcluded, new_ctx, stamp


@dataclass
class DeploymentPlan:
    waves: List[List[str]]
    graph: DependencyGraph
    excluded: Dict[str, str] = field(default_factory=dict)

    @property
    def order(self) -> List[str]:
        return [n for wave in self.waves for n in wave]

    @property
    def descriptors(self) -> Dict[str, ResourceDescriptor]:
        return self.graph.nodes

    def wave_of(self, resource_id: str) -> int:
        for i, wave in enumerate(self.waves):
            if resource_id in wave:
                return i
        raise KeyError(resource_id)


def schedule(graph: DependencyGraph) -> List[List[str]]:
    """
    Kahn's algorithm, one wave at a time: every node whose dependencies are
    all scheduled joins the next wave. Ids are sorted inside a wave so logs
    and reports are reproducible.
    """
    indeg: Dict[str, int] = {n: len(p) for n, p in graph.predecessors.items()}
    waves: List[List[str]] = []
    ready = sorted(n for n, deg in indeg.items() if deg == 0)

    while ready:
        waves.append(ready)
        nxt = []
        for n in ready:
            for m in graph.successors[n]:
                indeg[m] -= 1
                if indeg[m] == 0:
                    nxt.append(m)
        ready = sorted(nxt)

    scheduled = sum(len(w) for w in waves)
    if scheduled != len(graph.nodes):
        # build_graph rejects cycles, so this only happens on a corrupted graph
        missing = sorted(set(graph.nodes) - {n for w in waves for n in w})
        raise SchedulerInvariantViolated(
            f"Could not schedule {len(missing)} resources: {', '.join(missing)}", missing
        )
    return waves


def plan(
    deployment: Deployment,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[dict] = None,
) -> DeploymentPlan:
    """
    Filter, graph and schedule a deployment.
    Emits ResourceExcluded / PlanComputed / PlanFailed if an EventBus is provided.
    """
    ctx = run_ctx or new_ctx(env=deployment.config.environment, context=deployment.config.name)
    try:
        filtered = filter_descriptors(deployment.resources, deployment.config)
        graph = build_graph(filtered.kept)
        waves = schedule(graph)

        if bus:
            for rid, reason in filtered.excluded.items():
                bus.emit(ResourceExcluded(name=rid, reason=reason, **stamp(ctx)))
            bus.emit(PlanComputed(waves=waves, excluded=list(filtered.excluded), **stamp(ctx)))
        return DeploymentPlan(waves=waves, graph=graph, excluded=filtered.excluded)

    except ProvisioError as e:
        if bus:
            bus.emit(PlanFailed(error=str(e), kind=e.kind, ids=list(getattr(e, "ids", [])), **stamp(ctx)))
        raise
