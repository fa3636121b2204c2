"""
mpcomp/compiler/recognition_factor.py

Recognition factors: blocks of the approximate posterior factorization.

A RecognitionFactor specifies the subset of variables that comprise a
joint factor of the recognition distribution, together with the clusters
and internal edges needed to update it locally.
"""

from __future__ import annotations

import logging
from typing import Dict, Hashable, Iterable, List, Optional, Set, Union

from mpcomp.compiler.collider import has_collider
from mpcomp.compiler.extend import (
    Cluster,
    build_clusters,
    extend,
    external_edges,
    nodes_connected_to_external_edges,
)
from mpcomp.core.registry import AlgorithmContext
from mpcomp.graph.structure import EdgeID, NodeID, VarID
from mpcomp.ir.ops import MarginalEntry, MarginalTable, Schedule, ScheduleEntry

logger = logging.getLogger(__name__)


class RecognitionFactor:
    """
    One block of the recognition factorization.

    Construction registers the factor with `ctx`: the boundary-adjacent
    internal edges map to this factor and every cluster edge maps to its
    cluster. Overlapping factors must not be built concurrently.

    Attributes:
        id: Factor id
        variables: Requested plus recognition variables
        clusters: Clusters at boundary nodes
        internal_edges: Deterministic closure of the requested edges
        boundary_nodes: Nodes touched by internal and external edges
        interface_to_schedule_entry: Set by the assembler
        target_to_marginal_entry: Set by the assembler
        schedule: Ordered message computations (set by the scheduler)
        loop_breakers: Producer interfaces of cyclic dependencies (set by the scheduler)
        dependency_graph: networkx DiGraph of message dependencies (set by the scheduler)
        marginal_table: Marginal computations (set by the scheduler)
        optimize: A clamped variable requires iterative re-estimation
        initialize: The factor contains a breaker that needs seeding
        step: Executable step function (set by the assembler)
    """

    def __init__(
        self,
        ctx: AlgorithmContext,
        variables: Optional[Union[VarID, Iterable[VarID]]] = None,
        *,
        id: Optional[str] = None,
    ):
        self.ctx = ctx
        self.id = id if id is not None else ctx.ids.generate_id("recognitionfactor")

        self.variables: Set[VarID] = set()
        self.clusters: Set[Cluster] = set()
        self.internal_edges: Set[EdgeID] = set()
        self.boundary_nodes: Set[NodeID] = set()
        self._boundary_edges: Set[EdgeID] = set()

        self.interface_to_schedule_entry: Dict[int, ScheduleEntry] = {}
        self.target_to_marginal_entry: Dict[Hashable, MarginalEntry] = {}
        self.schedule: Schedule = []
        self.loop_breakers: Set[int] = set()
        self.dependency_graph = None
        self.marginal_table: MarginalTable = []
        self.optimize = False
        self.initialize = False
        self.step = None

        if isinstance(variables, str):
            variables = [variables]
        requested = set(variables) if variables is not None else set()

        if requested:
            self._build(requested)
        ctx.register_factor(self)
        self._register()

        logger.debug(
            "recognition factor %s: %d variables, %d internal edges, %d clusters",
            self.id, len(self.variables), len(self.internal_edges), len(self.clusters),
        )

    def _build(self, requested: Set[VarID]) -> None:
        g = self.ctx.graph

        internal = extend(g, g.edges_of_variables(requested))
        boundary = nodes_connected_to_external_edges(g, internal)

        # Internal edges at boundary nodes carry variables the local update
        # needs a marginal for, even when they were not requested
        boundary_edges = g.edges_of_nodes(boundary) & internal
        recognition_variables = {g.variable_of(e) for e in boundary_edges}

        self.internal_edges = internal
        self.boundary_nodes = boundary
        self.variables = requested | recognition_variables
        self.clusters = set(build_clusters(g, internal, boundary))
        self._boundary_edges = boundary_edges

    def _register(self) -> None:
        for e in sorted(self._boundary_edges):
            self.ctx.register_edge(e, self)
        for cluster in sorted(self.clusters, key=lambda c: (c.node, c.edges)):
            self.ctx.register_cluster(cluster)

    @property
    def external_edges(self) -> Set[EdgeID]:
        return external_edges(self.ctx.graph, self.internal_edges)

    @property
    def is_empty(self) -> bool:
        return not self.internal_edges

    def has_collider(self) -> bool:
        """Whether the internal structure implies unmodelled posterior dependence."""
        return has_collider(self.ctx.graph, self.internal_edges)

    def sorted_variables(self) -> List[VarID]:
        return sorted(self.variables)

    def sorted_clusters(self) -> List[Cluster]:
        return sorted(self.clusters, key=lambda c: (c.node, c.edges))

    def __repr__(self) -> str:
        return f"RecognitionFactor({self.id!r}, variables={self.sorted_variables()})"
