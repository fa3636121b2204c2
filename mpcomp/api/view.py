"""
mpcomp/api/view.py

Drawable view of a recognition factor.

Drawing is left to external tools; this module exposes the subgraph
(nodes, internal edges, external edges) and the schedule, and converts
them to a networkx MultiGraph that standard drawing functions accept.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

import networkx as nx

from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.graph.structure import EdgeID, FactorGraph, NodeID


@dataclass(frozen=True)
class SubgraphView:
    """
    Read-only view of a recognition factor's subgraph.

    Attributes:
        nodes: Nodes touched by internal edges
        internal_edges: Edges inside the factor
        external_edges: Edges at those nodes that leave the factor
        schedule: (schedule index, interface id, rule type name) triples
    """
    nodes: FrozenSet[NodeID]
    internal_edges: FrozenSet[EdgeID]
    external_edges: FrozenSet[EdgeID]
    schedule: Tuple[Tuple[int, int, str], ...]


def subgraph_view(rf: RecognitionFactor) -> SubgraphView:
    g = rf.ctx.graph
    return SubgraphView(
        nodes=frozenset(g.nodes_of_edges(rf.internal_edges)),
        internal_edges=frozenset(rf.internal_edges),
        external_edges=frozenset(rf.external_edges),
        schedule=tuple(
            (entry.schedule_index, entry.interface, entry.rule_type.name)
            for entry in rf.schedule
        ),
    )


def to_networkx(graph: FactorGraph, view: SubgraphView) -> nx.MultiGraph:
    """
    Convert a view to an undirected multigraph.

    Nodes carry `name`, `kind` and `deterministic`; edges (keyed by edge id)
    carry `variable`, `internal` and the schedule indices of the messages
    sent along them. Dangling edges are omitted.
    """
    G = nx.MultiGraph()
    for nid in sorted(view.nodes | graph.nodes_of_edges(view.external_edges)):
        node = graph.nodes[nid]
        G.add_node(nid, name=node.name, kind=node.kind, deterministic=node.deterministic)

    order: Dict[int, List[int]] = {}
    for idx, iface, _ in view.schedule:
        e = graph.interfaces[iface].edge
        order.setdefault(e, []).append(idx)

    for e in sorted(view.internal_edges | view.external_edges):
        edge = graph.edges[e]
        if edge.is_dangling:
            continue
        G.add_edge(
            graph.interfaces[edge.tail].node,
            graph.interfaces[edge.head].node,
            key=e,
            variable=edge.variable,
            internal=e in view.internal_edges,
            schedule=tuple(order.get(e, ())),
        )
    return G
