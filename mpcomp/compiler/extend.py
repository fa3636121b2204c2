"""
mpcomp/compiler/extend.py

Edge closure through deterministic nodes, and clusters.

Deterministic relations introduce no approximation error when merged into
one joint block, so a recognition factor grows through them; only soft
factors are cut across factor boundaries.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Set, Tuple

from mpcomp.graph.structure import EdgeID, FactorGraph, NodeID


@dataclass(frozen=True)
class Cluster:
    """
    Edges at one node that are approximated jointly.

    Attributes:
        node: Node id
        edges: Edge ids, ordered by the node's interface order
    """
    node: NodeID
    edges: Tuple[EdgeID, ...]

    @property
    def id(self) -> str:
        return f"cluster_{self.node}_" + "_".join(str(e) for e in self.edges)


def extend(
    graph: FactorGraph,
    seed_edges: Iterable[EdgeID],
    *,
    terminate_at_soft_factors: bool = True,
    limit_set: Iterable[EdgeID] = (),
) -> Set[EdgeID]:
    """
    Find the smallest legal edge set that includes `seed_edges`.

    Breadth-first closure: at every visited edge, both endpoint nodes are
    examined; a deterministic node (any node when terminate_at_soft_factors
    is False) contributes its other edges, restricted to `limit_set` when
    that is non-empty.

    Returns:
        The closure (a fixed point: extending it again returns it unchanged)
    """
    limit = set(limit_set)
    cluster: Set[EdgeID] = set()
    queue = deque(sorted(set(seed_edges)))
    queued = set(queue)

    while queue:
        current = queue.popleft()
        cluster.add(current)
        edge = graph.edges[current]
        for iid in edge.interfaces:
            node = graph.node_of(iid)
            if terminate_at_soft_factors and not node.deterministic:
                continue
            for other in node.interfaces:
                e = graph.interfaces[other].edge
                if e is None or e == current or e in cluster or e in queued:
                    continue
                if limit and e not in limit:
                    continue
                queue.append(e)
                queued.add(e)

    return cluster


def external_edges(graph: FactorGraph, internal_edges: Set[EdgeID]) -> Set[EdgeID]:
    """Edges at nodes touched by `internal_edges` that are not internal."""
    return graph.edges_of_nodes(graph.nodes_of_edges(internal_edges)) - internal_edges


def nodes_connected_to_external_edges(graph: FactorGraph, internal_edges: Set[EdgeID]) -> Set[NodeID]:
    """Nodes touched by both internal and external edges."""
    subgraph_nodes = graph.nodes_of_edges(internal_edges)
    return graph.nodes_of_edges(external_edges(graph, internal_edges)) & subgraph_nodes


def cluster_edges(graph: FactorGraph, node: NodeID, internal_edges: Set[EdgeID]) -> List[EdgeID]:
    """Internal edges at `node` in interface order."""
    out: List[EdgeID] = []
    for iid in graph.nodes[node].interfaces:
        e = graph.interfaces[iid].edge
        if e is not None and e in internal_edges:
            out.append(e)
    return out


def build_clusters(
    graph: FactorGraph,
    internal_edges: Set[EdgeID],
    boundary_nodes: Iterable[NodeID],
) -> List[Cluster]:
    """
    Build a Cluster at every boundary node with two or more internal edges.

    Cluster edges follow interface order (not set order) since rule lookup is
    positional.
    """
    clusters: List[Cluster] = []
    for node in sorted(boundary_nodes):
        edges = cluster_edges(graph, node, internal_edges)
        if len(edges) > 1:
            clusters.append(Cluster(node=node, edges=tuple(edges)))
    return clusters
