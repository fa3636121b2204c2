"""
mpcomp/compiler/collider.py

Collider detection for recognition factors.

A prior node injects a single free variable into a block: only its
outbound edge (interface 0) is internal. Two prior nodes in one connected
component share an internal descendant, which makes their variables
conditionally dependent in the posterior restricted to that block, a
dependence the factorization cannot represent.
"""

from __future__ import annotations

from typing import Iterator, Set

from mpcomp.compiler.extend import extend, nodes_connected_to_external_edges
from mpcomp.graph.structure import EdgeID, FactorGraph, NodeID


def connected_components(graph: FactorGraph, edges: Set[EdgeID]) -> Iterator[Set[EdgeID]]:
    """Yield the maximal connected edge sets of the subgraph induced by `edges`."""
    stack = set(edges)
    while stack:
        seed = min(stack)
        component = extend(graph, (seed,), terminate_at_soft_factors=False, limit_set=edges)
        yield component
        stack -= component


def is_prior_node(graph: FactorGraph, node: NodeID, component: Set[EdgeID]) -> bool:
    """True when only the outbound edge (interface 0) of `node` lies in `component`."""
    ifaces = graph.nodes[node].interfaces
    if graph.interfaces[ifaces[0]].edge not in component:
        return False
    for iid in ifaces[1:]:
        e = graph.interfaces[iid].edge
        if e is not None and e in component:
            return False
    return True


def component_has_collider(graph: FactorGraph, component: Set[EdgeID]) -> bool:
    """
    Whether a connected (tree-shaped) component contains more than one prior node.
    """
    n_prior_nodes = 0
    for node in sorted(nodes_connected_to_external_edges(graph, component)):
        if is_prior_node(graph, node, component):
            n_prior_nodes += 1
        if n_prior_nodes > 1:
            return True
    return False


def has_collider(graph: FactorGraph, internal_edges: Set[EdgeID]) -> bool:
    """
    Whether any connected component of `internal_edges` has a collider.

    The result is advisory; callers decide whether a collider is fatal.
    """
    for component in connected_components(graph, set(internal_edges)):
        if component_has_collider(graph, component):
            return True
    return False
