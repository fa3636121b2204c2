"""
mpcomp/compiler/scheduler.py

Schedule generation for one recognition factor.

The schedule is a depth-first post-order over message dependencies:
computing the message on interface I of node N requires the messages
arriving at N through every other internal edge (the messages stored on
their partner interfaces). Edges that leave the factor contribute a
marginal instead, which is not scheduled here.

Dependencies that close a cycle (back edges of the traversal) cannot be
ordered; their producers become loop breakers and are seeded before the
first pass. Expectation-propagation sites and the inbound interface of a
nonlinear node without a known inverse additionally depend on the message
arriving at the outbound interface itself.

The marginal table skeleton (which messages each marginal consumes) is
derived here as well; rule resolution happens in the assembler.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

import networkx as nx

from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.core.registry import AlgorithmContext
from mpcomp.errors import SchedulingError
from mpcomp.graph.structure import FactorGraph, InterfaceID
from mpcomp.ir.ops import (
    MarginalEntry,
    MarginalRule,
    MarginalTable,
    Schedule,
    ScheduleEntry,
    UpdateRuleType,
)
from mpcomp.ir.schema import TypeDesc

logger = logging.getLogger(__name__)


def needs_own_inbound(graph: FactorGraph, iface: InterfaceID, rule_type: UpdateRuleType) -> bool:
    """
    Whether the update on `iface` consumes the message arriving at `iface`.

    True for expectation-propagation updates and for interface 1 of a node
    whose inverse is unknown (the update linearizes around the incoming
    message).
    """
    if rule_type == UpdateRuleType.EXPECTATION_PROPAGATION:
        return True
    node = graph.node_of(iface)
    return not node.inverse_known and graph.interfaces[iface].index == 1


def rule_type_of(
    graph: FactorGraph,
    rf: RecognitionFactor,
    iface: InterfaceID,
    ep_sites: Set[InterfaceID],
) -> UpdateRuleType:
    if iface in ep_sites:
        return UpdateRuleType.EXPECTATION_PROPAGATION
    node = graph.node_of(iface)
    if node.deterministic:
        return UpdateRuleType.SUM_PRODUCT
    for iid in node.interfaces:
        if graph.edge_of(iid) not in rf.internal_edges:
            return UpdateRuleType.VARIATIONAL
    return UpdateRuleType.SUM_PRODUCT


def dependencies(
    graph: FactorGraph,
    rf: RecognitionFactor,
    iface: InterfaceID,
    rule_type: UpdateRuleType,
) -> List[InterfaceID]:
    """
    Interfaces whose messages the update on `iface` consumes, in interface order.

    Raises:
        NotConnectedError: an interface of the node is not bound to an edge
    """
    node = graph.node_of(iface)
    deps: List[InterfaceID] = []
    for iid in node.interfaces:
        e = graph.edge_of(iid)
        if e not in rf.internal_edges:
            continue
        partner = graph.interfaces[iid].partner
        if partner is None:
            # Dangling edge: nothing arrives
            continue
        if iid == iface and not needs_own_inbound(graph, iface, rule_type):
            continue
        deps.append(partner)
    return deps


def schedule_targets(graph: FactorGraph, rf: RecognitionFactor) -> List[InterfaceID]:
    """Both interfaces of every edge of every factor variable, in sorted variable order."""
    targets: List[InterfaceID] = []
    seen: Set[InterfaceID] = set()
    for var in rf.sorted_variables():
        for e in sorted(graph.variables[var].edges):
            for iid in graph.edges[e].interfaces:
                if iid not in seen:
                    seen.add(iid)
                    targets.append(iid)
    return targets


def dependency_graph(
    graph: FactorGraph,
    rf: RecognitionFactor,
    targets: Iterable[InterfaceID],
    ep_sites: Set[InterfaceID],
) -> nx.DiGraph:
    """
    Directed graph with an edge I -> J whenever the update on I consumes J.

    Targets are inserted first so that traversal starts from them in order.
    """
    G = nx.DiGraph()
    frontier = list(targets)
    G.add_nodes_from(frontier)
    visited: Set[InterfaceID] = set()
    while frontier:
        iface = frontier.pop()
        if iface in visited:
            continue
        visited.add(iface)
        rule_type = rule_type_of(graph, rf, iface, ep_sites)
        G.nodes[iface]["rule_type"] = rule_type
        for dep in dependencies(graph, rf, iface, rule_type):
            G.add_edge(iface, dep)
            if dep not in visited:
                frontier.append(dep)
    return G


def post_order(G: nx.DiGraph):
    """
    Depth-first post-order of `G` plus the back edges met on the way.

    Returns:
        (order, back_edges): every node of G once; (consumer, producer) pairs
        whose producer was still on the traversal stack
    """
    order: List[InterfaceID] = []
    back_edges: List[tuple] = []
    on_stack: Set[InterfaceID] = set()
    for u, v, label in nx.dfs_labeled_edges(G):
        if label == "forward":
            on_stack.add(v)
        elif label == "reverse":
            on_stack.discard(v)
            order.append(v)
        elif label == "nontree" and v in on_stack:
            back_edges.append((u, v))
    return order, back_edges


def generate_schedule(
    ctx: AlgorithmContext,
    rf: RecognitionFactor,
    *,
    ep_sites: Iterable[InterfaceID] = (),
) -> Schedule:
    """
    Build the ordered message computations of `rf`.

    Args:
        ctx: Algorithm context
        rf: Recognition factor
        ep_sites: Interfaces updated by expectation propagation

    Returns:
        Schedule entries in execution order; also stored on `rf` together with
        `rf.loop_breakers` (producer interfaces of back edges) and
        `rf.dependency_graph`

    Raises:
        NotConnectedError: a node on the dependency path has an unbound interface
    """
    g = ctx.graph
    if rf.is_empty:
        raise SchedulingError(f"recognition factor {rf.id} has no internal edges")
    sites = set(ep_sites)

    targets = schedule_targets(g, rf)
    G = dependency_graph(g, rf, targets, sites)
    order, back_edges = post_order(G)

    schedule: Schedule = []
    for iface in order:
        i = g.interfaces[iface]
        schedule.append(ScheduleEntry(
            interface=iface,
            node=i.node,
            outbound_index=i.index,
            rule_type=G.nodes[iface]["rule_type"],
        ))

    rf.schedule = schedule
    rf.loop_breakers = {v for (_, v) in back_edges}
    rf.dependency_graph = G

    if back_edges:
        logger.debug("recognition factor %s: %d loop breakers", rf.id, len(rf.loop_breakers))
    logger.debug("recognition factor %s: %d schedule entries", rf.id, len(schedule))
    return schedule


def constrain(
    rf: RecognitionFactor,
    iface: InterfaceID,
    *,
    outbound_type: Optional[TypeDesc] = None,
    approximation: Optional[str] = None,
) -> ScheduleEntry:
    """
    Pre-set the outbound type and/or approximation of a scheduled update.

    Raises:
        SchedulingError: `iface` is not a target of the schedule
    """
    for entry in rf.schedule:
        if entry.interface == iface:
            entry.constraint = outbound_type
            entry.approximation_constraint = approximation
            return entry
    raise SchedulingError(f"interface {iface} is not scheduled in {rf.id}")


def generate_marginal_table(ctx: AlgorithmContext, rf: RecognitionFactor) -> MarginalTable:
    """
    Build the marginal computations of `rf`: variables (sorted), then clusters.

    A variable observed through a clamp, or carried by a dangling edge, is a
    copy of a single message; any other variable is the product of the two
    messages on its edge. A cluster is computed by a joint-marginal rule at
    its node from the messages on its edges.
    """
    g = ctx.graph
    table: MarginalTable = []

    for var in rf.sorted_variables():
        e = min(g.variables[var].edges)
        edge = g.edges[e]
        if edge.is_dangling:
            table.append(MarginalEntry(var, [edge.tail], MarginalRule.NONE))
            continue
        tail_node, head_node = g.node_of(edge.tail), g.node_of(edge.head)
        if tail_node.is_clamp:
            table.append(MarginalEntry(var, [edge.tail], MarginalRule.NONE))
        elif head_node.is_clamp:
            table.append(MarginalEntry(var, [edge.head], MarginalRule.NONE))
        else:
            table.append(MarginalEntry(var, [edge.tail, edge.head], MarginalRule.PRODUCT))

    for cluster in rf.sorted_clusters():
        # Messages arriving at the cluster node live on the partner interfaces
        ifaces = [
            g.partner(iid) for iid in g.nodes[cluster.node].interfaces
            if g.interfaces[iid].edge in cluster.edges
        ]
        table.append(MarginalEntry(cluster, ifaces, MarginalRule.GENERAL, node=cluster.node))

    rf.marginal_table = table
    return table
