"""
mpcomp/compiler/assemble.py

Algorithm assembly for one recognition factor.

Takes the schedule and marginal-table skeleton produced by the scheduler
and:
- Resolves every schedule entry's update rule and outbound type, in
  schedule order, so that each inbound message type is known when needed
- Builds the interface -> entry and target -> marginal lookup tables
- Records the source of every inbound argument
- Designates breaker entries (seeded before the first pass)
- Resolves the marginal table and publishes marginal types to the context
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np

from mpcomp.compiler.extend import Cluster
from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.compiler.resolver import resolve, resolve_product
from mpcomp.compiler.rules import RuleCatalogue
from mpcomp.compiler.scheduler import needs_own_inbound
from mpcomp.core.registry import AlgorithmContext
from mpcomp.errors import (
    NoApplicableRuleError,
    ResolutionError,
    SchedulingError,
    StructuralError,
    UnresolvedMarginalTypeError,
)
from mpcomp.graph.structure import EdgeID, InterfaceID
from mpcomp.ir.ops import (
    VOID_INBOUND,
    Breaker,
    Inbound,
    InboundKind,
    MarginalRule,
    ScheduleEntry,
    UpdateRuleType,
    interface_to_schedule_entry,
    target_to_marginal_entry,
)
from mpcomp.ir.schema import VOID, Kind, TypeDesc, is_ground, message, unify
from mpcomp.runtime.distributions import point_mass_type

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Inbound sources
# ----------------------------------------------------------------------

def inbound_sources(
    ctx: AlgorithmContext,
    rf: RecognitionFactor,
    node_id: int,
    outbound: Optional[InterfaceID],
    rule_type: UpdateRuleType,
) -> List[Inbound]:
    """
    Source of every argument of an update at `node_id`, in interface order.

    Internal edges supply the message stored on the partner interface,
    external edges the marginal of the variable/cluster they belong to (a
    constant when the far end is a clamp). The outbound position is VOID
    unless the update consumes its own inbound message.
    """
    g = ctx.graph
    sources: List[Inbound] = []
    for iid in g.nodes[node_id].interfaces:
        e = g.edge_of(iid)
        partner = g.interfaces[iid].partner
        if iid == outbound and not needs_own_inbound(g, iid, rule_type):
            sources.append(VOID_INBOUND)
        elif partner is None:
            sources.append(VOID_INBOUND)
        elif e in rf.internal_edges:
            sources.append(Inbound(InboundKind.MESSAGE, partner))
        elif g.node_of(partner).is_clamp:
            sources.append(Inbound(InboundKind.CONSTANT, g.interfaces[partner].node))
        else:
            sources.append(Inbound(InboundKind.MARGINAL, ctx.marginal_key(node_id, e)))
    return sources


def _declared_type(ctx: AlgorithmContext, edge: EdgeID) -> Optional[TypeDesc]:
    t = ctx.graph.edges[edge].distribution_type
    if t is not None and is_ground(t):
        return t
    return None


def _message_type(ctx: AlgorithmContext, resolved: Dict[InterfaceID, TypeDesc], iface: InterfaceID) -> TypeDesc:
    if iface in resolved:
        return resolved[iface]
    # Not produced yet: a back edge or an own-inbound of an EP site
    t = _declared_type(ctx, ctx.graph.edge_of(iface))
    if t is None:
        raise ResolutionError(
            f"type of the message on {ctx.graph.interface_label(iface)} is needed before it is "
            f"computed; declare a distribution_type on its edge"
        )
    return t


def _marginal_type(ctx: AlgorithmContext, node_id: int, key) -> TypeDesc:
    if key in ctx.marginal_types:
        return ctx.marginal_types[key]
    if not isinstance(key, Cluster):
        edge = min(ctx.graph.variables[key].edges)
        t = _declared_type(ctx, edge)
        if t is not None:
            return t
    raise UnresolvedMarginalTypeError(
        f"marginal type of {getattr(key, 'id', key)} at node {ctx.graph.nodes[node_id].name} is unknown"
    )


def inbound_type(
    ctx: AlgorithmContext,
    resolved: Dict[InterfaceID, TypeDesc],
    node_id: int,
    source: Inbound,
) -> TypeDesc:
    g = ctx.graph
    if source.kind == InboundKind.VOID:
        return VOID
    if source.kind == InboundKind.MESSAGE:
        return message(_message_type(ctx, resolved, source.ref))
    if source.kind == InboundKind.CONSTANT:
        return point_mass_type(g.nodes[source.ref].value)
    return _marginal_type(ctx, node_id, source.ref)


# ----------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------

def infer_update_rules(ctx: AlgorithmContext, rf: RecognitionFactor, catalogue: RuleCatalogue) -> None:
    """
    Resolve rule and outbound type of every schedule entry, in schedule order.

    Raises:
        UnresolvedMarginalTypeError: a boundary marginal type is not known yet
        ResolutionError: no unique rule applies
    """
    g = ctx.graph
    resolved: Dict[InterfaceID, TypeDesc] = {}

    for idx, entry in enumerate(rf.schedule):
        entry.schedule_index = idx
        node = g.nodes[entry.node]

        if node.is_clamp:
            # Observed values emit a point mass; no rule involved
            entry.inbounds = [VOID_INBOUND]
            entry.inbound_types = [VOID]
            entry.outbound_type = point_mass_type(node.value)
            entry.rule = None
            resolved[entry.interface] = entry.outbound_type
            continue

        entry.inbounds = inbound_sources(ctx, rf, entry.node, entry.interface, entry.rule_type)
        entry.inbound_types = [inbound_type(ctx, resolved, entry.node, s) for s in entry.inbounds]

        res = resolve(
            catalogue, node.kind, entry.rule_type, entry.outbound_index, entry.inbound_types,
            node=node,
            outbound_constraint=entry.constraint,
            approximation=entry.approximation_constraint,
        )
        entry.outbound_type = res.outbound_type
        entry.approximation = res.approximation
        entry.rule = res.rule
        entry.one_by_one = res.one_by_one
        resolved[entry.interface] = res.outbound_type

        logger.debug("%s: %s", g.interface_label(entry.interface), entry)


# ----------------------------------------------------------------------
# Breakers
# ----------------------------------------------------------------------

def _breaker_for(t: TypeDesc, dims, reason: str) -> Breaker:
    factors = t.payload.args[1] if t.payload.kind == Kind.PARTITIONED else None
    return Breaker(family=t.family, dims=tuple(dims), reason=reason, factors=factors)


def _set_breaker(entry: ScheduleEntry, dims, reason: str) -> None:
    if entry.breaker is not None:
        return
    entry.breaker = _breaker_for(entry.outbound_type, dims, reason)


def _entry_of(ctx: AlgorithmContext, rf: RecognitionFactor, iface: InterfaceID) -> ScheduleEntry:
    try:
        return rf.interface_to_schedule_entry[iface]
    except KeyError:
        raise SchedulingError(
            f"{ctx.graph.interface_label(iface)} must be scheduled in {rf.id} to seed a breaker"
        ) from None


def assemble_breakers(ctx: AlgorithmContext, rf: RecognitionFactor) -> None:
    """
    Designate breaker entries and set the factor's initialize/optimize flags.

    - Expectation propagation: the partner entry, dims of its outbound type
    - Nonlinear node without inverse: the entry producing the message into
      interface 1, dims of the node
    - Message toward a clamp: the entry itself, dims of the observed value;
      the clamped value is re-estimated, so the factor is optimized
    - Cyclic dependency: the producer of the back edge
    """
    g = ctx.graph
    for entry in rf.schedule:
        node = g.nodes[entry.node]
        if node.is_clamp:
            continue
        partner = g.interfaces[entry.interface].partner
        if entry.rule_type == UpdateRuleType.EXPECTATION_PROPAGATION:
            target = _entry_of(ctx, rf, g.partner(entry.interface))
            _set_breaker(target, target.outbound_type.dims, "expectation")
        elif not node.inverse_known and entry.outbound_index == 1:
            target = _entry_of(ctx, rf, g.partner(entry.interface))
            _set_breaker(target, node.dims, "nonlinear")
        elif partner is not None and g.node_of(partner).is_clamp:
            _set_breaker(entry, np.shape(g.node_of(partner).value), "clamp")
            rf.optimize = True

    for iface in sorted(rf.loop_breakers):
        target = _entry_of(ctx, rf, iface)
        _set_breaker(target, target.outbound_type.dims, "loop")

    rf.initialize = any(entry.breaker is not None for entry in rf.schedule)


# ----------------------------------------------------------------------
# Marginal table
# ----------------------------------------------------------------------

def _check_declared(ctx: AlgorithmContext, var, t: TypeDesc) -> None:
    g = ctx.graph
    for e in g.variables[var].edges:
        declared = g.edges[e].distribution_type
        if declared is not None and unify(declared, t) is None:
            raise StructuralError(
                f"marginal of {var} resolves to {t!r} but edge {e} requires {declared!r}"
            )


def _resolve_variable_product(
    ctx: AlgorithmContext,
    catalogue: RuleCatalogue,
    var,
    first: ScheduleEntry,
    second: ScheduleEntry,
):
    constraint = ctx.graph.edges[min(ctx.graph.variables[var].edges)].distribution_type
    a, b = message(first.outbound_type), message(second.outbound_type)
    try:
        return resolve_product(catalogue, a, b, outbound_constraint=constraint)
    except NoApplicableRuleError as err:
        if constraint is None:
            raise
        try:
            res = resolve_product(catalogue, a, b)
        except ResolutionError:
            raise err from None
        # A product exists but contradicts the declared family
        _check_declared(ctx, var, res.outbound_type)
        raise


def assemble_marginal_table(ctx: AlgorithmContext, rf: RecognitionFactor, catalogue: RuleCatalogue) -> None:
    """Resolve marginal rules and types; publish the types to the context."""
    g = ctx.graph
    resolved = {e.interface: e.outbound_type for e in rf.schedule}
    for m in rf.marginal_table:
        if m.marginal_rule == MarginalRule.NONE:
            src = _entry_of(ctx, rf, m.interfaces[0])
            m.inbounds = [src]
            m.marginal_type = src.outbound_type
            _check_declared(ctx, m.target, m.marginal_type)

        elif m.marginal_rule == MarginalRule.PRODUCT:
            first = _entry_of(ctx, rf, m.interfaces[0])
            second = _entry_of(ctx, rf, m.interfaces[1])
            res = _resolve_variable_product(ctx, catalogue, m.target, first, second)
            m.inbounds = [second, first] if res.swapped else [first, second]
            m.marginal_type = res.outbound_type
            m.rule = res.rule

        else:
            node = g.nodes[m.node]
            # Every internal edge at a boundary node belongs to its cluster
            sources = inbound_sources(ctx, rf, m.node, None, UpdateRuleType.JOINT_MARGINAL)
            types = [inbound_type(ctx, resolved, m.node, s) for s in sources]
            res = resolve(catalogue, node.kind, UpdateRuleType.JOINT_MARGINAL, None, types, node=node)
            m.inbounds = sources
            m.marginal_type = res.outbound_type
            m.rule = res.rule

        m.marginal_id = getattr(m.target, "id", m.target)
        ctx.marginal_types[m.target] = m.marginal_type


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------

def assemble_algorithm(ctx: AlgorithmContext, rf: RecognitionFactor, catalogue: RuleCatalogue) -> RecognitionFactor:
    """
    Assemble `rf` after generate_schedule and generate_marginal_table.

    Re-running after an UnresolvedMarginalTypeError starts over from the
    schedule, so a deferred factor can be assembled once its neighbours are.

    Returns:
        `rf` with resolved schedule, breakers and marginal table
    """
    for entry in rf.schedule:
        entry.breaker = None
    rf.optimize = False
    rf.initialize = False

    infer_update_rules(ctx, rf, catalogue)
    rf.interface_to_schedule_entry = interface_to_schedule_entry(rf.schedule)
    rf.target_to_marginal_entry = target_to_marginal_entry(rf.marginal_table)
    assemble_breakers(ctx, rf)
    assemble_marginal_table(ctx, rf, catalogue)

    logger.debug(
        "assembled %s: %d entries, %d marginals, initialize=%s, optimize=%s",
        rf.id, len(rf.schedule), len(rf.marginal_table), rf.initialize, rf.optimize,
    )
    return rf
