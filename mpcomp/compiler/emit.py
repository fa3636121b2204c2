"""
mpcomp/compiler/emit.py

Step emission for assembled recognition factors.

A step replays the schedule (each entry stores its outbound message on its
target interface), then computes the marginal table into a shared marginal
store. Procedures are called as procedure(node, *inbound_values); product
procedures as procedure(first, second).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Hashable, List

from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.core.registry import AlgorithmContext
from mpcomp.errors import PartitionMismatchError, ResolutionError
from mpcomp.ir.ops import (
    BreakerState,
    Inbound,
    InboundKind,
    MarginalRule,
    ScheduleEntry,
)
from mpcomp.runtime.distributions import PartitionedDistribution, point_mass, vague

MarginalStore = Dict[Hashable, Any]
Step = Callable[[MarginalStore], MarginalStore]


def _check_procedures(rf: RecognitionFactor) -> None:
    for entry in rf.schedule:
        if entry.rule is not None and entry.rule.procedure is None:
            raise ResolutionError(f"{entry!r} resolved to a rule without procedure")
    for m in rf.marginal_table:
        if m.rule is not None and m.rule.procedure is None:
            raise ResolutionError(f"marginal of {m.marginal_id} resolved to a rule without procedure")


def apply_one_by_one(procedure, node, args: List[Any]) -> PartitionedDistribution:
    """
    Apply `procedure` per factor of the partitioned arguments.

    Absent (None) arguments are passed through to every call.

    Raises:
        PartitionMismatchError: factor counts differ, or a present argument
            is not partitioned
    """
    counts = set()
    for a in args:
        if isinstance(a, PartitionedDistribution):
            counts.add(len(a))
        elif a is not None:
            raise PartitionMismatchError(f"argument {a!r} is not partitioned")
    if len(counts) != 1:
        raise PartitionMismatchError(f"partitioned inbounds disagree on their factor count: {sorted(counts)}")
    (k,) = counts
    outs = []
    for i in range(k):
        args_i = [a.factors[i] if a is not None else None for a in args]
        outs.append(procedure(node, *args_i))
    return PartitionedDistribution(tuple(outs))


def emit_step(ctx: AlgorithmContext, rf: RecognitionFactor) -> Step:
    """
    Build the executable step of an assembled recognition factor.

    Raises:
        ResolutionError: a resolved rule carries no procedure
    """
    _check_procedures(rf)
    g = ctx.graph
    options = ctx.options

    def value_of(source: Inbound, marginals: MarginalStore):
        if source.kind == InboundKind.VOID:
            return None
        if source.kind == InboundKind.MESSAGE:
            return g.interfaces[source.ref].message
        if source.kind == InboundKind.CONSTANT:
            return point_mass(g.nodes[source.ref].value)
        try:
            return marginals[source.ref]
        except KeyError:
            raise KeyError(f"marginal {getattr(source.ref, 'id', source.ref)} is not initialized") from None

    def seed(entry: ScheduleEntry) -> None:
        b = entry.breaker
        if b.factors is not None:
            value = PartitionedDistribution(tuple(vague(b.family, b.dims, options) for _ in range(b.factors)))
        else:
            value = vague(b.family, b.dims, options)
        g.interfaces[entry.interface].message = b.seed(value)

    def step(marginals: MarginalStore) -> MarginalStore:
        if rf.initialize:
            for entry in rf.schedule:
                if entry.breaker is not None and entry.breaker.state == BreakerState.UNINITIALIZED:
                    seed(entry)

        for entry in rf.schedule:
            node = g.nodes[entry.node]
            if node.is_clamp:
                msg = point_mass(node.value)
            else:
                args = [value_of(s, marginals) for s in entry.inbounds]
                if entry.one_by_one:
                    msg = apply_one_by_one(entry.rule.procedure, node, args)
                else:
                    msg = entry.rule.procedure(node, *args)
            if entry.breaker is not None:
                entry.breaker.advance()
            g.interfaces[entry.interface].message = msg

        for m in rf.marginal_table:
            if m.marginal_rule == MarginalRule.NONE:
                value = g.interfaces[m.inbounds[0].interface].message
            elif m.marginal_rule == MarginalRule.PRODUCT:
                first, second = (g.interfaces[e.interface].message for e in m.inbounds)
                value = m.rule.procedure(first, second)
            else:
                node = g.nodes[m.node]
                value = m.rule.procedure(node, *(value_of(s, marginals) for s in m.inbounds))
            marginals[m.target] = value
            if m.marginal_rule != MarginalRule.GENERAL:
                for e in g.variables[m.target].edges:
                    g.edges[e].marginal = value
        return marginals

    return step
