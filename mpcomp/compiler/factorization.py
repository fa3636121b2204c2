"""
mpcomp/compiler/factorization.py

Builders for common recognition factorizations.
"""

from __future__ import annotations

from typing import Iterable, List, Union

from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.core.registry import AlgorithmContext
from mpcomp.graph.structure import VarID


def is_observed(ctx: AlgorithmContext, var: VarID) -> bool:
    """True when every edge of `var` ends at a clamp node."""
    g = ctx.graph
    for e in g.variables[var].edges:
        if not any(g.node_of(iid).is_clamp for iid in g.edges[e].interfaces):
            return False
    return True


def factorize_mean_field(ctx: AlgorithmContext) -> List[RecognitionFactor]:
    """
    One recognition factor per latent variable.

    Variables already internal to a registered factor (including those
    absorbed by deterministic closure) are skipped, as are observed ones.
    """
    g = ctx.graph
    factors: List[RecognitionFactor] = []
    for var in sorted(g.variables):
        if is_observed(ctx, var):
            continue
        if any(ctx.factor_containing(e) is not None for e in g.variables[var].edges):
            continue
        factors.append(RecognitionFactor(ctx, var))
    return factors


def factorize_structured(
    ctx: AlgorithmContext,
    groups: Iterable[Union[VarID, Iterable[VarID]]],
) -> List[RecognitionFactor]:
    """
    One recognition factor per group of variables.

    Groups must not overlap after deterministic closure; that is the
    caller's responsibility, and overlaps surface as registry warnings.
    """
    return [RecognitionFactor(ctx, group) for group in groups]
