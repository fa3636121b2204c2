"""
mpcomp/runtime/execute.py

Compilation of all recognition factors and iterative execution.
"""

from __future__ import annotations

import logging
from typing import Hashable, Iterable, List, Optional

from mpcomp.compiler.assemble import assemble_algorithm
from mpcomp.compiler.emit import MarginalStore, emit_step
from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.compiler.rules import RuleCatalogue
from mpcomp.compiler.scheduler import generate_marginal_table, generate_schedule
from mpcomp.core.registry import AlgorithmContext
from mpcomp.errors import FactorizationError, UnresolvedMarginalTypeError
from mpcomp.graph.structure import InterfaceID
from mpcomp.ir.ops import MarginalRule
from mpcomp.runtime.distributions import vague_of

logger = logging.getLogger(__name__)


class Algorithm:
    """
    Compiled inference algorithm.

    Attributes:
        ctx: Algorithm context (graph, registries, marginal types)
        recognition_factors: Compiled factors, in registration order
        marginals: Current marginal of every variable and cluster
    """

    def __init__(self, ctx: AlgorithmContext, recognition_factors: List[RecognitionFactor]):
        self.ctx = ctx
        self.recognition_factors = recognition_factors
        self.marginals: MarginalStore = {}
        self.initialized = False

    @property
    def initialize(self) -> bool:
        """Whether any factor needs breaker seeding."""
        return any(rf.initialize for rf in self.recognition_factors)

    @property
    def optimize(self) -> bool:
        return any(rf.optimize for rf in self.recognition_factors)

    def init_marginals(self) -> None:
        """Seed every marginal with a vague value of its resolved type."""
        g = self.ctx.graph
        options = self.ctx.options
        for rf in self.recognition_factors:
            for m in rf.marginal_table:
                value = vague_of(m.marginal_type, options)
                self.marginals[m.target] = value
                if m.marginal_rule != MarginalRule.GENERAL:
                    for e in g.variables[m.target].edges:
                        g.ensure_marginal(e, m.marginal_type, lambda v=value: v)

    def reset(self) -> None:
        """Clear messages and marginals; breakers are seeded again on the next run."""
        self.ctx.graph.clear_messages()
        for rf in self.recognition_factors:
            for entry in rf.schedule:
                if entry.breaker is not None:
                    entry.breaker.reset()
        self.marginals = {}
        self.initialized = False

    def step(self) -> MarginalStore:
        """One pass over every recognition factor."""
        for rf in self.recognition_factors:
            rf.step(self.marginals)
        return self.marginals

    def execute(self, n_iterations: Optional[int] = None) -> MarginalStore:
        """
        Run `n_iterations` passes (CompilerOptions.n_iterations by default).

        The first call seeds the marginals; later calls continue from the
        current state.
        """
        if n_iterations is None:
            n_iterations = self.ctx.options.n_iterations
        if not self.initialized:
            self.init_marginals()
            self.initialized = True
        for it in range(n_iterations):
            self.step()
            logger.debug("iteration %d done", it + 1)
        return self.marginals

    def marginal(self, target: Hashable):
        return self.marginals[target]


def compile_algorithm(
    ctx: AlgorithmContext,
    catalogue: RuleCatalogue,
    *,
    ep_sites: Iterable[InterfaceID] = (),
    reject_colliders: Optional[bool] = None,
) -> Algorithm:
    """
    Schedule, resolve and assemble every registered recognition factor.

    A factor whose boundary marginal types depend on a factor not assembled
    yet is deferred; compilation fails when a full round makes no progress.

    Args:
        ctx: Context holding the registered factors
        catalogue: Update rules
        ep_sites: Interfaces updated by expectation propagation
        reject_colliders: Raise for factors with a collider (default from options)

    Raises:
        FactorizationError: a factor has a collider and rejection is enabled
        UnresolvedMarginalTypeError: marginal types cannot be resolved in any order
        ResolutionError: a computation has no unique rule
    """
    if reject_colliders is None:
        reject_colliders = ctx.options.reject_colliders
    sites = set(ep_sites)

    factors = [rf for rf in ctx.recognition_factors.values() if not rf.is_empty]
    for rf in factors:
        if rf.has_collider():
            if reject_colliders:
                raise FactorizationError(
                    f"recognition factor {rf.id} contains a collider; "
                    f"its variables are dependent in the posterior"
                )
            logger.warning("recognition factor %s contains a collider", rf.id)
        generate_schedule(ctx, rf, ep_sites=sites)
        generate_marginal_table(ctx, rf)

    pending = list(factors)
    while pending:
        deferred: List[RecognitionFactor] = []
        last_error: Optional[UnresolvedMarginalTypeError] = None
        for rf in pending:
            try:
                assemble_algorithm(ctx, rf, catalogue)
            except UnresolvedMarginalTypeError as err:
                logger.debug("deferring %s: %s", rf.id, err)
                deferred.append(rf)
                last_error = err
        if len(deferred) == len(pending):
            raise last_error
        pending = deferred

    for rf in factors:
        rf.step = emit_step(ctx, rf)

    logger.info(
        "compiled %d recognition factors, %d schedule entries",
        len(factors), sum(len(rf.schedule) for rf in factors),
    )
    return Algorithm(ctx, factors)
