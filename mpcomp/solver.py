"""
mpcomp/solver.py

High-level interface: factorize, compile and run in one call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, Optional

from mpcomp.compiler.factorization import factorize_mean_field, factorize_structured
from mpcomp.compiler.rules import RuleCatalogue
from mpcomp.config import DEFAULT_OPTIONS, CompilerOptions
from mpcomp.core.registry import AlgorithmContext
from mpcomp.graph.structure import FactorGraph
from mpcomp.runtime.execute import Algorithm, compile_algorithm


@dataclass
class InferenceResult:
    """Result from running inference."""
    marginals: Dict[Hashable, object]
    algorithm: Algorithm


def build_algorithm(
    graph: FactorGraph,
    catalogue: RuleCatalogue,
    groups: Optional[Iterable] = None,
    *,
    ep_sites: Iterable[int] = (),
    options: CompilerOptions = DEFAULT_OPTIONS,
) -> Algorithm:
    """
    Factorize `graph` and compile the resulting algorithm.

    Args:
        graph: Model
        catalogue: Update rules
        groups: Variable groups of a structured factorization; mean-field when None
        ep_sites: Interfaces updated by expectation propagation
        options: Compiler options

    Returns:
        Compiled Algorithm
    """
    ctx = AlgorithmContext(graph, options)
    if groups is None:
        factorize_mean_field(ctx)
    else:
        factorize_structured(ctx, groups)
    return compile_algorithm(ctx, catalogue, ep_sites=ep_sites)


def run_inference(
    graph: FactorGraph,
    catalogue: RuleCatalogue,
    groups: Optional[Iterable] = None,
    *,
    ep_sites: Iterable[int] = (),
    options: CompilerOptions = DEFAULT_OPTIONS,
    n_iterations: Optional[int] = None,
) -> InferenceResult:
    """Build the algorithm and run it for `n_iterations` passes."""
    algorithm = build_algorithm(graph, catalogue, groups, ep_sites=ep_sites, options=options)
    marginals = algorithm.execute(n_iterations)
    return InferenceResult(marginals=marginals, algorithm=algorithm)
