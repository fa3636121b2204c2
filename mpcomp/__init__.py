"""
mpcomp: Message-passing algorithm compiler

Compiles executable approximate-inference algorithms from factor graphs:
recognition factorization, structural validation, message scheduling,
update-rule resolution and step assembly.

Key components:
- graph: Arena factor graph (nodes, interfaces, edges, variables)
- ir: Type descriptions, schedule and marginal-table entries
- compiler: Recognition factors, colliders, scheduler, resolver, assembler
- runtime: Distribution values and iterative execution
- core: ID registry and algorithm context
- api: Drawable views of recognition factors
"""

import logging

__version__ = "0.1.0"

from mpcomp.config import CompilerOptions, DEFAULT_OPTIONS
from mpcomp.errors import (
    CompilerError,
    StructuralError,
    FactorizationError,
    SchedulingError,
    NotConnectedError,
    ResolutionError,
    NoApplicableRuleError,
    AmbiguousRuleError,
    PartitionMismatchError,
    UnresolvedMarginalTypeError,
)
from mpcomp.graph.structure import FactorGraph
from mpcomp.core.registry import AlgorithmContext
from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.compiler.rules import RuleCatalogue, UpdateRule
from mpcomp.ir.ops import UpdateRuleType
from mpcomp.runtime.execute import Algorithm, compile_algorithm
from mpcomp.solver import InferenceResult, build_algorithm, run_inference

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Configuration
    "CompilerOptions",
    "DEFAULT_OPTIONS",
    # Errors
    "CompilerError",
    "StructuralError",
    "FactorizationError",
    "SchedulingError",
    "NotConnectedError",
    "ResolutionError",
    "NoApplicableRuleError",
    "AmbiguousRuleError",
    "PartitionMismatchError",
    "UnresolvedMarginalTypeError",
    # Model
    "FactorGraph",
    "AlgorithmContext",
    "RecognitionFactor",
    # Rules
    "RuleCatalogue",
    "UpdateRule",
    "UpdateRuleType",
    # Execution
    "Algorithm",
    "compile_algorithm",
    "InferenceResult",
    "build_algorithm",
    "run_inference",
]
