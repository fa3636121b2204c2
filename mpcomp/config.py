"""
mpcomp/config.py

Compiler options.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CompilerOptions:
    """
    Options shared by compilation and execution.

    Attributes:
        n_iterations: Default number of outer iterations for execute()
        huge: Variance/scale used for vague (non-informative) seeds
        tiny: Precision/rate used for vague (non-informative) seeds
        reject_colliders: Raise FactorizationError for colliding factors
    """
    n_iterations: int = 50
    huge: float = 1e12
    tiny: float = 1e-12
    reject_colliders: bool = False

    def __post_init__(self):
        if self.n_iterations < 0:
            raise ValueError("n_iterations must be non-negative")
        if not (self.huge > 0 and self.tiny > 0):
            raise ValueError("huge and tiny must be positive")


DEFAULT_OPTIONS = CompilerOptions()
