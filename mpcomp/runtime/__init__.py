"""
Runtime module: Distribution values.

Execution lives in mpcomp.runtime.execute, which depends on the compiler.
"""

from mpcomp.runtime.distributions import (
    Distribution,
    PartitionedDistribution,
    register_vague,
    vague,
    vague_of,
    point_mass,
    point_mass_type,
)

__all__ = [
    "Distribution",
    "PartitionedDistribution",
    "register_vague",
    "vague",
    "vague_of",
    "point_mass",
    "point_mass_type",
]
