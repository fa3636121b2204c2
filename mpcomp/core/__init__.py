"""
Core module: ID registry and algorithm context.
"""

from mpcomp.core.registry import IDRegistry, AlgorithmContext

__all__ = ["IDRegistry", "AlgorithmContext"]
