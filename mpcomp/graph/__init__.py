"""
Graph module: Arena factor graph.
"""

from mpcomp.graph.structure import Node, Interface, Edge, Variable, FactorGraph

__all__ = ["Node", "Interface", "Edge", "Variable", "FactorGraph"]
