"""
API module: Drawable views of recognition factors.
"""

from mpcomp.api.view import SubgraphView, subgraph_view, to_networkx

__all__ = ["SubgraphView", "subgraph_view", "to_networkx"]
