"""
mpcomp/core/registry.py

ID generation and the algorithm context.

The context replaces process-wide state: every recognition factor, the
edge -> factor and (node, edge) -> cluster lookup tables, and the published
marginal types live in one object that is passed explicitly, so independent
compilations can coexist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Hashable, List, Optional, Tuple, Union

from mpcomp.config import DEFAULT_OPTIONS, CompilerOptions
from mpcomp.graph.structure import EdgeID, FactorGraph, NodeID
from mpcomp.ir.schema import TypeDesc

if TYPE_CHECKING:
    from mpcomp.compiler.extend import Cluster
    from mpcomp.compiler.recognition_factor import RecognitionFactor

logger = logging.getLogger(__name__)


@dataclass
class IDRegistry:
    """
    Generator of readable unique ids per prefix.

    Attributes:
        counters: Prefix -> last issued number
    """
    counters: Dict[str, int] = field(default_factory=dict)

    def generate_id(self, prefix: str) -> str:
        """Generate "<prefix>_<n>" with n counting from 1 per prefix."""
        n = self.counters.get(prefix, 0) + 1
        self.counters[prefix] = n
        return f"{prefix}_{n}"


class AlgorithmContext:
    """
    Registries shared by the recognition factors of one algorithm.

    Attributes:
        graph: The factor graph being compiled
        options: Compiler options
        ids: Id generator
        recognition_factors: Factor id -> factor, in registration order
        edge_to_recognition_factor: Boundary-adjacent internal edge -> factor
        node_edge_to_cluster: (node, edge) -> cluster
        marginal_types: Variable/cluster -> resolved marginal type
    """

    def __init__(self, graph: FactorGraph, options: CompilerOptions = DEFAULT_OPTIONS):
        self.graph = graph
        self.options = options
        self.ids = IDRegistry()
        self.recognition_factors: Dict[str, "RecognitionFactor"] = {}
        self.edge_to_recognition_factor: Dict[EdgeID, "RecognitionFactor"] = {}
        self.node_edge_to_cluster: Dict[Tuple[NodeID, EdgeID], "Cluster"] = {}
        self.marginal_types: Dict[Hashable, TypeDesc] = {}

    def register_factor(self, rf: "RecognitionFactor") -> None:
        if rf.id in self.recognition_factors:
            raise KeyError(f"recognition factor {rf.id!r} already registered")
        self.recognition_factors[rf.id] = rf

    def register_edge(self, edge: EdgeID, rf: "RecognitionFactor") -> None:
        prev = self.edge_to_recognition_factor.get(edge)
        if prev is not None and prev is not rf:
            logger.warning("edge %d moves from recognition factor %s to %s", edge, prev.id, rf.id)
        self.edge_to_recognition_factor[edge] = rf

    def register_cluster(self, cluster: "Cluster") -> None:
        for e in cluster.edges:
            key = (cluster.node, e)
            prev = self.node_edge_to_cluster.get(key)
            if prev is not None and prev != cluster:
                logger.warning("(node %d, edge %d) moves from %s to %s", cluster.node, e, prev, cluster)
            self.node_edge_to_cluster[key] = cluster

    def recognition_factor_of(self, edge: EdgeID) -> Union["RecognitionFactor", EdgeID]:
        """Factor registered for `edge`; the edge id itself when unassigned."""
        return self.edge_to_recognition_factor.get(edge, edge)

    def local_recognition_factors(self, node: NodeID) -> List[Union["RecognitionFactor", EdgeID]]:
        """Factor (or edge id) of each interface of `node`, in interface order."""
        g = self.graph
        return [self.recognition_factor_of(g.edge_of(i)) for i in g.nodes[node].interfaces]

    def local_clusters(self, node: NodeID) -> List[Hashable]:
        """Cluster or variable id of each interface of `node`, in interface order."""
        g = self.graph
        out: List[Hashable] = []
        for i in g.nodes[node].interfaces:
            e = g.edge_of(i)
            out.append(self.node_edge_to_cluster.get((node, e), g.variable_of(e)))
        return out

    def local_recognition_factorization(self, node: NodeID) -> Dict[Any, Hashable]:
        """Map from local factor (or edge id) to the cluster/variable it covers at `node`."""
        return dict(zip(self.local_recognition_factors(node), self.local_clusters(node)))

    def marginal_key(self, node: NodeID, edge: EdgeID) -> Hashable:
        """Target key of the marginal consumed at `node` for `edge`."""
        return self.node_edge_to_cluster.get((node, edge), self.graph.variable_of(edge))

    def factor_containing(self, edge: EdgeID) -> Optional["RecognitionFactor"]:
        """First registered factor whose internal edges contain `edge`."""
        for rf in self.recognition_factors.values():
            if edge in rf.internal_edges:
                return rf
        return None
