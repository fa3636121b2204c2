"""
mpcomp/graph/structure.py

Factor graph in arena form.

A factor graph consists of:
- Nodes: factors with an ordered, fixed-size list of interfaces (ports)
- Interfaces: half-edges; each belongs to exactly one node
- Edges: pairs of partnered interfaces (tail -> head is the forward direction)
- Variables: named groups of edges whose joint posterior is of interest

Nodes, interfaces and edges live in index-addressed lists and refer to each
other by integer id, so partner and edge lookups are O(1) without
reference cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

import numpy as np

from mpcomp.errors import NotConnectedError, StructuralError
from mpcomp.ir.schema import TypeDesc, unify

NodeID = int
InterfaceID = int
EdgeID = int
VarID = str


@dataclass
class Node:
    """
    A factor node.

    Attributes:
        id: Arena index
        name: Unique name
        kind: Node type used for rule lookup (e.g. "gaussian", "addition")
        interfaces: Ordered interface ids
        deterministic: Relation is a pure function of the inputs
        inverse_known: False for nonlinear nodes lacking an analytic inverse
        value: Observed value for clamp nodes
        dims: Dimensionality of the node's variables (for breaker seeds)
        symmetric: Whether any free interface may be picked automatically
    """
    id: NodeID
    name: str
    kind: str
    interfaces: Tuple[InterfaceID, ...]
    deterministic: bool = False
    inverse_known: bool = True
    value: Optional[np.ndarray] = None
    dims: Tuple[int, ...] = ()
    symmetric: bool = False

    @property
    def is_clamp(self) -> bool:
        return self.value is not None


@dataclass
class Interface:
    """
    A port of exactly one node.

    The message from node a to node b is stored on the interface of a that
    connects to an interface of b. `edge` and `partner` are assigned once,
    when the edge is built.
    """
    id: InterfaceID
    node: NodeID
    index: int
    handle: Optional[str] = None
    edge: Optional[EdgeID] = None
    partner: Optional[InterfaceID] = None
    message: Any = None


@dataclass
class Edge:
    """
    An unordered pair of partnered interfaces.

    A dangling edge is bound at its tail only (head is None); it models a
    variable that no other factor consumes.

    Attributes:
        id: Arena index
        tail: Interface id sending the forward message
        head: Interface id sending the backward message; None when dangling
        variable: Variable this edge belongs to
        distribution_type: Optional constraint on the marginal's type
        marginal: Current marginal value
    """
    id: EdgeID
    tail: InterfaceID
    head: Optional[InterfaceID]
    variable: VarID
    distribution_type: Optional[TypeDesc] = None
    marginal: Any = None

    @property
    def interfaces(self) -> Tuple[InterfaceID, ...]:
        if self.head is None:
            return (self.tail,)
        return (self.tail, self.head)

    @property
    def is_dangling(self) -> bool:
        return self.head is None


@dataclass
class Variable:
    """A random variable; usually one edge, several when equality-constrained."""
    id: VarID
    edges: List[EdgeID] = field(default_factory=list)


class FactorGraph:
    """
    Arena-backed factor graph.

    The graph is mutated only while it is being built; compilation treats
    it as immutable apart from message and marginal slots.
    """

    def __init__(self):
        self.nodes: List[Node] = []
        self.interfaces: List[Interface] = []
        self.edges: List[Edge] = []
        self.variables: Dict[VarID, Variable] = {}
        self._node_names: Dict[str, NodeID] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(
        self,
        kind: str,
        n_interfaces: int,
        *,
        name: Optional[str] = None,
        deterministic: bool = False,
        inverse_known: bool = True,
        value=None,
        dims: Tuple[int, ...] = (),
        handles: Optional[Tuple[str, ...]] = None,
        symmetric: bool = False,
    ) -> NodeID:
        """
        Add a node with `n_interfaces` fresh interfaces.

        Returns:
            The new node id
        """
        if n_interfaces < 1:
            raise StructuralError(f"node {kind!r} needs at least one interface")
        if handles is not None and len(handles) != n_interfaces:
            raise StructuralError(f"node {kind!r}: {len(handles)} handles for {n_interfaces} interfaces")

        nid = len(self.nodes)
        if name is None:
            name = f"{kind}_{nid}"
        if name in self._node_names:
            raise StructuralError(f"duplicate node name {name!r}")

        first = len(self.interfaces)
        for i in range(n_interfaces):
            self.interfaces.append(Interface(
                id=first + i,
                node=nid,
                index=i,
                handle=handles[i] if handles is not None else None,
            ))

        self.nodes.append(Node(
            id=nid,
            name=name,
            kind=kind,
            interfaces=tuple(range(first, first + n_interfaces)),
            deterministic=deterministic,
            inverse_known=inverse_known,
            value=(np.asarray(value) if value is not None else None),
            dims=tuple(dims),
            symmetric=symmetric,
        ))
        self._node_names[name] = nid
        return nid

    def add_clamp(self, value, *, name: Optional[str] = None) -> NodeID:
        """Add an observed (clamped) value as a one-interface deterministic node."""
        arr = np.asarray(value)
        return self.add_node("clamp", 1, name=name, deterministic=True, value=arr, dims=arr.shape)

    def first_free_interface(self, node: NodeID) -> InterfaceID:
        """Pick the first unbound interface of a symmetric node."""
        n = self.nodes[node]
        if not n.symmetric:
            raise StructuralError(
                f"Cannot automatically pick a free interface on non-symmetrical {n.kind} {n.name}"
            )
        for iid in n.interfaces:
            if self.interfaces[iid].edge is None:
                return iid
        raise StructuralError(f"node {n.name} has no free interface")

    def connect(
        self,
        tail: Union[InterfaceID, Tuple[str, int]],
        head: Optional[Union[InterfaceID, Tuple[str, int]]],
        *,
        variable: Optional[VarID] = None,
        distribution_type: Optional[TypeDesc] = None,
    ) -> EdgeID:
        """
        Join two interfaces with an edge.

        `tail` and `head` are interface ids, ("node", node_id) pairs that
        resolve through first_free_interface, or (node_name, index) pairs.
        A head of None builds a dangling edge.

        Raises:
            StructuralError: same node on both sides, or an interface that
                is already bound
        """
        t = self._resolve_interface(tail)
        h = self._resolve_interface(head) if head is not None else None
        it = self.interfaces[t]
        ih = self.interfaces[h] if h is not None else None

        if ih is not None and it.node == ih.node:
            n = self.nodes[it.node]
            raise StructuralError(f"Cannot connect two interfaces of the same node: {n.kind} {n.name}")
        if it.edge is not None or (ih is not None and ih.edge is not None):
            raise StructuralError("Previously defined edges cannot be repositioned.")

        eid = len(self.edges)
        if variable is None:
            variable = f"x_{eid}"
        self.edges.append(Edge(
            id=eid,
            tail=t,
            head=h,
            variable=variable,
            distribution_type=distribution_type,
        ))

        it.edge = eid
        it.partner = h
        if ih is not None:
            ih.edge = eid
            ih.partner = t

        self.variables.setdefault(variable, Variable(id=variable)).edges.append(eid)
        return eid

    def _resolve_interface(self, ref) -> InterfaceID:
        if isinstance(ref, tuple):
            key, idx = ref
            if key == "node":
                return self.first_free_interface(int(idx))
            node = self.nodes[self._node_names[key]]
            return node.interfaces[idx]
        ref = int(ref)
        if not 0 <= ref < len(self.interfaces):
            raise StructuralError(f"unknown interface {ref}")
        return ref

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def node_by_name(self, name: str) -> Node:
        return self.nodes[self._node_names[name]]

    def interface_of(self, node: NodeID, index: int) -> InterfaceID:
        """Get the interface id at position `index` of `node`."""
        return self.nodes[node].interfaces[index]

    def node_of(self, iface: InterfaceID) -> Node:
        return self.nodes[self.interfaces[iface].node]

    def partner(self, iface: InterfaceID) -> InterfaceID:
        """
        Get the partner interface.

        Raises:
            NotConnectedError: the interface is not bound to an edge
        """
        p = self.interfaces[iface].partner
        if p is None:
            raise NotConnectedError(f"{self.interface_label(iface)} is not connected to an edge.")
        return p

    def edge_of(self, iface: InterfaceID) -> EdgeID:
        e = self.interfaces[iface].edge
        if e is None:
            raise NotConnectedError(f"{self.interface_label(iface)} is not connected to an edge.")
        return e

    def interface_label(self, iface: InterfaceID) -> str:
        """Human-readable interface description."""
        i = self.interfaces[iface]
        n = self.nodes[i.node]
        h = f" ({i.handle})" if i.handle else ""
        return f"Interface {i.index}{h} of {n.kind} {n.name}"

    def edges_of_variables(self, variables: Iterable[VarID]) -> Set[EdgeID]:
        out: Set[EdgeID] = set()
        for v in variables:
            if v not in self.variables:
                raise KeyError(f"unknown variable {v!r}")
            out.update(self.variables[v].edges)
        return out

    def nodes_of_edges(self, edges: Iterable[EdgeID]) -> Set[NodeID]:
        out: Set[NodeID] = set()
        for e in edges:
            edge = self.edges[e]
            for iid in edge.interfaces:
                out.add(self.interfaces[iid].node)
        return out

    def edges_of_nodes(self, nodes: Iterable[NodeID]) -> Set[EdgeID]:
        out: Set[EdgeID] = set()
        for n in nodes:
            for iid in self.nodes[n].interfaces:
                e = self.interfaces[iid].edge
                if e is not None:
                    out.add(e)
        return out

    def variable_of(self, edge: EdgeID) -> VarID:
        return self.edges[edge].variable

    # ------------------------------------------------------------------
    # Message and marginal slots
    # ------------------------------------------------------------------

    def set_forward_message(self, edge: EdgeID, message) -> None:
        self.interfaces[self.edges[edge].tail].message = message

    def set_backward_message(self, edge: EdgeID, message) -> None:
        head = self.edges[edge].head
        if head is None:
            raise NotConnectedError(f"edge {edge} is dangling and carries no backward message")
        self.interfaces[head].message = message

    def forward_message(self, edge: EdgeID):
        return self.interfaces[self.edges[edge].tail].message

    def backward_message(self, edge: EdgeID):
        head = self.edges[edge].head
        return self.interfaces[head].message if head is not None else None

    def ensure_marginal(self, edge: EdgeID, marginal_type: TypeDesc, factory) -> Any:
        """
        Ensure `edge` carries a marginal of `marginal_type`, for in-place updates.

        Args:
            edge: Edge id
            marginal_type: Requested marginal type
            factory: Callable building a fresh value of that type

        Raises:
            StructuralError: the type violates the edge's distribution_type
        """
        e = self.edges[edge]
        if e.distribution_type is not None and unify(e.distribution_type, marginal_type) is None:
            raise StructuralError(
                f"Cannot create marginal of type {marginal_type} since edge {edge} "
                f"({e.variable}) requires {e.distribution_type}"
            )
        current = e.marginal
        if current is None or getattr(current, "type", None) != marginal_type:
            e.marginal = factory()
        return e.marginal

    def clear_messages(self) -> None:
        for iface in self.interfaces:
            iface.message = None

    def __repr__(self) -> str:
        return (
            f"FactorGraph(nodes={len(self.nodes)}, edges={len(self.edges)}, "
            f"variables={len(self.variables)})"
        )
