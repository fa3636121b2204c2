"""
Tests for graph structure.
"""

import numpy as np
import pytest

from mpcomp.errors import NotConnectedError, StructuralError
from mpcomp.graph.structure import FactorGraph
from mpcomp.ir.schema import dist
from mpcomp.runtime.distributions import vague


class TestConstruction:
    def test_connect_binds_partners(self):
        g = FactorGraph()
        a = g.add_node("gaussian_prior", 1, name="a")
        b = g.add_node("sink", 1, name="b")
        e = g.connect(g.interface_of(a, 0), g.interface_of(b, 0), variable="x")

        tail, head = g.interface_of(a, 0), g.interface_of(b, 0)
        assert g.partner(tail) == head
        assert g.partner(head) == tail
        assert g.edge_of(tail) == e
        assert g.variables["x"].edges == [e]

    def test_default_variable_name(self):
        g = FactorGraph()
        g.add_node("f", 1, name="a")
        g.add_node("f", 1, name="b")
        e = g.connect(("a", 0), ("b", 0))
        assert g.variable_of(e) == f"x_{e}"

    def test_same_node_rejected(self):
        g = FactorGraph()
        n = g.add_node("equality", 3, name="eq")
        with pytest.raises(StructuralError):
            g.connect(g.interface_of(n, 0), g.interface_of(n, 1))

    def test_rebinding_rejected(self):
        g = FactorGraph()
        g.add_node("f", 1, name="a")
        g.add_node("f", 1, name="b")
        g.add_node("f", 1, name="c")
        g.connect(("a", 0), ("b", 0))
        with pytest.raises(StructuralError, match="repositioned"):
            g.connect(("a", 0), ("c", 0))

    def test_dangling_edge_cannot_be_rebound(self):
        g = FactorGraph()
        g.add_node("f", 1, name="a")
        g.add_node("f", 1, name="b")
        g.connect(("a", 0), None, variable="y")
        with pytest.raises(StructuralError):
            g.connect(("b", 0), ("a", 0))

    def test_duplicate_name(self):
        g = FactorGraph()
        g.add_node("f", 1, name="a")
        with pytest.raises(StructuralError):
            g.add_node("f", 1, name="a")

    def test_free_interface_on_symmetric_node(self):
        g = FactorGraph()
        eq = g.add_node("equality", 3, name="eq", deterministic=True, symmetric=True)
        g.add_node("f", 1, name="a")
        g.add_node("f", 1, name="b")
        g.connect(("node", eq), ("a", 0))
        g.connect(("node", eq), ("b", 0))
        assert g.interfaces[g.interface_of(eq, 0)].partner is not None
        assert g.interfaces[g.interface_of(eq, 1)].partner is not None
        assert g.interfaces[g.interface_of(eq, 2)].partner is None

    def test_free_interface_on_asymmetric_node(self):
        g = FactorGraph()
        n = g.add_node("gaussian", 3, name="n")
        with pytest.raises(StructuralError, match="non-symmetrical"):
            g.first_free_interface(n)

    def test_clamp(self):
        g = FactorGraph()
        c = g.add_clamp([1.0, 2.0], name="obs")
        node = g.nodes[c]
        assert node.is_clamp
        assert node.deterministic
        assert node.dims == (2,)
        np.testing.assert_allclose(node.value, [1.0, 2.0])


class TestLookup:
    def test_partner_of_unbound_interface(self):
        g = FactorGraph()
        n = g.add_node("gaussian", 3, name="n", handles=("out", "m", "v"))
        with pytest.raises(NotConnectedError) as exc:
            g.partner(g.interface_of(n, 1))
        assert "Interface 1 (m) of gaussian n" in str(exc.value)
        # Also catchable as a lookup failure
        with pytest.raises(KeyError):
            g.edge_of(g.interface_of(n, 2))

    def test_unknown_variable(self):
        g = FactorGraph()
        with pytest.raises(KeyError):
            g.edges_of_variables(["nope"])

    def test_nodes_of_dangling_edge(self):
        g = FactorGraph()
        a = g.add_node("f", 1, name="a")
        e = g.connect(("a", 0), None)
        assert g.edges[e].is_dangling
        assert g.nodes_of_edges([e]) == {a}
        assert g.backward_message(e) is None

    def test_messages(self):
        g = FactorGraph()
        g.add_node("f", 1, name="a")
        g.add_node("f", 1, name="b")
        e = g.connect(("a", 0), ("b", 0))
        g.set_forward_message(e, "fwd")
        g.set_backward_message(e, "bwd")
        assert g.forward_message(e) == "fwd"
        assert g.backward_message(e) == "bwd"
        g.clear_messages()
        assert g.forward_message(e) is None


class TestMarginals:
    def test_ensure_marginal_builds_once(self):
        g = FactorGraph()
        g.add_node("f", 1, name="a")
        g.add_node("f", 1, name="b")
        e = g.connect(("a", 0), ("b", 0), distribution_type=dist("Gaussian"))

        first = g.ensure_marginal(e, dist("Gaussian"), lambda: vague("Gaussian"))
        second = g.ensure_marginal(e, dist("Gaussian"), lambda: vague("Gaussian"))
        assert first is second

    def test_incompatible_family(self):
        g = FactorGraph()
        g.add_node("f", 1, name="a")
        g.add_node("f", 1, name="b")
        e = g.connect(("a", 0), ("b", 0), distribution_type=dist("Gaussian"))
        with pytest.raises(StructuralError):
            g.ensure_marginal(e, dist("Gamma"), lambda: vague("Gamma"))
