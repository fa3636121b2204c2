"""
Tests for collider detection.
"""

from mpcomp.compiler.collider import connected_components, has_collider, is_prior_node
from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.core.registry import AlgorithmContext


def _edges(g, *variables):
    return g.edges_of_variables(variables)


class TestCollider:
    def test_two_priors_into_merge_node(self, collider_model):
        ctx = AlgorithmContext(collider_model)
        rf = RecognitionFactor(ctx, ["x1", "x2", "y"])
        assert rf.has_collider()

    def test_single_prior_chain(self, chain_model):
        ctx = AlgorithmContext(chain_model)
        rf = RecognitionFactor(ctx, "x0")
        assert rf.internal_edges == _edges(chain_model, "x0", "x1", "x2")
        assert not rf.has_collider()

    def test_prior_node(self, collider_model):
        g = collider_model
        component = _edges(g, "x1", "x2", "y")
        assert is_prior_node(g, g.node_by_name("a").id, component)
        assert not is_prior_node(g, g.node_by_name("add").id, component)

    def test_components_joined_through_merge_node(self, collider_model):
        g = collider_model
        # x1 and x2 meet at the addition node even without y
        internal = _edges(g, "x1") | _edges(g, "x2")
        components = list(connected_components(g, internal))
        assert len(components) == 1
        assert has_collider(g, internal)

        assert not has_collider(g, _edges(g, "x1"))

    def test_monotone_in_component(self, collider_model):
        g = collider_model
        sub = _edges(g, "x1", "x2")
        assert has_collider(g, sub)
        assert has_collider(g, sub | _edges(g, "y"))

    def test_no_internal_edges(self, collider_model):
        assert not has_collider(collider_model, set())
