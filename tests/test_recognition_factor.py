"""
Tests for extension, clusters, recognition factors and factorizations.
"""

import pytest

from mpcomp.compiler.extend import Cluster, build_clusters, extend, nodes_connected_to_external_edges
from mpcomp.compiler.factorization import factorize_mean_field, factorize_structured, is_observed
from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.core.registry import AlgorithmContext, IDRegistry


def _edge(g, variable):
    (e,) = g.variables[variable].edges
    return e


class TestExtend:
    def test_closure_through_deterministic_node(self, addition_model):
        g = addition_model
        closure = extend(g, [_edge(g, "y")])
        assert closure == {_edge(g, "x"), _edge(g, "y"), _edge(g, "z")}

    def test_stops_at_soft_factors(self, chain_model):
        g = chain_model
        closure = extend(g, [_edge(g, "x1")])
        assert closure == {_edge(g, v) for v in ("x0", "x1", "x2")}

    def test_through_all_nodes(self, chain_model):
        g = chain_model
        closure = extend(g, [_edge(g, "x1")], terminate_at_soft_factors=False)
        assert closure == set(range(len(g.edges)))

    def test_limit_set(self, chain_model):
        g = chain_model
        limit = {_edge(g, "x0"), _edge(g, "x1")}
        closure = extend(g, [_edge(g, "x1")], terminate_at_soft_factors=False, limit_set=limit)
        assert closure == limit

    @pytest.mark.parametrize("terminate", [True, False])
    def test_idempotent(self, chain_model, terminate):
        g = chain_model
        for e in range(len(g.edges)):
            once = extend(g, [e], terminate_at_soft_factors=terminate)
            twice = extend(g, once, terminate_at_soft_factors=terminate)
            assert once == twice


class TestClusters:
    def test_interface_order(self, mean_field_model):
        g = mean_field_model
        w, m = _edge(g, "w"), _edge(g, "m")
        # w was connected first, so it has the smaller edge id
        assert w < m

        internal = {w, m}
        boundary = nodes_connected_to_external_edges(g, internal)
        clusters = build_clusters(g, internal, boundary)

        obs = g.node_by_name("obs").id
        assert clusters == [Cluster(node=obs, edges=(m, w))]

    def test_cluster_edges_follow_interfaces(self, mean_field_model):
        g = mean_field_model
        ctx = AlgorithmContext(g)
        rf = RecognitionFactor(ctx, ["m", "w"])
        for cluster in rf.clusters:
            ifaces = g.nodes[cluster.node].interfaces
            positions = [
                next(g.interfaces[i].index for i in ifaces if g.interfaces[i].edge == e)
                for e in cluster.edges
            ]
            assert positions == sorted(positions)

    def test_single_edge_makes_no_cluster(self, mean_field_model):
        g = mean_field_model
        ctx = AlgorithmContext(g)
        rf = RecognitionFactor(ctx, "m")
        assert rf.clusters == set()


class TestRecognitionFactor:
    def test_addition(self, addition_model):
        g = addition_model
        ctx = AlgorithmContext(g)
        rf = RecognitionFactor(ctx, "y")
        assert rf.id == "recognitionfactor_1"
        assert rf.internal_edges == {_edge(g, v) for v in ("x", "y", "z")}
        assert rf.boundary_nodes == set()
        assert rf.variables == {"y"}
        assert ctx.recognition_factors == {rf.id: rf}

    def test_recognition_variables(self, chain_model):
        g = chain_model
        ctx = AlgorithmContext(g)
        rf = RecognitionFactor(ctx, "x1")
        # Boundary nodes p and s need the marginals of x0 and x2
        assert rf.variables == {"x0", "x1", "x2"}
        assert rf.boundary_nodes == {g.node_by_name("p").id, g.node_by_name("s").id}
        assert ctx.recognition_factor_of(_edge(g, "x0")) is rf
        assert ctx.recognition_factor_of(_edge(g, "y")) == _edge(g, "y")

    def test_cluster_registration(self, mean_field_model):
        g = mean_field_model
        ctx = AlgorithmContext(g)
        rf = RecognitionFactor(ctx, ["m", "w"])
        obs = g.node_by_name("obs").id
        (cluster,) = rf.clusters
        assert ctx.marginal_key(obs, _edge(g, "m")) == cluster
        assert ctx.marginal_key(obs, _edge(g, "y")) == "y"
        assert ctx.local_clusters(obs) == ["y", cluster, cluster]
        factorization = ctx.local_recognition_factorization(obs)
        assert factorization[rf] == cluster

    def test_empty(self, addition_model):
        ctx = AlgorithmContext(addition_model)
        rf = RecognitionFactor(ctx)
        assert rf.is_empty
        assert rf.variables == set()

    def test_explicit_id(self, addition_model):
        ctx = AlgorithmContext(addition_model)
        RecognitionFactor(ctx, "y", id="q")
        with pytest.raises(KeyError):
            RecognitionFactor(ctx, "x", id="q")

    def test_unknown_variable(self, addition_model):
        ctx = AlgorithmContext(addition_model)
        with pytest.raises(KeyError):
            RecognitionFactor(ctx, "nope")


class TestPartition:
    def test_disjoint_interiors(self, mean_field_model):
        g = mean_field_model
        ctx = AlgorithmContext(g)
        rf_m = RecognitionFactor(ctx, "m")
        rf_w = RecognitionFactor(ctx, "w")
        assert rf_m.internal_edges.isdisjoint(rf_w.internal_edges)

    def test_shared_only_at_boundary(self, chain_model):
        g = chain_model
        ctx = AlgorithmContext(g)
        rf_a = RecognitionFactor(ctx, "x0")
        rf_b = RecognitionFactor(ctx, "y")
        shared = rf_a.internal_edges & rf_b.internal_edges
        requested = g.edges_of_variables(["x0"]) | g.edges_of_variables(["y"])
        assert shared <= requested


class TestFactorization:
    def test_mean_field(self, mean_field_model):
        g = mean_field_model
        ctx = AlgorithmContext(g)
        factors = factorize_mean_field(ctx)
        assert [sorted(rf.variables) for rf in factors] == [["m"], ["w"]]
        assert is_observed(ctx, "y")

    def test_mean_field_skips_absorbed_variables(self, addition_model):
        ctx = AlgorithmContext(addition_model)
        factors = factorize_mean_field(ctx)
        # x absorbs y and z through the addition node
        assert len(factors) == 1
        assert len(factors[0].internal_edges) == 3

    def test_structured(self, mean_field_model):
        ctx = AlgorithmContext(mean_field_model)
        (rf,) = factorize_structured(ctx, [["m", "w"]])
        assert rf.variables == {"m", "w"}
        assert len(rf.clusters) == 1


class TestIDRegistry:
    def test_counters_per_prefix(self):
        ids = IDRegistry()
        assert ids.generate_id("a") == "a_1"
        assert ids.generate_id("a") == "a_2"
        assert ids.generate_id("b") == "b_1"
