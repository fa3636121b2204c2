"""
Tests for compilation of all factors, step emission and execution.
"""

import numpy as np
import pytest

from mpcomp import CompilerOptions, run_inference
from mpcomp.compiler.emit import apply_one_by_one
from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.compiler.rules import RuleCatalogue, UpdateRule
from mpcomp.core.registry import AlgorithmContext
from mpcomp.errors import (
    FactorizationError,
    PartitionMismatchError,
    ResolutionError,
    UnresolvedMarginalTypeError,
)
from mpcomp.compiler.factorization import factorize_mean_field
from mpcomp.graph.structure import FactorGraph
from mpcomp.ir.ops import Breaker, BreakerState, UpdateRuleType
from mpcomp.ir.schema import VOID, dist, partitioned
from mpcomp.runtime.distributions import (
    Distribution,
    PartitionedDistribution,
    point_mass,
    point_mass_type,
    vague,
    vague_of,
)
from mpcomp.runtime.execute import compile_algorithm

G = dist("Gaussian")
GAMMA = dist("Gamma")


class TestCompile:
    def test_addition_forward(self, addition_model, catalogue):
        ctx = AlgorithmContext(addition_model)
        RecognitionFactor(ctx, "y")
        algo = compile_algorithm(ctx, catalogue)
        marginals = algo.execute(1)
        y = marginals["y"]
        assert y.family == "Gaussian"
        assert float(y.params["m"]) == pytest.approx(2.0)
        assert float(y.params["v"]) == pytest.approx(2.0)
        assert algo.marginal("y") is y
        assert not algo.initialize

    def test_deferred_factor(self, mean_field_model, catalogue):
        g = mean_field_model
        ctx = AlgorithmContext(g)
        rf_m, rf_w = factorize_mean_field(ctx)
        algo = compile_algorithm(ctx, catalogue)

        # m depends on the marginal type of w, which is published by rf_w
        assert algo.recognition_factors == [rf_m, rf_w]
        assert ctx.marginal_types["m"] == G
        assert ctx.marginal_types["w"] == GAMMA

        marginals = algo.execute(3)
        m = float(marginals["m"].params["m"])
        assert 0.0 < m < 2.0
        assert marginals["w"].family == "Gamma"
        for e in g.variables["m"].edges:
            assert g.edges[e].marginal is marginals["m"]

    def test_no_progress(self, mean_field_model, catalogue):
        g = mean_field_model
        g.edges[g.variables["m"].edges[0]].distribution_type = None
        ctx = AlgorithmContext(g)
        factorize_mean_field(ctx)
        with pytest.raises(UnresolvedMarginalTypeError):
            compile_algorithm(ctx, catalogue)

    def test_reject_colliders(self, collider_model, catalogue):
        ctx = AlgorithmContext(collider_model)
        RecognitionFactor(ctx, ["x1", "x2", "y"])
        with pytest.raises(FactorizationError, match="collider"):
            compile_algorithm(ctx, catalogue, reject_colliders=True)

    def test_colliders_rejected_through_options(self, collider_model, catalogue):
        ctx = AlgorithmContext(collider_model, CompilerOptions(reject_colliders=True))
        RecognitionFactor(ctx, ["x1", "x2", "y"])
        with pytest.raises(FactorizationError):
            compile_algorithm(ctx, catalogue)

    def test_rule_without_procedure(self):
        g = FactorGraph()
        g.add_node("gaussian_prior", 1, name="p")
        g.connect(("p", 0), None, variable="x")
        cat = RuleCatalogue()
        cat.register(UpdateRule("gaussian_prior", UpdateRuleType.SUM_PRODUCT, 0, (VOID,), G))
        ctx = AlgorithmContext(g)
        RecognitionFactor(ctx, "x")
        with pytest.raises(ResolutionError, match="without procedure"):
            compile_algorithm(ctx, cat)


class TestExecute:
    def test_breakers_seeded_once(self, probit_model, catalogue):
        g = probit_model
        ctx = AlgorithmContext(g)
        RecognitionFactor(ctx, "x")
        site = g.interface_of(g.node_by_name("sig").id, 1)
        algo = compile_algorithm(ctx, catalogue, ep_sites=[site])
        assert algo.initialize

        algo.execute(2)
        (rf,) = algo.recognition_factors
        (entry,) = [e for e in rf.schedule if e.breaker is not None]
        assert entry.breaker.state == BreakerState.ITERATING
        x = algo.marginal("x")
        # Prior N(0, 1) times the site message N(0.5, 2)
        assert float(x.params["v"]) == pytest.approx(2.0 / 3.0)
        assert float(x.params["m"]) == pytest.approx(1.0 / 6.0)

    def test_reset(self, addition_model, catalogue):
        g = addition_model
        ctx = AlgorithmContext(g)
        RecognitionFactor(ctx, "y")
        algo = compile_algorithm(ctx, catalogue)
        algo.execute(1)
        algo.reset()
        assert algo.marginals == {}
        assert not algo.initialized
        add_out = g.interface_of(g.node_by_name("add").id, 0)
        assert g.interfaces[add_out].message is None

    def test_default_iterations(self, addition_model, catalogue):
        ctx = AlgorithmContext(addition_model, CompilerOptions(n_iterations=0))
        RecognitionFactor(ctx, "y")
        algo = compile_algorithm(ctx, catalogue)
        marginals = algo.execute()
        # No pass ran: the marginal is still the vague seed
        assert float(marginals["y"].params["v"]) == pytest.approx(ctx.options.huge)

    def test_run_inference(self, mean_field_model, catalogue):
        result = run_inference(mean_field_model, catalogue, n_iterations=5)
        assert set(result.marginals) == {"m", "w"}
        assert result.algorithm.marginals is result.marginals


class TestDistributions:
    def test_vague_gaussian(self):
        d = vague("Gaussian", (2,))
        assert d.type == dist("Gaussian", 2)
        np.testing.assert_allclose(d.params["m"], [0.0, 0.0])

    def test_unknown_family(self):
        d = vague("Wishart", (2, 2))
        assert d.params == {"vague": True}

    def test_vague_needs_one_dimension(self):
        with pytest.raises(ValueError, match="Categorical"):
            vague("Categorical")
        with pytest.raises(ValueError, match="MvGaussian"):
            vague("MvGaussian", (2, 2))
        assert vague("MvGaussian", (3,)).params["v"].shape == (3, 3)

    def test_vague_of_partitioned(self):
        value = vague_of(partitioned(G, 3))
        assert isinstance(value, PartitionedDistribution)
        assert len(value) == 3
        assert value.type == partitioned(G, 3)

    def test_vague_of_void(self):
        with pytest.raises(ValueError):
            vague_of(VOID)

    def test_point_mass(self):
        pm = point_mass([1.0, 2.0])
        assert pm.type == point_mass_type([1.0, 2.0]) == dist("PointMass", 2)

    def test_empty_partition(self):
        with pytest.raises(ValueError):
            PartitionedDistribution(())

    def test_apply_one_by_one(self):
        xs = PartitionedDistribution(tuple(
            Distribution("Gaussian", (), {"m": np.asarray(float(i))}) for i in range(3)
        ))
        ys = PartitionedDistribution(tuple(
            Distribution("Gaussian", (), {"m": np.asarray(10.0 * i)}) for i in range(3)
        ))

        def add(node, out, x, y):
            assert out is None
            return Distribution("Gaussian", (), {"m": x.params["m"] + y.params["m"]})

        out = apply_one_by_one(add, None, [None, xs, ys])
        assert [float(f.params["m"]) for f in out.factors] == [0.0, 11.0, 22.0]

    def test_one_by_one_mismatch(self):
        a = PartitionedDistribution((vague("Gaussian"),) * 2)
        b = PartitionedDistribution((vague("Gaussian"),) * 3)
        with pytest.raises(PartitionMismatchError):
            apply_one_by_one(lambda node, x, y: x, None, [a, b])

    def test_one_by_one_plain_argument(self):
        a = PartitionedDistribution((vague("Gaussian"),) * 2)
        with pytest.raises(PartitionMismatchError):
            apply_one_by_one(lambda node, x, y: x, None, [a, vague("Gaussian")])

class TestBreaker:
    def test_state_machine(self):
        b = Breaker(family="Gaussian", dims=(), reason="loop")
        with pytest.raises(RuntimeError):
            b.advance()
        assert b.seed("v") == "v"
        assert b.state == BreakerState.SEEDED
        with pytest.raises(RuntimeError):
            b.seed("v")
        b.advance()
        assert b.state == BreakerState.ITERATING
        b.reset()
        assert b.state == BreakerState.UNINITIALIZED
