"""
Shared fixtures: small models and a rule catalogue with plain procedures.
"""

import numpy as np
import pytest

from mpcomp.compiler.rules import PRODUCT_KIND, RuleCatalogue
from mpcomp.graph.structure import FactorGraph
from mpcomp.ir.ops import UpdateRuleType
from mpcomp.ir.schema import VOID, dist, message
from mpcomp.runtime.distributions import Distribution

G = dist("Gaussian")
GAMMA = dist("Gamma")
PM = dist("PointMass")

SP = UpdateRuleType.SUM_PRODUCT
VMP = UpdateRuleType.VARIATIONAL
EP = UpdateRuleType.EXPECTATION_PROPAGATION
PRODUCT = UpdateRuleType.PRODUCT


def gaussian(m, v):
    return Distribution("Gaussian", (), {"m": np.asarray(m, dtype=float), "v": np.asarray(v, dtype=float)})


def gamma(a, b):
    return Distribution("Gamma", (), {"a": np.asarray(a, dtype=float), "b": np.asarray(b, dtype=float)})


def value(point_mass):
    return float(point_mass.params["value"])


@pytest.fixture
def catalogue():
    cat = RuleCatalogue()

    @cat.rule("gaussian_prior", SP, 0, (VOID,), G)
    def prior(node, _):
        return gaussian(1.0, 1.0)

    @cat.rule("addition", SP, 0, (VOID, message(G), message(G)), G)
    def addition_forward(node, _, x, z):
        return gaussian(x.params["m"] + z.params["m"], x.params["v"] + z.params["v"])

    @cat.rule("gaussian", VMP, 0, (VOID, PM, PM), G)
    def gaussian_out(node, _, m, v):
        return gaussian(value(m), value(v))

    @cat.rule("gaussian", VMP, 1, (PM, VOID, GAMMA), G)
    def gaussian_mean(node, y, _, w):
        return gaussian(value(y), w.params["b"] / w.params["a"])

    @cat.rule("gaussian", VMP, 1, (G, VOID, PM), G)
    def gaussian_mean_from_out(node, x, _, v):
        return gaussian(x.params["m"], x.params["v"] + value(v))

    @cat.rule("gaussian", VMP, 2, (PM, G, VOID), GAMMA)
    def gaussian_precision(node, y, m, _):
        return gamma(1.5, 0.5 * ((value(y) - m.params["m"]) ** 2 + m.params["v"]))

    @cat.rule("gamma", VMP, 0, (VOID, PM, PM), GAMMA)
    def gamma_out(node, _, a, b):
        return gamma(value(a), value(b))

    @cat.rule("probit", EP, 1, (PM, message(G)), G)
    def probit_in(node, y, x):
        return gaussian(0.5, 2.0)

    @cat.rule("nonlinear", SP, 0, (VOID, message(G)), G)
    def nonlinear_out(node, _, x):
        return gaussian(np.tanh(x.params["m"]), x.params["v"])

    @cat.rule("nonlinear", SP, 1, (VOID, message(G)), G)
    def nonlinear_in(node, _, x):
        return x

    @cat.rule(PRODUCT_KIND, PRODUCT, None, (message(G), message(G)), G)
    def gaussian_product(a, b):
        wa, wb = 1.0 / a.params["v"], 1.0 / b.params["v"]
        v = 1.0 / (wa + wb)
        return gaussian(v * (wa * a.params["m"] + wb * b.params["m"]), v)

    @cat.rule(PRODUCT_KIND, PRODUCT, None, (message(GAMMA), message(GAMMA)), GAMMA)
    def gamma_product(a, b):
        return gamma(a.params["a"] + b.params["a"] - 1.0, a.params["b"] + b.params["b"])

    return cat


def _prior_with_clamps(g, kind, name, a, b):
    g.add_node(kind, 3, name=name)
    g.add_clamp(a, name=f"{name}_1")
    g.add_clamp(b, name=f"{name}_2")
    g.connect((f"{name}_1", 0), (name, 1))
    g.connect((f"{name}_2", 0), (name, 2))


@pytest.fixture
def addition_model():
    """Two single-interface priors feeding an addition node; y is dangling."""
    g = FactorGraph()
    g.add_node("gaussian_prior", 1, name="px")
    g.add_node("gaussian_prior", 1, name="pz")
    g.add_node("addition", 3, name="add", deterministic=True, handles=("out", "in1", "in2"))
    g.connect(("px", 0), ("add", 1), variable="x")
    g.connect(("pz", 0), ("add", 2), variable="z")
    g.connect(("add", 0), None, variable="y")
    return g


@pytest.fixture
def collider_model():
    """Two Gaussian priors with clamped parameters merging in an addition node."""
    g = FactorGraph()
    _prior_with_clamps(g, "gaussian", "a", 0.0, 1.0)
    _prior_with_clamps(g, "gaussian", "b", 0.0, 1.0)
    g.add_node("addition", 3, name="add", deterministic=True)
    g.connect(("a", 0), ("add", 1), variable="x1")
    g.connect(("b", 0), ("add", 2), variable="x2")
    g.connect(("add", 0), None, variable="y")
    return g


@pytest.fixture
def chain_model():
    """Prior -> two deterministic nodes -> stochastic node."""
    g = FactorGraph()
    _prior_with_clamps(g, "gaussian", "p", 0.0, 1.0)
    g.add_node("gain", 2, name="d1", deterministic=True)
    g.add_node("gain", 2, name="d2", deterministic=True)
    g.add_node("gaussian", 3, name="s")
    g.add_clamp(1.0, name="s_2")
    g.connect(("p", 0), ("d1", 1), variable="x0")
    g.connect(("d1", 0), ("d2", 1), variable="x1")
    g.connect(("d2", 0), ("s", 1), variable="x2")
    g.connect(("s_2", 0), ("s", 2))
    g.connect(("s", 0), None, variable="y")
    return g


@pytest.fixture
def probit_model():
    """Gaussian prior on x observed through a probit node."""
    g = FactorGraph()
    _prior_with_clamps(g, "gaussian", "px", 0.0, 1.0)
    g.add_node("probit", 2, name="sig")
    g.add_clamp(1.0, name="obs")
    g.connect(("px", 0), ("sig", 1), variable="x")
    g.connect(("sig", 0), ("obs", 0), variable="y")
    return g


@pytest.fixture
def mean_field_model():
    """Gaussian observation with unknown mean m and precision w."""
    g = FactorGraph()
    _prior_with_clamps(g, "gaussian", "pm", 0.0, 1.0)
    _prior_with_clamps(g, "gamma", "pw", 1.0, 1.0)
    g.add_node("gaussian", 3, name="obs")
    g.add_clamp(2.0, name="y_obs")
    g.connect(("pw", 0), ("obs", 2), variable="w")
    g.connect(("pm", 0), ("obs", 1), variable="m", distribution_type=G)
    g.connect(("obs", 0), ("y_obs", 0), variable="y")
    return g
