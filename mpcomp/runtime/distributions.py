"""
mpcomp/runtime/distributions.py

Runtime values carried by messages and marginals.

The numeric content of distributions is out of scope: a Distribution is a
family name, its dimensions and a parameter dict of numpy arrays, which
update procedures read and write as they see fit. This module provides the
values the compiler itself has to create:

- vague (non-informative) seeds for breakers and initial marginals
- point masses for observed (clamped) values
- partitioned values for one-by-one processing
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Sequence, Tuple

import numpy as np

from mpcomp.config import DEFAULT_OPTIONS, CompilerOptions
from mpcomp.ir.schema import Kind, TypeDesc, dist, partitioned

logger = logging.getLogger(__name__)

POINT_MASS = "PointMass"


@dataclass
class Distribution:
    """
    A distribution value.

    Attributes:
        family: Family name (matches TypeDesc family names)
        dims: Dimensions, part of the value's type
        params: Parameter name -> numpy array
    """
    family: str
    dims: Tuple[int, ...] = ()
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> TypeDesc:
        return dist(self.family, *self.dims)

    def __repr__(self) -> str:
        keys = ", ".join(sorted(self.params))
        return f"Distribution({self.type!r}; {keys})"


@dataclass
class PartitionedDistribution:
    """K independent factors of one element type."""
    factors: Tuple[Any, ...]

    def __post_init__(self):
        self.factors = tuple(self.factors)
        if not self.factors:
            raise ValueError("a partitioned distribution needs at least one factor")

    @property
    def type(self) -> TypeDesc:
        return partitioned(self.factors[0].type, len(self.factors))

    def __len__(self) -> int:
        return len(self.factors)


VagueSeed = Callable[[Tuple[int, ...], CompilerOptions], Dict[str, Any]]

_VAGUE: Dict[str, VagueSeed] = {}


def register_vague(family: str):
    """Decorator registering the vague parameter seed of `family`."""
    def decorate(fn: VagueSeed) -> VagueSeed:
        _VAGUE[family] = fn
        return fn
    return decorate


def _single_dimension(family: str, dims: Sequence[int]) -> Tuple[int]:
    dims = tuple(dims)
    if len(dims) != 1:
        raise ValueError(f"vague {family} needs exactly one dimension, got {dims!r}")
    return dims


@register_vague("Gaussian")
def _vague_gaussian(dims, options):
    return {"m": np.zeros(dims), "v": np.full(dims, options.huge)}


@register_vague("MvGaussian")
def _vague_mv_gaussian(dims, options):
    (d,) = _single_dimension("MvGaussian", dims)
    return {"m": np.zeros(d), "v": options.huge * np.eye(d)}


@register_vague("Gamma")
def _vague_gamma(dims, options):
    return {"a": np.ones(dims), "b": np.full(dims, options.tiny)}


@register_vague("LogNormal")
def _vague_log_normal(dims, options):
    return {"m": np.zeros(dims), "s": np.full(dims, options.huge)}


@register_vague("Beta")
def _vague_beta(dims, options):
    return {"a": np.ones(dims), "b": np.ones(dims)}


@register_vague("Categorical")
def _vague_categorical(dims, options):
    (k,) = _single_dimension("Categorical", dims)
    return {"p": np.full(k, 1.0 / k)}


def vague(
    family: str,
    dims: Sequence[int] = (),
    options: CompilerOptions = DEFAULT_OPTIONS,
) -> Distribution:
    """
    Non-informative distribution of `family` with dimensions `dims`.

    Families without a registered seed get an empty parameter dict marked
    vague, so that update procedures can recognise the seed.

    Raises:
        ValueError: MvGaussian or Categorical seeds without exactly one dimension
    """
    dims = tuple(dims)
    seed = _VAGUE.get(family)
    if seed is None:
        logger.debug("no vague seed registered for %s", family)
        return Distribution(family, dims, {"vague": True})
    return Distribution(family, dims, seed(dims, options))


def vague_of(t: TypeDesc, options: CompilerOptions = DEFAULT_OPTIONS):
    """Vague value of type `t` (a distribution, partitioned, or message thereof)."""
    p = t.payload
    if p.kind == Kind.PARTITIONED:
        element, count = p.args
        return PartitionedDistribution(tuple(vague_of(element, options) for _ in range(count)))
    if p.kind != Kind.DIST:
        raise ValueError(f"cannot build a vague value of type {t!r}")
    return vague(p.family, p.dims, options)


def point_mass_type(value) -> TypeDesc:
    return dist(POINT_MASS, *np.shape(value))


def point_mass(value) -> Distribution:
    """Point mass at an observed value."""
    arr = np.asarray(value)
    return Distribution(POINT_MASS, arr.shape, {"value": arr})
