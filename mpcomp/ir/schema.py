"""
mpcomp/ir/schema.py

Type descriptions for messages, marginals and rule signatures.

Key types:
- Kind: tag of a type description (distribution, message, partitioned, ...)
- TypeDesc: tagged-variant description; rule signatures use the same
  representation with VAR entries acting as unification variables
- unify / substitute: pattern matching of declared signatures against the
  concrete types of a call

Examples:
    dist("Gaussian")                       univariate Gaussian
    dist("MvGaussian", tvar("dims"))       MvGaussian{dims} in a signature
    message(dist("MvGaussian", 2))         Message{MvGaussian{2}}
    partitioned(dist("Gaussian"), 3)       3 independent Gaussian factors
    approximation(dist("Gaussian"), "MomentMatching")
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

Bindings = Dict[str, Any]


class Kind(Enum):
    """Tag of a type description."""
    VOID = 1          # Absent inbound; marks the outbound position
    ANY = 2           # Wildcard
    VAR = 3           # Unification variable (e.g. dims)
    DIST = 4          # Distribution family with parameters
    MESSAGE = 5       # Message carrying a payload
    PARTITIONED = 6   # K independent factors of one element type
    APPROX = 7        # Approximation of a family by a method


@dataclass(frozen=True)
class TypeDesc:
    """
    A type description.

    Attributes:
        kind: Variant tag
        name: Family name (DIST), variable name (VAR) or method (APPROX)
        args: Parameters; ints, strings or nested TypeDescs
    """
    kind: Kind
    name: str = ""
    args: Tuple[Any, ...] = ()

    def __repr__(self) -> str:
        if self.kind == Kind.VOID:
            return "Void"
        if self.kind == Kind.ANY:
            return "Any"
        if self.kind == Kind.VAR:
            return f"<{self.name}>"
        if self.kind == Kind.MESSAGE:
            return f"Message{{{self.args[0]!r}}}"
        if self.kind == Kind.PARTITIONED:
            return f"Partitioned{{{self.args[0]!r},{self.args[1]!r}}}"
        if self.kind == Kind.APPROX:
            return f"Approximation{{{self.args[0]!r},{self.name}}}"
        if not self.args:
            return self.name
        return f"{self.name}{{{','.join(repr(a) for a in self.args)}}}"

    @property
    def payload(self) -> "TypeDesc":
        """Strip Message and Approximation wrappers."""
        t = self
        while t.kind in (Kind.MESSAGE, Kind.APPROX):
            t = t.args[0]
        return t

    @property
    def family(self) -> str:
        """Family name of the payload (element family for partitioned types)."""
        p = self.payload
        if p.kind == Kind.PARTITIONED:
            return p.args[0].payload.family
        return p.name

    @property
    def dims(self) -> Tuple[int, ...]:
        """Integer parameters of the payload, read as its dimensions."""
        p = self.payload
        if p.kind == Kind.PARTITIONED:
            return p.args[0].payload.dims
        return tuple(a for a in p.args if isinstance(a, int))

    @property
    def is_partitioned(self) -> bool:
        return self.payload.kind == Kind.PARTITIONED


VOID = TypeDesc(Kind.VOID)
ANY = TypeDesc(Kind.ANY)


def dist(family: str, *params: Any) -> TypeDesc:
    return TypeDesc(Kind.DIST, family, tuple(params))


def tvar(name: str) -> TypeDesc:
    return TypeDesc(Kind.VAR, name)


def message(payload: TypeDesc) -> TypeDesc:
    return TypeDesc(Kind.MESSAGE, "", (payload,))


def partitioned(element: TypeDesc, count: Any) -> TypeDesc:
    return TypeDesc(Kind.PARTITIONED, "", (element, count))


def approximation(target: TypeDesc, method: str) -> TypeDesc:
    return TypeDesc(Kind.APPROX, method, (target,))


def unify(pattern: Any, concrete: Any, bindings: Optional[Bindings] = None) -> Optional[Bindings]:
    """
    Unify a declared pattern with a concrete type.

    VAR entries bind to whatever occupies their position (a type or a plain
    parameter such as a dimension); a variable bound twice must bind to the
    same value.

    Args:
        pattern: Declared type (may contain VAR / ANY)
        concrete: Observed type or parameter
        bindings: Bindings accumulated so far (not mutated)

    Returns:
        Extended bindings, or None when the two do not unify
    """
    b: Bindings = dict(bindings) if bindings else {}
    return b if _unify(pattern, concrete, b) else None


def _unify(pattern: Any, concrete: Any, b: Bindings) -> bool:
    if isinstance(pattern, TypeDesc):
        if pattern.kind == Kind.ANY:
            return True
        if pattern.kind == Kind.VAR:
            if pattern.name in b:
                return b[pattern.name] == concrete
            b[pattern.name] = concrete
            return True
        if not isinstance(concrete, TypeDesc):
            return False
        if pattern.kind != concrete.kind or pattern.name != concrete.name:
            return False
        if len(pattern.args) != len(concrete.args):
            return False
        return all(_unify(p, c, b) for p, c in zip(pattern.args, concrete.args))
    if isinstance(concrete, TypeDesc):
        return False
    return pattern == concrete


def substitute(pattern: Any, bindings: Bindings) -> Any:
    """Replace bound VAR entries in `pattern`; unbound variables are kept."""
    if not isinstance(pattern, TypeDesc):
        return pattern
    if pattern.kind == Kind.VAR:
        return bindings.get(pattern.name, pattern)
    if not pattern.args:
        return pattern
    return TypeDesc(pattern.kind, pattern.name, tuple(substitute(a, bindings) for a in pattern.args))


def is_ground(t: Any) -> bool:
    """True when `t` contains no unification variables or wildcards."""
    if not isinstance(t, TypeDesc):
        return True
    if t.kind in (Kind.VAR, Kind.ANY):
        return False
    return all(is_ground(a) for a in t.args)
