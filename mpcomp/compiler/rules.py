"""
mpcomp/compiler/rules.py

Update-rule signatures and the rule catalogue.

A rule declares the node kind it applies to, the update-rule type, the
target interface index (None for marginal rules), a pattern for the
inbound types (one per interface, VOID at the outbound position) and the
outbound type it produces. Patterns may contain unification variables,
e.g. dist("MvGaussian", tvar("dims")). Approximate rules carry the name
of their approximation method (e.g. "MomentMatching").

The procedure is the callable computing the outbound value; it is invoked
as procedure(node, *inbound_values) and its numeric content is the
caller's business.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from mpcomp.errors import ResolutionError
from mpcomp.ir.ops import UpdateRuleType
from mpcomp.ir.schema import Bindings, TypeDesc, is_ground, substitute

PRODUCT_KIND = "product"

RuleKey = Tuple[str, UpdateRuleType, Optional[int]]


@dataclass(frozen=True)
class UpdateRule:
    """
    A registered update rule.

    Attributes:
        node_kind: Node kind the rule applies to
        rule_type: Update-rule type
        outbound_index: Target interface index; None for marginal rules
        inbound: Inbound type pattern, one entry per node interface
        outbound: Outbound type pattern, or callable (node, bindings) -> TypeDesc
        approximation: Approximation method of approximate rules
        procedure: Callable computing the outbound value
    """
    node_kind: str
    rule_type: UpdateRuleType
    outbound_index: Optional[int]
    inbound: Tuple[TypeDesc, ...]
    outbound: Union[TypeDesc, Callable[[Any, Bindings], TypeDesc]]
    approximation: Optional[str] = None
    procedure: Optional[Callable[..., Any]] = field(default=None, compare=False)

    @property
    def key(self) -> RuleKey:
        return (self.node_kind, self.rule_type, self.outbound_index)

    @property
    def signature(self) -> Tuple:
        """Inbounds, outbound and approximation; callable outbounds compare by identity."""
        outbound = self.outbound if isinstance(self.outbound, TypeDesc) else id(self.outbound)
        return (self.inbound, outbound, self.approximation)

    @property
    def is_approximate(self) -> bool:
        return self.approximation is not None

    def outbound_for(self, node, bindings: Bindings) -> TypeDesc:
        """Concrete outbound type under `bindings`."""
        if isinstance(self.outbound, TypeDesc):
            out = substitute(self.outbound, bindings)
        else:
            out = self.outbound(node, bindings)
        if not is_ground(out):
            raise ResolutionError(
                f"rule {self.node_kind}/{self.rule_type.name}/{self.outbound_index} "
                f"leaves outbound type {out!r} unresolved"
            )
        return out


class RuleCatalogue:
    """
    Registry of update rules per (node kind, rule type, target index).

    Rules keep their registration order; duplicate signatures are rejected.
    """

    def __init__(self):
        self._rules: Dict[RuleKey, List[UpdateRule]] = {}

    def register(self, rule: UpdateRule) -> UpdateRule:
        bucket = self._rules.setdefault(rule.key, [])
        for r in bucket:
            if r.signature == rule.signature:
                raise ValueError(
                    f"duplicate rule for {rule.node_kind}/{rule.rule_type.name}/"
                    f"{rule.outbound_index} with inbounds {rule.inbound!r} "
                    f"and outbound {rule.outbound!r}"
                )
        bucket.append(rule)
        return rule

    def rule(
        self,
        node_kind: str,
        rule_type: UpdateRuleType,
        outbound_index: Optional[int],
        inbound: Sequence[TypeDesc],
        outbound,
        approximation: Optional[str] = None,
    ):
        """
        Decorator registering the decorated function as a rule procedure.

        Example:
            >>> @catalogue.rule("equality", UpdateRuleType.SUM_PRODUCT, 2,
            ...                 (message(GAUSS), message(GAUSS), VOID), GAUSS)
            ... def equality_gaussian(node, msg_1, msg_2, _):
            ...     ...
        """
        def decorate(fn):
            self.register(UpdateRule(
                node_kind=node_kind,
                rule_type=rule_type,
                outbound_index=outbound_index,
                inbound=tuple(inbound),
                outbound=outbound,
                approximation=approximation,
                procedure=fn,
            ))
            return fn
        return decorate

    def candidates(
        self,
        node_kind: str,
        rule_type: UpdateRuleType,
        outbound_index: Optional[int],
        *,
        approximate: bool = False,
    ) -> List[UpdateRule]:
        """Exact (or approximate) rules registered under the key."""
        return [
            r for r in self._rules.get((node_kind, rule_type, outbound_index), ())
            if r.is_approximate == approximate
        ]

    def __len__(self) -> int:
        return sum(len(b) for b in self._rules.values())

    def __iter__(self):
        for bucket in self._rules.values():
            yield from bucket
