"""
mpcomp/compiler/resolver.py

Outbound-type inference and rule selection.

Given a node, a target (interface index, or None for a marginal) and the
observed inbound types, find the registered rule and outbound type:

1. Exact rules whose inbound pattern unifies with the call
2. Narrowing by a pre-set outbound type (and approximation) constraint
3. Fallback to approximate rules under the same discipline, only when no
   exact rule matches the inbounds
4. One-by-one processing of partitioned inbounds: resolve on the element
   types and rebuild a partitioned outbound of the same factor count
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from mpcomp.compiler.rules import PRODUCT_KIND, RuleCatalogue, UpdateRule
from mpcomp.errors import AmbiguousRuleError, NoApplicableRuleError, PartitionMismatchError
from mpcomp.ir.ops import UpdateRuleType
from mpcomp.ir.schema import Bindings, Kind, TypeDesc, message, partitioned, unify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of rule resolution.

    Attributes:
        outbound_type: Resolved outbound type
        rule: Chosen rule (operating on element types when one_by_one)
        approximation: Approximation method, None for exact rules
        one_by_one: Rule is applied per factor of partitioned inbounds
        bindings: Unification variable bindings of the chosen rule
        swapped: Product operands are passed in reverse order
    """
    outbound_type: TypeDesc
    rule: UpdateRule
    approximation: Optional[str] = None
    one_by_one: bool = False
    bindings: Tuple[Tuple[str, object], ...] = ()
    swapped: bool = False


Match = Tuple[TypeDesc, UpdateRule, Bindings]


def _match(rules: Sequence[UpdateRule], node, inbound_types: Sequence[TypeDesc]) -> List[Match]:
    out: List[Match] = []
    for rule in rules:
        if len(rule.inbound) != len(inbound_types):
            continue
        b: Optional[Bindings] = {}
        for pattern, concrete in zip(rule.inbound, inbound_types):
            b = unify(pattern, concrete, b)
            if b is None:
                break
        if b is None:
            continue
        out.append((rule.outbound_for(node, b), rule, b))
    return out


def _narrow(
    matches: List[Match],
    outbound_constraint: Optional[TypeDesc],
    approximation: Optional[str],
) -> List[Match]:
    if outbound_constraint is not None:
        matches = [m for m in matches if unify(outbound_constraint, m[0]) is not None]
    if approximation is not None:
        matches = [m for m in matches if m[1].approximation == approximation]
    return matches


def _select(matches: List[Match], constrained: bool, what: str) -> Resolution:
    distinct = {}
    for out, rule, b in matches:
        distinct.setdefault((out, rule.approximation), (out, rule, b))
    if len(distinct) > 1:
        options = ", ".join(
            f"{o!r}" + (f" ({a})" if a else "") for (o, a) in distinct
        )
        if constrained:
            raise AmbiguousRuleError(f"{what}: ambiguous after narrowing: {options}")
        raise AmbiguousRuleError(f"{what}: multiple outbound types possible ({options}); constrain the outbound type")
    out, rule, b = next(iter(distinct.values()))
    return Resolution(
        outbound_type=out,
        rule=rule,
        approximation=rule.approximation,
        bindings=tuple(sorted(b.items())),
    )


def _strip_partition(t: TypeDesc) -> Tuple[TypeDesc, Optional[object]]:
    """Split a (message of a) partitioned type into (element type, count)."""
    if t.kind == Kind.MESSAGE and t.args[0].kind == Kind.PARTITIONED:
        element, count = t.args[0].args
        return message(element), count
    if t.kind == Kind.PARTITIONED:
        element, count = t.args
        return element, count
    return t, None


def resolve(
    catalogue: RuleCatalogue,
    node_kind: str,
    rule_type: UpdateRuleType,
    target: Optional[int],
    inbound_types: Sequence[TypeDesc],
    *,
    node=None,
    outbound_constraint: Optional[TypeDesc] = None,
    approximation: Optional[str] = None,
) -> Resolution:
    """
    Resolve the outbound type and rule of one computation.

    Args:
        catalogue: Registered rules
        node_kind: Kind of the node computing the update
        rule_type: Update-rule type
        target: Outbound interface index; None for marginal rules
        inbound_types: Inbound types in interface order (VOID where absent)
        node: Node passed to callable outbound declarations
        outbound_constraint: Pre-set outbound type
        approximation: Pre-set approximation method

    Returns:
        Resolution

    Raises:
        NoApplicableRuleError: no exact or approximate rule applies
        AmbiguousRuleError: several outbound types remain
        PartitionMismatchError: partitioned inbounds differ in factor count, or
            are mixed with plain ones
    """
    inbound_types = list(inbound_types)
    what = f"{node_kind}/{rule_type.name}/{target} with inbounds {inbound_types!r}"
    constrained = outbound_constraint is not None or approximation is not None

    if approximation is None:
        matched = _match(catalogue.candidates(node_kind, rule_type, target), node, inbound_types)
        exact = _narrow(matched, outbound_constraint, None)
        if exact:
            return _select(exact, constrained, what)
        if matched:
            # Approximations are a fallback for missing exact rules only
            options = ", ".join(sorted({repr(m[0]) for m in matched}))
            raise NoApplicableRuleError(
                f"{what}: constraint {outbound_constraint!r} matches none of the outbound types {options}"
            )

    approx = _narrow(
        _match(catalogue.candidates(node_kind, rule_type, target, approximate=True), node, inbound_types),
        outbound_constraint, approximation,
    )
    if approx:
        res = _select(approx, constrained, what)
        logger.debug("%s: falling back to %s approximation", what, res.approximation)
        return res

    if any(t.is_partitioned for t in inbound_types):
        return _resolve_one_by_one(
            catalogue, node_kind, rule_type, target, inbound_types,
            node=node, outbound_constraint=outbound_constraint, approximation=approximation,
        )

    raise NoApplicableRuleError(f"no applicable update rule for {what}")


def _resolve_one_by_one(
    catalogue: RuleCatalogue,
    node_kind: str,
    rule_type: UpdateRuleType,
    target: Optional[int],
    inbound_types: List[TypeDesc],
    *,
    node,
    outbound_constraint: Optional[TypeDesc],
    approximation: Optional[str],
) -> Resolution:
    elements: List[TypeDesc] = []
    counts = set()
    for t in inbound_types:
        element, count = _strip_partition(t)
        elements.append(element)
        if count is not None:
            counts.add(count)
        elif t.kind != Kind.VOID:
            raise PartitionMismatchError(
                f"{node_kind}/{rule_type.name}/{target}: inbound {t!r} is not partitioned; "
                f"one-by-one processing needs every present inbound partitioned"
            )
    if len(counts) != 1:
        raise PartitionMismatchError(
            f"{node_kind}/{rule_type.name}/{target}: partitioned inbounds have "
            f"mismatched factor counts {sorted(counts)}"
        )
    (count,) = counts

    element_constraint = outbound_constraint
    if outbound_constraint is not None and outbound_constraint.is_partitioned:
        element_constraint, _ = _strip_partition(outbound_constraint)

    res = resolve(
        catalogue, node_kind, rule_type, target, elements,
        node=node, outbound_constraint=element_constraint, approximation=approximation,
    )
    return Resolution(
        outbound_type=partitioned(res.outbound_type, count),
        rule=res.rule,
        approximation=res.approximation,
        one_by_one=True,
        bindings=res.bindings,
    )


def resolve_product(
    catalogue: RuleCatalogue,
    first: TypeDesc,
    second: TypeDesc,
    *,
    outbound_constraint: Optional[TypeDesc] = None,
) -> Resolution:
    """
    Resolve the normalized product of two messages.

    Product rules are registered under node kind PRODUCT_KIND with rule type
    PRODUCT; the operand order may be swapped.
    """
    try:
        return resolve(
            catalogue, PRODUCT_KIND, UpdateRuleType.PRODUCT, None, [first, second],
            outbound_constraint=outbound_constraint,
        )
    except NoApplicableRuleError:
        res = resolve(
            catalogue, PRODUCT_KIND, UpdateRuleType.PRODUCT, None, [second, first],
            outbound_constraint=outbound_constraint,
        )
        return Resolution(
            outbound_type=res.outbound_type,
            rule=res.rule,
            approximation=res.approximation,
            one_by_one=res.one_by_one,
            bindings=res.bindings,
            swapped=True,
        )
