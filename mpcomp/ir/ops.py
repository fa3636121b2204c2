"""
mpcomp/ir/ops.py

Schedule and marginal-table entries.

A compiled recognition factor is a list of ScheduleEntry (message
computations, replayed in index order) followed by a list of MarginalEntry
(marginal computations from the freshly computed messages).

Inbound sources:
- VOID: the outbound position of a regular update
- MESSAGE: the message stored on an interface (the partner of the inbound port)
- MARGINAL: the current marginal of a variable or cluster of another factor
- CONSTANT: the observed value of a clamp node
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional, Tuple

from mpcomp.ir.schema import TypeDesc

InterfaceID = int


class UpdateRuleType(Enum):
    """Update-rule selector of a computation."""
    SUM_PRODUCT = 1
    VARIATIONAL = 2
    EXPECTATION_PROPAGATION = 3
    JOINT_MARGINAL = 4
    PRODUCT = 5


class MarginalRule(Enum):
    """How a marginal-table entry is computed."""
    NONE = 1      # Copy of a single message
    PRODUCT = 2   # Normalized product of two messages
    GENERAL = 3   # Joint marginal rule at a node


class InboundKind(Enum):
    VOID = 1
    MESSAGE = 2
    MARGINAL = 3
    CONSTANT = 4


@dataclass(frozen=True)
class Inbound:
    """
    Source of one inbound argument.

    Attributes:
        kind: Source kind
        ref: Interface id (MESSAGE), target key (MARGINAL), node id (CONSTANT)
    """
    kind: InboundKind
    ref: Any = None


VOID_INBOUND = Inbound(InboundKind.VOID)


class BreakerState(Enum):
    UNINITIALIZED = 1
    SEEDED = 2
    ITERATING = 3


@dataclass
class Breaker:
    """
    Initialization point of a cyclic computation.

    The entry's message is seeded with a vague distribution of `family`
    and `dims` before the first pass, then updated normally on every pass.

    Attributes:
        family: Distribution family of the seed
        dims: Dimensionality of the seed
        reason: "expectation", "nonlinear", "clamp" or "loop"
        factors: Factor count when the seed is partitioned
        state: Uninitialized -> Seeded -> Iterating
    """
    family: str
    dims: Tuple[int, ...]
    reason: str
    factors: Optional[int] = None
    state: BreakerState = BreakerState.UNINITIALIZED

    def seed(self, value: Any) -> Any:
        if self.state != BreakerState.UNINITIALIZED:
            raise RuntimeError(f"breaker already {self.state.name.lower()}")
        self.state = BreakerState.SEEDED
        return value

    def advance(self) -> None:
        """Mark the first regular update of a seeded breaker."""
        if self.state == BreakerState.UNINITIALIZED:
            raise RuntimeError("breaker updated before it was seeded")
        self.state = BreakerState.ITERATING

    def reset(self) -> None:
        self.state = BreakerState.UNINITIALIZED


@dataclass
class ScheduleEntry:
    """
    One message computation.

    Attributes:
        interface: Target interface (the outbound message is stored there)
        node: Node owning the interface
        outbound_index: Position of the interface at its node
        rule_type: Update-rule selector
        inbound_types: Observed inbound types (VOID at the outbound position)
        constraint: Pre-set outbound type narrowing ambiguous resolutions
        approximation_constraint: Pre-set approximation method
        outbound_type: Resolved outbound type
        approximation: Resolved approximation method
        rule: Resolved update rule
        one_by_one: Procedure is applied per factor of partitioned inbounds
        inbounds: Inbound argument sources in interface order
        schedule_index: Position in execution order
        breaker: Set when the entry must be seeded before the first pass
    """
    interface: InterfaceID
    node: int
    outbound_index: int
    rule_type: UpdateRuleType
    constraint: Optional[TypeDesc] = None
    approximation_constraint: Optional[str] = None
    inbound_types: List[TypeDesc] = field(default_factory=list)
    outbound_type: Optional[TypeDesc] = None
    approximation: Optional[str] = None
    rule: Any = None
    one_by_one: bool = False
    inbounds: List[Inbound] = field(default_factory=list)
    schedule_index: int = -1
    breaker: Optional[Breaker] = None

    def __repr__(self) -> str:
        return (
            f"ScheduleEntry(#{self.schedule_index}, iface={self.interface}, "
            f"{self.rule_type.name}, out={self.outbound_type!r})"
        )


Schedule = List[ScheduleEntry]


@dataclass
class MarginalEntry:
    """
    One marginal computation.

    Attributes:
        target: Variable id or Cluster
        interfaces: Participating interfaces (messages on these are consumed)
        marginal_rule: NONE, PRODUCT or GENERAL
        node: Node of a GENERAL (cluster) marginal
        marginal_type: Resolved type of the marginal
        rule: Resolved joint/product rule
        inbounds: Sources: schedule entries (NONE/PRODUCT) or Inbounds (GENERAL)
        marginal_id: Output identifier
    """
    target: Hashable
    interfaces: List[InterfaceID]
    marginal_rule: MarginalRule
    node: Optional[int] = None
    marginal_type: Optional[TypeDesc] = None
    rule: Any = None
    inbounds: List[Any] = field(default_factory=list)
    marginal_id: Optional[Hashable] = None


MarginalTable = List[MarginalEntry]


def interface_to_schedule_entry(schedule: Schedule) -> Dict[InterfaceID, ScheduleEntry]:
    """Lookup table from target interface to its schedule entry."""
    return {entry.interface: entry for entry in schedule}


def target_to_marginal_entry(table: MarginalTable) -> Dict[Hashable, MarginalEntry]:
    """Lookup table from variable/cluster to its marginal entry."""
    return {entry.target: entry for entry in table}
