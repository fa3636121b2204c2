"""
IR module: Type descriptions, schedule and marginal-table entries.
"""

from mpcomp.ir.schema import (
    Kind,
    TypeDesc,
    VOID,
    ANY,
    dist,
    tvar,
    message,
    partitioned,
    approximation,
    unify,
    substitute,
    is_ground,
)
from mpcomp.ir.ops import (
    UpdateRuleType,
    MarginalRule,
    InboundKind,
    Inbound,
    BreakerState,
    Breaker,
    ScheduleEntry,
    MarginalEntry,
)

__all__ = [
    "Kind",
    "TypeDesc",
    "VOID",
    "ANY",
    "dist",
    "tvar",
    "message",
    "partitioned",
    "approximation",
    "unify",
    "substitute",
    "is_ground",
    "UpdateRuleType",
    "MarginalRule",
    "InboundKind",
    "Inbound",
    "BreakerState",
    "Breaker",
    "ScheduleEntry",
    "MarginalEntry",
]
