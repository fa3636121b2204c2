"""
mpcomp/errors.py

Error taxonomy for compilation.

All errors are raised synchronously to the caller of compilation; nothing
is retried. Structural and resolution errors are ValueErrors, missing
connections surface as KeyErrors naming the interface.
"""

from __future__ import annotations


class CompilerError(Exception):
    """Base class for every error raised by mpcomp."""


class StructuralError(CompilerError, ValueError):
    """Malformed graph construction (self-loops, rebinding, bad marginal family)."""


class FactorizationError(CompilerError, ValueError):
    """A recognition factor was rejected (collider found with rejection enabled)."""


class SchedulingError(CompilerError):
    """Schedule construction failed."""


class NotConnectedError(SchedulingError, KeyError):
    """An interface was dereferenced through an unbound edge."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else "interface is not connected"


class ResolutionError(CompilerError, ValueError):
    """No update rule could be chosen for a computation."""


class NoApplicableRuleError(ResolutionError):
    """No registered (exact or approximate) rule unifies with the call."""


class AmbiguousRuleError(ResolutionError):
    """More than one rule remains after constraint narrowing."""


class PartitionMismatchError(ResolutionError):
    """Partitioned inbounds disagree on their number of factors."""


class UnresolvedMarginalTypeError(ResolutionError):
    """A boundary marginal's type is not known yet."""
