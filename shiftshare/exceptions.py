"""Exception hierarchy for shift-share estimation.

All errors derive from :class:`ShiftShareError`, itself a ``ValueError`` so
callers that guard estimation with ``except ValueError`` keep working.
"""
from __future__ import annotations

__all__ = [
    "EquivalenceError",
    "NumericalDegeneracyError",
    "SchemaViolationError",
    "ShiftShareError",
]


class ShiftShareError(ValueError):
    """Base class for all errors raised by :mod:`shiftshare`."""


class SchemaViolationError(ShiftShareError):
    """Input tables lack required columns/keys or contain missing values."""


class NumericalDegeneracyError(ShiftShareError):
    """A matrix or weighted regression is singular and cannot be solved.

    ``context`` names the failing piece (e.g. ``"weight-set 2"`` or
    ``"Omega"``) so the caller can tell which part of the pipeline broke.
    """

    def __init__(self, message: str, *, context: str | None = None) -> None:
        self.context = context
        if context:
            message = f"{context}: {message}"
        super().__init__(message)


class EquivalenceError(ShiftShareError):
    """Shift-level coefficients disagree with the regional-level IV solution."""

