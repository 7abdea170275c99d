"""Error types raised by the time-filter engine."""

from __future__ import annotations


class TimeFilterError(ValueError):
    """Base class for time-filter failures surfaced to callers."""


class UnparseableTimeExpression(TimeFilterError):
    """Raised when a time expression matches no known grammar and is not a date."""

    def __init__(self, expression: str, reason: str | None = None) -> None:
        self.expression = expression
        self.reason = reason
        message = f"Cannot parse time expression {expression!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AmbiguousColumnMissing(TimeFilterError):
    """Raised when a predicate is spliced without a column to constrain."""

    def __init__(self, message: str = "A time column is required to splice a time filter") -> None:
        super().__init__(message)


__all__ = ["TimeFilterError", "UnparseableTimeExpression", "AmbiguousColumnMissing"]
