"""
Validation helpers for time ranges and time-aware queries.

Validators report issues rather than raising, so callers can show every
problem with a user's input at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import re

from timeforge.sql.compiler import TimeRange
from timeforge.sql.errors import UnparseableTimeExpression
from timeforge.sql.expressions import resolve_instant


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""

    ERROR = "error"      # Input cannot be used
    WARNING = "warning"  # Input works but is probably not what was meant
    INFO = "info"


@dataclass
class ValidationIssue:
    """Represents a single validation issue."""

    severity: ValidationSeverity
    category: str  # "time_range", "syntax", "macros"
    message: str
    location: Optional[str] = None  # e.g., "from", "to"
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "severity": self.severity.value,
            "category": self.category,
            "message": self.message,
            "location": self.location,
            "suggestion": self.suggestion
        }


@dataclass
class ValidationResult:
    """Results from validating an input."""

    valid: bool = True
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    info: List[ValidationIssue] = field(default_factory=list)

    def add_issue(self, issue: ValidationIssue) -> None:
        """Add an issue to the appropriate list based on severity."""
        if issue.severity == ValidationSeverity.ERROR:
            self.errors.append(issue)
            self.valid = False
        elif issue.severity == ValidationSeverity.WARNING:
            self.warnings.append(issue)
        else:
            self.info.append(issue)

    def add_issues(self, issues: List[ValidationIssue]) -> None:
        """Add multiple issues."""
        for issue in issues:
            self.add_issue(issue)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "info": [i.to_dict() for i in self.info],
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "info_count": len(self.info)
        }


def validate_time_range(time_range: TimeRange, reference_now: datetime) -> ValidationResult:
    """
    Check that both endpoints parse and that ``from`` is before ``to``.

    A disabled range is always valid.

    Args:
        time_range: Range selected by the user
        reference_now: Instant both endpoints are resolved against

    Returns:
        ValidationResult with one issue per problem found
    """
    result = ValidationResult()
    if not time_range.enabled:
        return result

    resolved: Dict[str, datetime] = {}
    for location, expression in (("from", time_range.from_), ("to", time_range.to)):
        if not expression or not expression.strip():
            result.add_issue(ValidationIssue(
                severity=ValidationSeverity.ERROR,
                category="time_range",
                message=f"'{location}' is required when time filtering is enabled",
                location=location,
                suggestion="Use a relative expression such as now-1h or an ISO timestamp"
            ))
            continue
        try:
            resolved[location] = resolve_instant(expression, reference_now)
        except UnparseableTimeExpression as exc:
            result.add_issue(ValidationIssue(
                severity=ValidationSeverity.ERROR,
                category="time_range",
                message=str(exc),
                location=location,
                suggestion="Expected now, now-<N><unit>, now-<N><unit>/<snap>, now/<snap> or a timestamp"
            ))

    if len(resolved) == 2 and resolved["from"] >= resolved["to"]:
        result.add_issue(ValidationIssue(
            severity=ValidationSeverity.ERROR,
            category="time_range",
            message="'from' must be earlier than 'to'",
            location="from",
            suggestion="Swap the endpoints or widen the range"
        ))

    return result


_FUNCTION_FILTER_RE = re.compile(r"\$__timeFilter\s*\([^)]*\)")
_QUOTED_FILTER_RE = re.compile(r"[\"']\$__timeFilter[\"']")


def validate_time_macros(query: str, max_length: Optional[int] = None) -> ValidationResult:
    """
    Flag macro misuse and structural problems that break splicing.

    Args:
        query: Raw query text
        max_length: Optional upper bound on query length

    Returns:
        ValidationResult describing every problem found
    """
    result = ValidationResult()
    if not query or not query.strip():
        result.add_issue(ValidationIssue(
            severity=ValidationSeverity.ERROR,
            category="syntax",
            message="Query is empty"
        ))
        return result

    if max_length is not None and len(query) > max_length:
        result.add_issue(ValidationIssue(
            severity=ValidationSeverity.ERROR,
            category="syntax",
            message=f"Query exceeds maximum length of {max_length} characters",
            suggestion="Shorten the query"
        ))

    if _FUNCTION_FILTER_RE.search(query):
        result.add_issue(ValidationIssue(
            severity=ValidationSeverity.WARNING,
            category="macros",
            message="$__timeFilter is a macro, not a function. Use $__timeFilter without parentheses.",
            suggestion="Select the time column separately and write WHERE $__timeFilter"
        ))

    if _QUOTED_FILTER_RE.search(query):
        result.add_issue(ValidationIssue(
            severity=ValidationSeverity.WARNING,
            category="macros",
            message="$__timeFilter should not be quoted."
        ))

    for issue in (check_balanced_quotes(query, "'"), check_balanced_parentheses(query)):
        if issue is not None:
            result.add_issue(issue)

    return result


# Common validation utilities

def check_balanced_quotes(text: str, quote_char: str = '"') -> Optional[ValidationIssue]:
    """
    Check if quotes are balanced in text.

    SQL escapes a quote by doubling it, which keeps the count even.

    Returns:
        ValidationIssue if unbalanced, None otherwise
    """
    if text.count(quote_char) % 2 != 0:
        return ValidationIssue(
            severity=ValidationSeverity.ERROR,
            category="syntax",
            message=f"Unbalanced {quote_char} quotes detected",
            suggestion=f"Ensure all {quote_char} quotes are properly closed or escaped"
        )
    return None


def check_balanced_parentheses(text: str) -> Optional[ValidationIssue]:
    """
    Check if parentheses are balanced.

    Returns:
        ValidationIssue if unbalanced, None otherwise
    """
    count = 0
    for char in text:
        if char == '(':
            count += 1
        elif char == ')':
            count -= 1
        if count < 0:
            return ValidationIssue(
                severity=ValidationSeverity.ERROR,
                category="syntax",
                message="Unbalanced parentheses: closing ')' without matching opening '('",
                suggestion="Check parentheses pairing in the query"
            )

    if count != 0:
        return ValidationIssue(
            severity=ValidationSeverity.ERROR,
            category="syntax",
            message=f"Unbalanced parentheses: {count} unclosed '('",
            suggestion="Ensure all opening '(' have matching closing ')'"
        )
    return None


__all__ = [
    "ValidationSeverity",
    "ValidationIssue",
    "ValidationResult",
    "validate_time_range",
    "validate_time_macros",
    "check_balanced_quotes",
    "check_balanced_parentheses",
]
