"""One-call preparation of a query for execution or preview."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from timeforge.shared.config import TimeFilterConfig

from .compiler import CompiledPredicate, TimeRange, compile_time_filter
from .errors import TimeFilterError
from .expressions import current_reference_time
from .macros import (
    check_for_time_variables,
    extract_macro_time_field,
    interpolate_time_variables,
    sanitize_time_macros,
    unresolved_time_variables,
)
from .representation import ColumnTimeMetadata
from .splicer import has_existing_time_filter, inject_time_filter

logger = logging.getLogger(__name__)


@dataclass
class ProcessedQuery:
    """Outcome of :func:`process_query`.

    ``query`` is always safe to run: when anything goes wrong it falls back
    to the (sanitised) input and the reason is recorded in ``errors`` or
    ``skipped_reason``.
    """

    query: str
    original_query: str
    predicate: Optional[str] = None
    injected: bool = False
    has_time_variables: bool = False
    skipped_reason: Optional[str] = None
    interpolated: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "original_query": self.original_query,
            "predicate": self.predicate,
            "injected": self.injected,
            "has_time_variables": self.has_time_variables,
            "skipped_reason": self.skipped_reason,
            "interpolated": dict(self.interpolated),
            "errors": list(self.errors),
        }


def _process_macros(
    result: ProcessedQuery,
    query: str,
    time_range: TimeRange,
    column: Optional[ColumnTimeMetadata],
    reference_now: datetime,
    max_data_points: int,
) -> ProcessedQuery:
    result.has_time_variables = True
    try:
        processed, interpolated = interpolate_time_variables(
            query, time_range, column, reference_now, max_data_points
        )
    except (TimeFilterError, ValueError) as exc:
        logger.warning("Time macro interpolation failed: %s", exc)
        result.errors.append(str(exc))
        result.skipped_reason = "interpolation_failed"
        return result

    result.query = processed
    result.interpolated = interpolated
    result.predicate = interpolated.get("timeFilter")
    remaining = unresolved_time_variables(processed)
    if remaining:
        result.errors.append("Unresolved time variables: " + ", ".join(remaining))
    return result


def process_query(
    query: str,
    time_range: TimeRange,
    column: Optional[ColumnTimeMetadata],
    reference_now: Optional[datetime] = None,
    config: Optional[TimeFilterConfig] = None,
) -> ProcessedQuery:
    """
    Apply the selected time range to ``query``.

    Queries that use time macros are interpolated; all others get a
    compiled predicate spliced in. The clock is read at most once, and the
    same ``reference_now`` is used for every endpoint.

    Args:
        query: SQL text as written by the user
        time_range: Range selected in the time picker
        column: Time column metadata; may be None for macro-only queries
        reference_now: Fixed "now"; defaults to the current time in the
            configured timezone
        config: Engine settings; defaults to ``TimeFilterConfig()``

    Returns:
        ProcessedQuery; never raises for bad time input
    """
    config = config or TimeFilterConfig()
    original = query or ""
    result = ProcessedQuery(query=original, original_query=original)

    if not original.strip():
        result.skipped_reason = "empty_query"
        return result
    if len(original) > config.max_query_length:
        result.errors.append(f"Query exceeds maximum length of {config.max_query_length} characters")
        result.skipped_reason = "query_too_long"
        return result

    if reference_now is None:
        reference_now = current_reference_time(config.reference_tz)

    if column is None:
        macro_field = extract_macro_time_field(original)
        if macro_field:
            logger.debug("Using time column %s named in $__timeFilter()", macro_field)
            column = ColumnTimeMetadata(macro_field)

    sanitized = sanitize_time_macros(original)
    result.query = sanitized

    if check_for_time_variables(sanitized):
        return _process_macros(
            result, sanitized, time_range, column, reference_now, config.max_data_points
        )

    if not time_range.enabled:
        result.skipped_reason = "time_filter_disabled"
        return result
    if not time_range.is_active:
        result.skipped_reason = "empty_time_range"
        return result
    if column is None or not column.name.strip():
        result.skipped_reason = "no_time_column"
        return result

    representation = column.representation()
    predicate: Optional[CompiledPredicate] = compile_time_filter(
        time_range, representation, column.name, reference_now
    )
    if predicate is None:
        result.skipped_reason = "invalid_time_range"
        result.errors.append(
            f"Could not compile a time filter for range {time_range.from_!r} to {time_range.to!r}"
        )
        return result

    result.predicate = predicate.sql
    try:
        rewritten = inject_time_filter(sanitized, predicate)
    except TimeFilterError as exc:
        logger.warning("Time filter injection failed: %s", exc)
        result.errors.append(str(exc))
        result.skipped_reason = "injection_failed"
        return result

    if rewritten == sanitized:
        if has_existing_time_filter(sanitized):
            result.skipped_reason = "existing_time_filter"
        else:
            result.skipped_reason = "not_injected"
    else:
        result.injected = True
        logger.debug("Injected time filter on %s", column.name)
    result.query = rewritten
    return result


__all__ = ["ProcessedQuery", "process_query"]
