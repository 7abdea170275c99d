"""Time macros understood by the console.

``$__timeFilter``  full time predicate for the selected column
``$__timeField``   the selected time column
``$__timeFrom``    start of the range as a literal
``$__timeTo``      end of the range as a literal
``$__interval``    aggregation bucket, e.g. ``30s``
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .compiler import (
    TimeRange,
    build_time_values,
    calculate_interval_seconds,
    compile_time_filter,
)
from .representation import ColumnTimeMetadata, TimestampRepresentation

logger = logging.getLogger(__name__)

TIME_FIELD_RE = re.compile(r"\$__timeField\b")
TIME_FILTER_RE = re.compile(r"\$__timeFilter\b")
TIME_FROM_RE = re.compile(r"\$__timeFrom\b")
TIME_TO_RE = re.compile(r"\$__timeTo\b")
INTERVAL_RE = re.compile(r"\$__interval\b")
ALL_TIME_VARS_RE = re.compile(r"\$__(?:timeFilter|timeField|timeFrom|timeTo|interval)\b")

_SPACED_FILTER_RE = re.compile(r"\$\s+__timeFilter\b")
_FUNCTION_FILTER_RE = re.compile(r"\$__timeFilter\s*\(\s*([^)]*?)\s*\)")
_QUOTED_FILTER_RE = re.compile(r"([\"'])\$__timeFilter\1")

NEUTRAL_FILTER = "1=1"


def check_for_time_variables(query: str) -> bool:
    if not query or not isinstance(query, str):
        return False
    return bool(ALL_TIME_VARS_RE.search(query))


def unresolved_time_variables(query: str) -> List[str]:
    """Names of macros still present in ``query``, in order of appearance."""

    seen: List[str] = []
    for match in ALL_TIME_VARS_RE.finditer(query or ""):
        if match.group(0) not in seen:
            seen.append(match.group(0))
    return seen


def extract_macro_time_field(query: str) -> Optional[str]:
    """Column named in a function-style ``$__timeFilter(col)``, if any."""

    match = _FUNCTION_FILTER_RE.search(query or "")
    if match and match.group(1):
        return match.group(1)
    return None


def sanitize_time_macros(query: str) -> str:
    """Repair common ``$__timeFilter`` mistakes.

    ``$ __timeFilter``, ``$__timeFilter(col)`` and ``'$__timeFilter'`` all
    become plain ``$__timeFilter``.
    """
    if not query:
        return query
    fixed = _SPACED_FILTER_RE.sub("$__timeFilter", query)
    fixed = _FUNCTION_FILTER_RE.sub("$__timeFilter", fixed)
    fixed = _QUOTED_FILTER_RE.sub("$__timeFilter", fixed)
    return fixed


def interpolate_time_variables(
    query: str,
    time_range: TimeRange,
    column: Optional[ColumnTimeMetadata],
    reference_now: datetime,
    max_data_points: int = 1000,
) -> Tuple[str, Dict[str, Any]]:
    """Replace time macros in ``query``.

    Returns the rewritten query and the values that were substituted. A
    ``$__timeFilter`` that cannot be compiled becomes ``1=1``. Macros that
    need a column are left in place when none is given, as are
    ``$__timeFrom``/``$__timeTo`` for an inactive range.

    Raises:
        UnparseableTimeExpression: If ``$__timeFrom``/``$__timeTo`` or
            ``$__interval`` need an endpoint that cannot be parsed.
    """
    interpolated: Dict[str, Any] = {}
    if not query:
        return query, interpolated

    representation = column.representation() if column else TimestampRepresentation.datetime()
    processed = query

    if column and TIME_FIELD_RE.search(processed):
        processed = TIME_FIELD_RE.sub(lambda _: column.name, processed)
        interpolated["timeField"] = column.name

    if TIME_FILTER_RE.search(processed):
        predicate = None
        if column:
            predicate = compile_time_filter(time_range, representation, column.name, reference_now)
        replacement = predicate.sql if predicate else NEUTRAL_FILTER
        processed = TIME_FILTER_RE.sub(lambda _: replacement, processed)
        interpolated["timeFilter"] = replacement

    if TIME_FROM_RE.search(processed) or TIME_TO_RE.search(processed):
        values = build_time_values(time_range, representation, reference_now)
        if values is not None:
            time_from, time_to = values
            processed = TIME_FROM_RE.sub(lambda _: time_from, processed)
            processed = TIME_TO_RE.sub(lambda _: time_to, processed)
            interpolated["timeFrom"] = time_from
            interpolated["timeTo"] = time_to

    if INTERVAL_RE.search(processed):
        seconds = calculate_interval_seconds(time_range, reference_now, max_data_points)
        processed = INTERVAL_RE.sub(lambda _: f"{seconds}s", processed)
        interpolated["interval"] = seconds

    logger.debug("Interpolated time variables: %s", interpolated)
    return processed, interpolated


__all__ = [
    "ALL_TIME_VARS_RE",
    "NEUTRAL_FILTER",
    "check_for_time_variables",
    "unresolved_time_variables",
    "extract_macro_time_field",
    "sanitize_time_macros",
    "interpolate_time_variables",
]
