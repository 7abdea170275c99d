"""Compile a time range and a column representation into a SQL predicate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .errors import UnparseableTimeExpression
from .expressions import (
    ExpressionKind,
    TimeExpression,
    format_sql_timestamp,
    parse_time_expression,
    resolve_instant,
    to_sql_expression,
)
from .representation import Precision, TimestampRepresentation

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60


@dataclass(frozen=True)
class TimeRange:
    """A user-selected time window. Disabled ranges never produce filters."""

    from_: str = ""
    to: str = ""
    enabled: bool = True
    display: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeRange":
        return cls(
            from_=str(data.get("from", data.get("from_")) or ""),
            to=str(data.get("to") or ""),
            enabled=bool(data.get("enabled", True)),
            display=str(data.get("display") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_,
            "to": self.to,
            "enabled": self.enabled,
            "display": self.display,
        }

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.from_.strip()) and bool(self.to.strip())


@dataclass(frozen=True)
class CompiledPredicate:
    """SQL boolean fragment constraining ``column`` to a time range."""

    sql: str
    column: str

    def __str__(self) -> str:
        return self.sql


def _epoch_sql(sql: str, precision: Precision) -> str:
    if precision is Precision.SECONDS:
        return f"CAST(EXTRACT(EPOCH FROM {sql}) AS BIGINT)"
    return f"CAST(EXTRACT(EPOCH FROM {sql}) * {precision.per_second} AS BIGINT)"


def _endpoint_sql(expr: TimeExpression, representation: TimestampRepresentation) -> str:
    if not representation.is_epoch:
        return to_sql_expression(expr)
    precision = representation.precision
    assert precision is not None
    if expr.kind is ExpressionKind.ABSOLUTE:
        return str(precision.from_instant(expr.instant))  # type: ignore[arg-type]
    return _epoch_sql(to_sql_expression(expr), precision)


def compile_time_filter(
    time_range: TimeRange,
    representation: TimestampRepresentation,
    column: str,
    reference_now: Optional[datetime] = None,
) -> Optional[CompiledPredicate]:
    """Build ``column >= <from> AND column <= <to>``.

    Returns None when the range is disabled or empty, when either endpoint
    cannot be parsed, or when no column is given. None means "do not
    filter". ``reference_now`` only supplies the timezone for absolute
    endpoints written without an offset.
    """
    column = (column or "").strip()
    if not time_range.is_active or not column:
        logger.debug(
            "No time filter compiled (enabled=%s, from=%r, to=%r, column=%r)",
            time_range.enabled,
            time_range.from_,
            time_range.to,
            column,
        )
        return None

    default_tz = reference_now.tzinfo if reference_now is not None else timezone.utc
    try:
        start = parse_time_expression(time_range.from_, default_tz)
        end = parse_time_expression(time_range.to, default_tz)
    except UnparseableTimeExpression as exc:
        logger.warning("Skipping time filter for %s: %s", column, exc)
        return None

    sql = (
        f"{column} >= {_endpoint_sql(start, representation)} "
        f"AND {column} <= {_endpoint_sql(end, representation)}"
    )
    logger.debug("Compiled time filter for %s: %s", column, sql)
    return CompiledPredicate(sql=sql, column=column)


def resolve_time_range(
    time_range: TimeRange,
    reference_now: datetime,
) -> Optional[Tuple[datetime, datetime]]:
    """Resolve both endpoints against the same reference instant.

    Returns None for inactive ranges and raises UnparseableTimeExpression
    for bad endpoints.
    """
    if not time_range.is_active:
        return None
    return (
        resolve_instant(time_range.from_, reference_now),
        resolve_instant(time_range.to, reference_now),
    )


def build_time_values(
    time_range: TimeRange,
    representation: TimestampRepresentation,
    reference_now: datetime,
) -> Optional[Tuple[str, str]]:
    """Render concrete ``(from, to)`` literals for the column's representation."""

    bounds = resolve_time_range(time_range, reference_now)
    if bounds is None:
        return None
    start, end = bounds
    if representation.is_epoch:
        precision = representation.precision
        assert precision is not None
        return str(precision.from_instant(start)), str(precision.from_instant(end))
    return format_sql_timestamp(start), format_sql_timestamp(end)


def calculate_interval_seconds(
    time_range: TimeRange,
    reference_now: datetime,
    max_data_points: int = 1000,
) -> int:
    """Aggregation bucket size that keeps a series under ``max_data_points``."""

    if max_data_points <= 0:
        raise ValueError("max_data_points must be positive")
    bounds = resolve_time_range(time_range, reference_now)
    if bounds is None:
        return DEFAULT_INTERVAL_SECONDS
    start, end = bounds
    duration_ms = max(0, int((end - start).total_seconds() * 1000))
    interval_ms = max(1000, duration_ms // max_data_points)
    return interval_ms // 1000


__all__ = [
    "TimeRange",
    "CompiledPredicate",
    "DEFAULT_INTERVAL_SECONDS",
    "compile_time_filter",
    "resolve_time_range",
    "build_time_values",
    "calculate_interval_seconds",
]
