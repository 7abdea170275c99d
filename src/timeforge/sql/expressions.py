"""Parsing of relative and absolute time expressions.

Grammar of relative expressions::

    now
    now-<N><unit>            now+<N><unit>
    now-<N><unit>/<snap>     now/<snap>

with ``unit`` one of ``s m h d w M y`` and ``snap`` one of ``m h d w M y``.
Months are 30 days and years 365 days; weeks start on Sunday. Any other
token is read as an absolute timestamp (ISO-8601, free-form date with a
four-digit year, or a 10-19 digit epoch).

Each expression has two renderings: a concrete instant computed against a
caller-supplied reference time, and a symbolic SQL expression evaluated by
the engine's own ``NOW()``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Optional, Union

from dateutil import parser as date_parser

from .errors import UnparseableTimeExpression
from .representation import infer_precision_from_samples

logger = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(r"^now(?:([+-])(\d+)([smhdwMy]))?(?:/([mhdwMy]))?$")
_NUMERIC_EPOCH_RE = re.compile(r"^\d{10,19}$")
_YEAR_RE = re.compile(r"\d{4}")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_GENERIC_PARSE_DEFAULT = datetime(2000, 1, 1)

UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3_600,
    "d": 86_400,
    "w": 7 * 86_400,
    "M": 30 * 86_400,
    "y": 365 * 86_400,
}

_SQL_INTERVAL_UNITS = {
    "s": (1, "SECOND"),
    "m": (1, "MINUTE"),
    "h": (1, "HOUR"),
    "d": (1, "DAY"),
    "w": (1, "WEEK"),
    # must match UNIT_SECONDS
    "M": (30, "DAY"),
    "y": (365, "DAY"),
}

SNAP_UNITS = {
    "m": "minute",
    "h": "hour",
    "d": "day",
    "w": "week",
    "M": "month",
    "y": "year",
}


class ExpressionKind(Enum):
    NOW = "now"
    RELATIVE_OFFSET = "relative_offset"
    RELATIVE_OFFSET_SNAPPED = "relative_offset_snapped"
    SNAP_ONLY = "snap_only"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class TimeExpression:
    """A classified time expression.

    ``amount`` is signed: ``now-2h`` has amount ``-2`` and unit ``"h"``.
    """

    kind: ExpressionKind
    text: str
    amount: int = 0
    unit: Optional[str] = None
    snap_to: Optional[str] = None
    instant: Optional[datetime] = None

    @property
    def is_relative(self) -> bool:
        return self.kind is not ExpressionKind.ABSOLUTE


ExpressionLike = Union[str, TimeExpression]


def _utc_if_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_millisecond(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def _parse_absolute(text: str, default_tz: tzinfo) -> datetime:
    if _NUMERIC_EPOCH_RE.match(text):
        raw = int(text)
        precision = infer_precision_from_samples([raw])
        millis = raw * 1000 // precision.per_second
        try:
            return _EPOCH + timedelta(milliseconds=millis)
        except OverflowError as exc:
            raise UnparseableTimeExpression(text, "epoch value out of range") from exc

    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        if not _YEAR_RE.search(text):
            raise UnparseableTimeExpression(text, "not a relative expression or a dated timestamp") from None
        try:
            parsed = date_parser.parse(text, default=_GENERIC_PARSE_DEFAULT)
        except (ValueError, OverflowError) as exc:
            raise UnparseableTimeExpression(text, str(exc)) from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz)
    return parsed


def parse_time_expression(text: str, default_tz: Optional[tzinfo] = None) -> TimeExpression:
    """Classify ``text`` as a relative or absolute time expression.

    Args:
        text: Token such as ``"now-1d/d"`` or ``"2024-01-02T12:00:00Z"``.
        default_tz: Timezone given to absolute timestamps without an offset.
            Defaults to UTC.

    Raises:
        UnparseableTimeExpression: If the token matches no grammar.
    """
    if not isinstance(text, str):
        raise UnparseableTimeExpression(repr(text), "time expressions must be strings")
    token = text.strip()
    if not token:
        raise UnparseableTimeExpression(text, "empty expression")

    if token.startswith("now"):
        match = _RELATIVE_RE.match(token)
        if not match:
            raise UnparseableTimeExpression(token, "unrecognised relative syntax")
        sign, amount, unit, snap_to = match.groups()
        if amount is None:
            if snap_to is None:
                return TimeExpression(ExpressionKind.NOW, token)
            return TimeExpression(ExpressionKind.SNAP_ONLY, token, snap_to=snap_to)
        signed = -int(amount) if sign == "-" else int(amount)
        kind = ExpressionKind.RELATIVE_OFFSET_SNAPPED if snap_to else ExpressionKind.RELATIVE_OFFSET
        return TimeExpression(kind, token, amount=signed, unit=unit, snap_to=snap_to)

    instant = _parse_absolute(token, default_tz or timezone.utc)
    return TimeExpression(ExpressionKind.ABSOLUTE, token, instant=_to_millisecond(instant))


def _coerce(expr: ExpressionLike, default_tz: Optional[tzinfo] = None) -> TimeExpression:
    if isinstance(expr, TimeExpression):
        return expr
    return parse_time_expression(expr, default_tz)


def snap_instant(value: datetime, snap_to: str) -> datetime:
    """Truncate ``value`` to the start of its minute/hour/day/week/month/year."""

    if snap_to == "m":
        return value.replace(second=0, microsecond=0)
    if snap_to == "h":
        return value.replace(minute=0, second=0, microsecond=0)

    day_start = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if snap_to == "d":
        return day_start
    if snap_to == "w":
        # weekday(): Monday=0 ... Sunday=6
        return day_start - timedelta(days=(day_start.weekday() + 1) % 7)
    if snap_to == "M":
        return day_start.replace(day=1)
    if snap_to == "y":
        return day_start.replace(month=1, day=1)
    raise ValueError(f"Unknown snap unit {snap_to!r}")


def resolve_instant(expr: ExpressionLike, reference_now: datetime) -> datetime:
    """Resolve an expression to an aware, millisecond-resolution instant.

    Offsets are exact elapsed durations, so ``now-24h`` is always 24 real
    hours back. Snapping happens in ``reference_now``'s timezone; a naive
    reference is taken as UTC. Absolute strings without an offset are read in the same
    timezone.
    """
    reference = _to_millisecond(_utc_if_naive(reference_now))
    parsed = _coerce(expr, reference.tzinfo)

    if parsed.kind is ExpressionKind.ABSOLUTE:
        return parsed.instant  # type: ignore[return-value]

    result = reference
    if parsed.unit is not None:
        try:
            delta = timedelta(seconds=parsed.amount * UNIT_SECONDS[parsed.unit])
            # elapsed time, not wall-clock time, across DST transitions
            result = (reference.astimezone(timezone.utc) + delta).astimezone(reference.tzinfo)
        except OverflowError as exc:
            raise UnparseableTimeExpression(parsed.text, "offset out of range") from exc
    if parsed.snap_to is not None:
        result = snap_instant(result, parsed.snap_to)
    return result


def _sql_interval(amount: int, unit: str) -> str:
    factor, sql_unit = _SQL_INTERVAL_UNITS[unit]
    return f"INTERVAL {abs(amount) * factor} {sql_unit}"


def _sql_snap(sql: str, snap_to: str) -> str:
    if snap_to == "w":
        # DATE_TRUNC('week', ...) starts on Monday; shift to a Sunday start
        return f"DATE_TRUNC('week', {sql} + INTERVAL 1 DAY) - INTERVAL 1 DAY"
    return f"DATE_TRUNC('{SNAP_UNITS[snap_to]}', {sql})"


def format_sql_timestamp(instant: datetime) -> str:
    """Render an instant as a quoted ISO-8601 UTC literal with milliseconds."""

    utc = _utc_if_naive(instant).astimezone(timezone.utc)
    return f"'{utc.strftime('%Y-%m-%dT%H:%M:%S')}.{utc.microsecond // 1000:03d}Z'"


def to_sql_expression(expr: ExpressionLike) -> str:
    """Render an expression as SQL evaluated at query time."""

    parsed = _coerce(expr)
    if parsed.kind is ExpressionKind.ABSOLUTE:
        return format_sql_timestamp(parsed.instant)  # type: ignore[arg-type]

    sql = "NOW()"
    if parsed.unit is not None:
        operator = "-" if parsed.amount < 0 else "+"
        sql = f"NOW() {operator} {_sql_interval(parsed.amount, parsed.unit)}"
    if parsed.snap_to is not None:
        sql = _sql_snap(sql, parsed.snap_to)
    return sql


def current_reference_time(tz: Optional[tzinfo] = None) -> datetime:
    """Read the clock once for a logical operation."""

    return _to_millisecond(datetime.now(tz or timezone.utc))


__all__ = [
    "ExpressionKind",
    "TimeExpression",
    "UNIT_SECONDS",
    "SNAP_UNITS",
    "parse_time_expression",
    "resolve_instant",
    "snap_instant",
    "to_sql_expression",
    "format_sql_timestamp",
    "current_reference_time",
]
