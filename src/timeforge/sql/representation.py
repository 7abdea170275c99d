"""Timestamp representation inference for time columns.

Given a column name, its declared data type and an optional explicit unit,
decide whether the column holds datetime values or integer epochs, and at
which precision. Resolution runs through an ordered rule list: the first
rule that produces a representation wins, and the last rule always does.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND = timedelta(milliseconds=1)


class Precision(Enum):
    """Unit an integer epoch column is stored in."""

    SECONDS = "s"
    MILLIS = "ms"
    MICROS = "us"
    NANOS = "ns"

    @property
    def per_second(self) -> int:
        """Number of units in one second."""
        return _PER_SECOND[self]

    @classmethod
    def parse(cls, value: Union["Precision", str, None]) -> Optional["Precision"]:
        """Normalise a unit hint such as ``"ms"`` or ``"nanoseconds"``.

        Returns ``None`` for an empty hint and raises ``ValueError`` for an
        unknown one.
        """
        if value is None or isinstance(value, Precision):
            return value
        key = str(value).strip().lower()
        if not key:
            return None
        try:
            return _PRECISION_ALIASES[key]
        except KeyError:
            raise ValueError(f"Unknown time unit {value!r}") from None

    def from_instant(self, instant: datetime) -> int:
        """Scale an aware instant to an integer epoch in this precision.

        Instants are handled at millisecond resolution, so finer precisions
        are exact multiples of the millisecond value.
        """
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        millis = (instant - _EPOCH) // _ONE_MILLISECOND
        if self is Precision.SECONDS:
            return millis // 1000
        return millis * (self.per_second // 1000)


_PER_SECOND: Dict[Precision, int] = {
    Precision.SECONDS: 1,
    Precision.MILLIS: 1_000,
    Precision.MICROS: 1_000_000,
    Precision.NANOS: 1_000_000_000,
}

_PRECISION_ALIASES: Dict[str, Precision] = {
    "s": Precision.SECONDS,
    "sec": Precision.SECONDS,
    "second": Precision.SECONDS,
    "seconds": Precision.SECONDS,
    "ms": Precision.MILLIS,
    "milli": Precision.MILLIS,
    "millis": Precision.MILLIS,
    "millisecond": Precision.MILLIS,
    "milliseconds": Precision.MILLIS,
    "us": Precision.MICROS,
    "μs": Precision.MICROS,
    "micro": Precision.MICROS,
    "micros": Precision.MICROS,
    "microsecond": Precision.MICROS,
    "microseconds": Precision.MICROS,
    "ns": Precision.NANOS,
    "nano": Precision.NANOS,
    "nanos": Precision.NANOS,
    "nanosecond": Precision.NANOS,
    "nanoseconds": Precision.NANOS,
}


class RepresentationKind(Enum):
    DATETIME = "datetime"
    EPOCH = "epoch"


@dataclass(frozen=True)
class TimestampRepresentation:
    """How a time column is physically stored.

    ``rule`` records which resolution rule produced the value and is not
    part of equality.
    """

    kind: RepresentationKind
    precision: Optional[Precision] = None
    rule: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if self.kind is RepresentationKind.EPOCH and self.precision is None:
            raise ValueError("Epoch representations require a precision")
        if self.kind is RepresentationKind.DATETIME and self.precision is not None:
            raise ValueError("Datetime representations carry no precision")

    @classmethod
    def datetime(cls, rule: str = "") -> "TimestampRepresentation":
        return cls(RepresentationKind.DATETIME, None, rule)

    @classmethod
    def epoch(cls, precision: Precision, rule: str = "") -> "TimestampRepresentation":
        return cls(RepresentationKind.EPOCH, precision, rule)

    @property
    def is_epoch(self) -> bool:
        return self.kind is RepresentationKind.EPOCH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "precision": self.precision.value if self.precision else None,
            "rule": self.rule,
        }


@dataclass(frozen=True)
class ColumnTimeMetadata:
    """Column facts supplied by the schema layer."""

    name: str
    declared_type: str = ""
    explicit_unit: Optional[Precision] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnTimeMetadata":
        """Build metadata from a schema entry.

        Accepts both the console's ``columnName``/``dataType``/``timeUnit``
        keys and plain ``name``/``type``/``time_unit`` keys.
        """
        name = data.get("columnName", data.get("name")) or ""
        declared_type = data.get("dataType", data.get("type")) or ""
        unit = data.get("timeUnit", data.get("time_unit"))
        return cls(
            name=str(name).strip(),
            declared_type=str(declared_type).strip(),
            explicit_unit=Precision.parse(unit),
        )

    def representation(self) -> "TimestampRepresentation":
        return resolve_representation(self.name, self.declared_type, self.explicit_unit)


ColumnLike = Union[ColumnTimeMetadata, Dict[str, Any]]

# Convention fields of the time-series engine.
HIGH_PRECISION_FIELDS = ("__timestamp",)
MILLISECOND_FIELDS = ("created_at", "updated_at", "create_date")

_DATETIME_TYPE_RE = re.compile(r"timestamp|datetime|date", re.IGNORECASE)
_INTEGER_TYPE_RE = re.compile(
    r"(?<![a-z])(?:u?(?:tiny|small|big|huge)?int(?:eger|\d+)?|long)(?![a-z])",
    re.IGNORECASE,
)
_TIME_LIKE_NAME_RE = re.compile(r"time|date", re.IGNORECASE)

_NAME_SUFFIXES: Tuple[Tuple[str, Precision], ...] = (
    ("_ns", Precision.NANOS),
    ("_us", Precision.MICROS),
    ("_μs", Precision.MICROS),
    ("_ms", Precision.MILLIS),
    ("_s", Precision.SECONDS),
)
# "usec" must be tested before "sec"
_NAME_FRAGMENTS: Tuple[Tuple[str, Precision], ...] = (
    ("nano", Precision.NANOS),
    ("nsec", Precision.NANOS),
    ("micro", Precision.MICROS),
    ("usec", Precision.MICROS),
    ("milli", Precision.MILLIS),
    ("msec", Precision.MILLIS),
    ("sec", Precision.SECONDS),
)


def _is_integer_type(declared_type: str) -> bool:
    return bool(declared_type) and bool(_INTEGER_TYPE_RE.search(declared_type))


def _rule_explicit_unit(name: str, declared_type: str, unit: Optional[Precision]) -> Optional[TimestampRepresentation]:
    if unit is not None:
        return TimestampRepresentation.epoch(unit, "explicit_unit")
    return None


def _rule_datetime_type(name: str, declared_type: str, unit: Optional[Precision]) -> Optional[TimestampRepresentation]:
    if declared_type and _DATETIME_TYPE_RE.search(declared_type):
        return TimestampRepresentation.datetime("datetime_type")
    return None


def _rule_name_precision(name: str, declared_type: str, unit: Optional[Precision]) -> Optional[TimestampRepresentation]:
    lowered = name.lower()
    for suffix, precision in _NAME_SUFFIXES:
        if lowered.endswith(suffix):
            return TimestampRepresentation.epoch(precision, "name_suffix")
    for fragment, precision in _NAME_FRAGMENTS:
        if fragment in lowered:
            return TimestampRepresentation.epoch(precision, "name_fragment")
    return None


def _rule_convention_field(name: str, declared_type: str, unit: Optional[Precision]) -> Optional[TimestampRepresentation]:
    lowered = name.lower()
    if lowered in HIGH_PRECISION_FIELDS:
        return TimestampRepresentation.epoch(Precision.NANOS, "high_precision_field")
    if lowered in MILLISECOND_FIELDS:
        return TimestampRepresentation.epoch(Precision.MILLIS, "millisecond_field")
    return None


def _rule_integer_time_name(name: str, declared_type: str, unit: Optional[Precision]) -> Optional[TimestampRepresentation]:
    if _is_integer_type(declared_type) and _TIME_LIKE_NAME_RE.search(name):
        return TimestampRepresentation.epoch(Precision.MILLIS, "integer_time_name")
    return None


def _rule_default(name: str, declared_type: str, unit: Optional[Precision]) -> Optional[TimestampRepresentation]:
    return TimestampRepresentation.datetime("default")


_Rule = Callable[[str, str, Optional[Precision]], Optional[TimestampRepresentation]]

# Order is significant: several rules can match the same column.
RESOLUTION_RULES: Tuple[Tuple[str, _Rule], ...] = (
    ("explicit_unit", _rule_explicit_unit),
    ("datetime_type", _rule_datetime_type),
    ("name_precision", _rule_name_precision),
    ("convention_field", _rule_convention_field),
    ("integer_time_name", _rule_integer_time_name),
    ("default", _rule_default),
)


def resolve_representation(
    name: str,
    declared_type: Optional[str] = None,
    explicit_unit: Union[Precision, str, None] = None,
) -> TimestampRepresentation:
    """Resolve how column ``name`` stores time. Total: never fails on odd input."""

    name = (name or "").strip()
    declared_type = (declared_type or "").strip()
    unit = Precision.parse(explicit_unit)

    for rule_name, rule in RESOLUTION_RULES:
        result = rule(name, declared_type, unit)
        if result is not None:
            logger.debug(
                "Column %r (type=%r, unit=%s) resolved to %s via %s",
                name,
                declared_type,
                unit.value if unit else None,
                result.to_dict(),
                rule_name,
            )
            return result
    # _rule_default always matches
    raise AssertionError("resolution rules exhausted")


def _coerce_column(column: ColumnLike) -> Optional[ColumnTimeMetadata]:
    if isinstance(column, ColumnTimeMetadata):
        return column
    if isinstance(column, dict):
        try:
            return ColumnTimeMetadata.from_dict(column)
        except ValueError as exc:
            logger.warning("Ignoring column with invalid time unit: %s", exc)
            return None
    return None


def is_time_candidate(column: ColumnTimeMetadata) -> bool:
    """Return True when a column plausibly holds time values."""

    name = column.name.lower()
    declared_type = column.declared_type.lower()
    if not name:
        return False
    if column.explicit_unit is not None:
        return True
    if name in HIGH_PRECISION_FIELDS or name in MILLISECOND_FIELDS:
        return True
    if "time" in name or "date" in name:
        return True
    if name.endswith(("_at", "_ts", "_ns", "_us", "_ms")):
        return True
    return any(token in declared_type for token in ("timestamp", "datetime", "date", "time"))


def identify_time_fields(columns: Iterable[ColumnLike]) -> List[str]:
    """Return the names of time-candidate columns, in schema order, without duplicates."""

    seen: set[str] = set()
    fields: List[str] = []
    for raw in columns or []:
        column = _coerce_column(raw)
        if column is None or column.name in seen:
            continue
        if is_time_candidate(column):
            seen.add(column.name)
            fields.append(column.name)
    return fields


PREFERRED_TIME_FIELDS = (
    "__timestamp",
    "time",
    "timestamp",
    "date",
    "created_at",
    "time_sec",
    "time_usec",
    "create_date",
    "datetime",
)


def find_best_time_field(columns: Sequence[ColumnLike]) -> Optional[str]:
    """Pick the most likely time column of a table, or None."""

    resolved = [c for c in (_coerce_column(raw) for raw in columns or []) if c is not None and c.name]
    by_lower = {c.name.lower(): c.name for c in reversed(resolved)}

    for preferred in PREFERRED_TIME_FIELDS:
        if preferred in by_lower:
            return by_lower[preferred]

    for column in resolved:
        if _TIME_LIKE_NAME_RE.search(column.name):
            return column.name

    for column in resolved:
        if _DATETIME_TYPE_RE.search(column.declared_type):
            return column.name

    return None


def infer_precision_from_samples(values: Iterable[Any]) -> Precision:
    """Guess an epoch precision from the magnitude of sample values.

    Non-numeric and non-positive samples are ignored; with no usable sample
    the answer is milliseconds.
    """
    samples = [
        float(v)
        for v in values or []
        if isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0
    ]
    if not samples:
        return Precision.MILLIS

    average = sum(samples) / len(samples)
    if average >= 1e18:
        return Precision.NANOS
    if average >= 1e15:
        return Precision.MICROS
    if average >= 1e12:
        return Precision.MILLIS
    if average >= 1e9:
        return Precision.SECONDS
    return Precision.MILLIS


__all__ = [
    "Precision",
    "RepresentationKind",
    "TimestampRepresentation",
    "ColumnTimeMetadata",
    "RESOLUTION_RULES",
    "HIGH_PRECISION_FIELDS",
    "MILLISECOND_FIELDS",
    "PREFERRED_TIME_FIELDS",
    "resolve_representation",
    "is_time_candidate",
    "identify_time_fields",
    "find_best_time_field",
    "infer_precision_from_samples",
]
