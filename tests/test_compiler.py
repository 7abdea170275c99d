"""Tests for time filter compilation, endpoint values and interval sizing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from dateutil import tz

from timeforge.sql.compiler import (
    DEFAULT_INTERVAL_SECONDS,
    CompiledPredicate,
    TimeRange,
    build_time_values,
    calculate_interval_seconds,
    compile_time_filter,
    resolve_time_range,
)
from timeforge.sql.errors import UnparseableTimeExpression
from timeforge.sql.representation import Precision, TimestampRepresentation


REFERENCE = datetime(2024, 1, 2, 12, tzinfo=timezone.utc)
LAST_HOUR = TimeRange("now-1h", "now", True, "Last 1 hour")
DATETIME = TimestampRepresentation.datetime()
MILLIS = TimestampRepresentation.epoch(Precision.MILLIS)


class TestTimeRange:
    def test_from_dict_accepts_from_key(self):
        time_range = TimeRange.from_dict({"from": "now-6h", "to": "now", "display": "Last 6 hours"})
        assert time_range == TimeRange("now-6h", "now", True, "Last 6 hours")

    def test_to_dict(self):
        assert LAST_HOUR.to_dict() == {
            "from": "now-1h",
            "to": "now",
            "enabled": True,
            "display": "Last 1 hour",
        }

    def test_is_active(self):
        assert LAST_HOUR.is_active
        assert not TimeRange("now-1h", "now", False).is_active
        assert not TimeRange("", "now").is_active


class TestCompileTimeFilter:
    """Predicate generation for datetime and epoch columns."""

    def test_datetime_column(self):
        predicate = compile_time_filter(LAST_HOUR, DATETIME, "ts", REFERENCE)
        assert predicate == CompiledPredicate("ts >= NOW() - INTERVAL 1 HOUR AND ts <= NOW()", "ts")
        assert str(predicate) == predicate.sql

    def test_epoch_millis_column(self):
        predicate = compile_time_filter(LAST_HOUR, MILLIS, "ts", REFERENCE)
        assert predicate.sql == (
            "ts >= CAST(EXTRACT(EPOCH FROM NOW() - INTERVAL 1 HOUR) * 1000 AS BIGINT) "
            "AND ts <= CAST(EXTRACT(EPOCH FROM NOW()) * 1000 AS BIGINT)"
        )

    def test_epoch_seconds_has_no_multiplier(self):
        predicate = compile_time_filter(
            LAST_HOUR, TimestampRepresentation.epoch(Precision.SECONDS), "ts", REFERENCE
        )
        assert predicate.sql == (
            "ts >= CAST(EXTRACT(EPOCH FROM NOW() - INTERVAL 1 HOUR) AS BIGINT) "
            "AND ts <= CAST(EXTRACT(EPOCH FROM NOW()) AS BIGINT)"
        )

    @pytest.mark.parametrize(
        "precision,scale",
        [
            (Precision.MILLIS, 1000),
            (Precision.MICROS, 1000000),
            (Precision.NANOS, 1000000000),
        ],
    )
    def test_both_endpoints_share_one_scale(self, precision, scale):
        representation = TimestampRepresentation.epoch(precision)
        predicate = compile_time_filter(LAST_HOUR, representation, "ts", REFERENCE)
        assert predicate.sql.count(f" * {scale} AS BIGINT") == 2
        assert predicate.sql.count(" * ") == 2

    def test_snapped_range(self):
        yesterday = TimeRange("now-1d/d", "now/d", True, "Yesterday")
        predicate = compile_time_filter(yesterday, DATETIME, "event_time", REFERENCE)
        assert predicate.sql == (
            "event_time >= DATE_TRUNC('day', NOW() - INTERVAL 1 DAY) "
            "AND event_time <= DATE_TRUNC('day', NOW())"
        )

    def test_absolute_endpoints_on_epoch_column(self):
        time_range = TimeRange("2024-01-02T12:00:00Z", "now")
        predicate = compile_time_filter(time_range, MILLIS, "ts", REFERENCE)
        assert predicate.sql == (
            "ts >= 1704196800000 AND ts <= CAST(EXTRACT(EPOCH FROM NOW()) * 1000 AS BIGINT)"
        )

    def test_absolute_endpoints_on_seconds_column(self):
        time_range = TimeRange("2024-01-02T12:00:00Z", "2024-01-02T13:00:00Z")
        predicate = compile_time_filter(
            time_range, TimestampRepresentation.epoch(Precision.SECONDS), "ts", REFERENCE
        )
        assert predicate.sql == "ts >= 1704196800 AND ts <= 1704200400"

    def test_absolute_endpoints_on_datetime_column(self):
        time_range = TimeRange("2024-01-02T12:00:00Z", "now")
        predicate = compile_time_filter(time_range, DATETIME, "ts", REFERENCE)
        assert predicate.sql == "ts >= '2024-01-02T12:00:00.000Z' AND ts <= NOW()"

    def test_naive_absolute_endpoint_uses_reference_timezone(self):
        reference = datetime(2024, 1, 2, 12, tzinfo=tz.gettz("America/New_York"))
        time_range = TimeRange("2024-01-02 12:00:00", "now")
        predicate = compile_time_filter(time_range, DATETIME, "ts", reference)
        assert predicate.sql.startswith("ts >= '2024-01-02T17:00:00.000Z'")

    @pytest.mark.parametrize(
        "representation",
        [DATETIME, MILLIS, TimestampRepresentation.epoch(Precision.NANOS)],
    )
    def test_disabled_range_never_compiles(self, representation):
        disabled = TimeRange("now-1h", "now", False)
        assert compile_time_filter(disabled, representation, "ts", REFERENCE) is None

    def test_empty_endpoint_is_skip(self):
        assert compile_time_filter(TimeRange("", "now"), DATETIME, "ts", REFERENCE) is None

    def test_empty_column_is_skip(self):
        assert compile_time_filter(LAST_HOUR, DATETIME, "  ", REFERENCE) is None

    def test_unparseable_endpoint_is_skip(self):
        assert compile_time_filter(TimeRange("now-1x", "now"), DATETIME, "ts", REFERENCE) is None

    def test_reference_is_optional(self):
        assert compile_time_filter(LAST_HOUR, DATETIME, "ts") is not None


class TestTimeValues:
    def test_resolve_time_range(self):
        start, end = resolve_time_range(LAST_HOUR, REFERENCE)
        assert start == datetime(2024, 1, 2, 11, tzinfo=timezone.utc)
        assert end == REFERENCE

    def test_resolve_inactive_range(self):
        assert resolve_time_range(TimeRange("now-1h", "now", False), REFERENCE) is None

    def test_resolve_bad_range_raises(self):
        with pytest.raises(UnparseableTimeExpression):
            resolve_time_range(TimeRange("now-1x", "now"), REFERENCE)

    def test_datetime_values(self):
        assert build_time_values(LAST_HOUR, DATETIME, REFERENCE) == (
            "'2024-01-02T11:00:00.000Z'",
            "'2024-01-02T12:00:00.000Z'",
        )

    def test_epoch_values(self):
        assert build_time_values(LAST_HOUR, MILLIS, REFERENCE) == ("1704193200000", "1704196800000")


class TestCalculateInterval:
    @pytest.mark.parametrize(
        "from_,expected",
        [("now-5m", 1), ("now-1h", 3), ("now-24h", 86), ("now-7d", 604)],
    )
    def test_interval_scales_with_duration(self, from_, expected):
        time_range = TimeRange(from_, "now")
        assert calculate_interval_seconds(time_range, REFERENCE, 1000) == expected

    def test_fewer_points_widen_the_interval(self):
        assert calculate_interval_seconds(LAST_HOUR, REFERENCE, 60) == 60

    def test_inactive_range_uses_default(self):
        disabled = TimeRange("now-1h", "now", False)
        assert calculate_interval_seconds(disabled, REFERENCE) == DEFAULT_INTERVAL_SECONDS

    def test_non_positive_points_rejected(self):
        with pytest.raises(ValueError):
            calculate_interval_seconds(LAST_HOUR, REFERENCE, 0)
