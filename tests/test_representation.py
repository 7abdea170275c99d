"""Tests for timestamp representation inference and time-field detection."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from timeforge.sql.representation import (
    ColumnTimeMetadata,
    Precision,
    RepresentationKind,
    TimestampRepresentation,
    find_best_time_field,
    identify_time_fields,
    infer_precision_from_samples,
    is_time_candidate,
    resolve_representation,
)


INSTANT = datetime(2024, 1, 2, 12, tzinfo=timezone.utc)


class TestPrecision:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("s", Precision.SECONDS),
            ("ms", Precision.MILLIS),
            ("us", Precision.MICROS),
            ("μs", Precision.MICROS),
            ("ns", Precision.NANOS),
            ("Nanoseconds", Precision.NANOS),
            (Precision.MILLIS, Precision.MILLIS),
        ],
    )
    def test_parse(self, value, expected):
        assert Precision.parse(value) is expected

    def test_parse_empty(self):
        assert Precision.parse(None) is None
        assert Precision.parse("  ") is None

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            Precision.parse("fortnights")

    @pytest.mark.parametrize(
        "precision,expected",
        [
            (Precision.SECONDS, 1704196800),
            (Precision.MILLIS, 1704196800000),
            (Precision.MICROS, 1704196800000000),
            (Precision.NANOS, 1704196800000000000),
        ],
    )
    def test_from_instant(self, precision, expected):
        assert precision.from_instant(INSTANT) == expected

    def test_from_instant_naive_is_utc(self):
        assert Precision.SECONDS.from_instant(datetime(2024, 1, 2, 12)) == 1704196800


class TestTimestampRepresentation:
    def test_epoch_requires_precision(self):
        with pytest.raises(ValueError):
            TimestampRepresentation(RepresentationKind.EPOCH)

    def test_datetime_rejects_precision(self):
        with pytest.raises(ValueError):
            TimestampRepresentation(RepresentationKind.DATETIME, Precision.MILLIS)

    def test_rule_is_not_part_of_equality(self):
        assert TimestampRepresentation.epoch(Precision.MILLIS, "a") == TimestampRepresentation.epoch(
            Precision.MILLIS, "b"
        )

    def test_to_dict(self):
        assert TimestampRepresentation.epoch(Precision.NANOS, "explicit_unit").to_dict() == {
            "kind": "epoch",
            "precision": "ns",
            "rule": "explicit_unit",
        }


class TestResolveRepresentation:
    """Ordered rule cascade, first match wins."""

    def test_high_precision_convention_field(self):
        result = resolve_representation("__timestamp", "BIGINT", None)
        assert result == TimestampRepresentation.epoch(Precision.NANOS)
        assert result.rule == "high_precision_field"

    def test_explicit_unit_wins_over_declared_type(self):
        result = resolve_representation("ts", "TIMESTAMP", "ms")
        assert result == TimestampRepresentation.epoch(Precision.MILLIS)
        assert result.rule == "explicit_unit"

    def test_datetime_type_wins_over_name(self):
        result = resolve_representation("created_at", "TIMESTAMP WITH TIME ZONE")
        assert result == TimestampRepresentation.datetime()
        assert result.rule == "datetime_type"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("time_ns", Precision.NANOS),
            ("time_us", Precision.MICROS),
            ("time_μs", Precision.MICROS),
            ("time_ms", Precision.MILLIS),
            ("time_s", Precision.SECONDS),
            ("time_usec", Precision.MICROS),
            ("time_sec", Precision.SECONDS),
            ("elapsed_millis", Precision.MILLIS),
            ("ingest_nanos", Precision.NANOS),
            ("EVENT_MICROS", Precision.MICROS),
        ],
    )
    def test_name_carries_precision(self, name, expected):
        assert resolve_representation(name, "BIGINT") == TimestampRepresentation.epoch(expected)

    @pytest.mark.parametrize("name", ["created_at", "updated_at", "create_date"])
    def test_millisecond_convention_fields(self, name):
        result = resolve_representation(name, "BIGINT")
        assert result == TimestampRepresentation.epoch(Precision.MILLIS)
        assert result.rule == "millisecond_field"

    @pytest.mark.parametrize("declared_type", ["BIGINT", "INT64", "UBIGINT", "integer", "LONG"])
    def test_integer_time_name_defaults_to_millis(self, declared_type):
        result = resolve_representation("event_time", declared_type)
        assert result == TimestampRepresentation.epoch(Precision.MILLIS)
        assert result.rule == "integer_time_name"

    def test_non_integer_type_with_time_name(self):
        assert resolve_representation("event_time", "VARCHAR").rule == "default"

    def test_point_is_not_an_integer_type(self):
        assert resolve_representation("event_time", "POINT").rule == "default"

    def test_default_is_datetime(self):
        result = resolve_representation("value", "DOUBLE")
        assert result == TimestampRepresentation.datetime()
        assert result.rule == "default"

    def test_total_on_empty_input(self):
        assert resolve_representation("", None, None).kind is RepresentationKind.DATETIME

    def test_metadata_representation(self):
        column = ColumnTimeMetadata.from_dict({"columnName": "ts", "dataType": "BIGINT", "timeUnit": "ns"})
        assert column.explicit_unit is Precision.NANOS
        assert column.representation() == TimestampRepresentation.epoch(Precision.NANOS)

    def test_metadata_plain_keys(self):
        column = ColumnTimeMetadata.from_dict({"name": " event_time ", "type": "TIMESTAMP"})
        assert column.name == "event_time"
        assert column.representation().kind is RepresentationKind.DATETIME


class TestTimeFieldDetection:
    @pytest.fixture
    def columns(self):
        return [
            {"name": "id", "type": "BIGINT"},
            {"name": "event_time", "type": "TIMESTAMP"},
            {"name": "created_at", "type": "BIGINT"},
            {"name": "status", "type": "VARCHAR"},
            {"name": "ts_ms", "type": "BIGINT"},
            {"name": "event_time", "type": "TIMESTAMP"},
        ]

    def test_identify_time_fields(self, columns):
        assert identify_time_fields(columns) == ["event_time", "created_at", "ts_ms"]

    def test_candidate_by_type(self):
        assert is_time_candidate(ColumnTimeMetadata("observed", "DATETIME"))

    def test_candidate_by_explicit_unit(self):
        assert is_time_candidate(ColumnTimeMetadata("t0", "BIGINT", Precision.SECONDS))

    def test_invalid_unit_entries_are_skipped(self):
        assert identify_time_fields([{"name": "ts", "timeUnit": "weeks"}]) == []

    def test_best_field_uses_priority_list(self):
        columns = [{"name": "id"}, {"name": "event_time"}, {"name": "Timestamp"}]
        assert find_best_time_field(columns) == "Timestamp"

    def test_high_precision_field_is_preferred(self):
        columns = [{"name": "time"}, {"name": "__timestamp"}]
        assert find_best_time_field(columns) == "__timestamp"

    def test_best_field_falls_back_to_name_heuristic(self):
        assert find_best_time_field([{"name": "id"}, {"name": "event_date"}]) == "event_date"

    def test_best_field_falls_back_to_type(self):
        assert find_best_time_field([{"name": "x", "type": "TIMESTAMP"}]) == "x"

    def test_no_time_field(self):
        assert find_best_time_field([{"name": "id", "type": "INT"}]) is None
        assert find_best_time_field([]) is None


class TestInferPrecisionFromSamples:
    @pytest.mark.parametrize(
        "values,expected",
        [
            ([1704196800], Precision.SECONDS),
            ([1_000_000_000], Precision.SECONDS),
            ([1_000_000_000_000], Precision.MILLIS),
            ([1_000_000_000_000_000], Precision.MICROS),
            ([1704196800000], Precision.MILLIS),
            ([1704196800000000], Precision.MICROS),
            ([1704196800000000000], Precision.NANOS),
            ([], Precision.MILLIS),
            (["abc", None, True], Precision.MILLIS),
        ],
    )
    def test_magnitude_buckets(self, values, expected):
        assert infer_precision_from_samples(values) is expected
