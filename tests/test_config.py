"""Tests for environment-driven configuration."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from timeforge.shared.config import (
    DEFAULT_MAX_DATA_POINTS,
    DEFAULT_MAX_QUERY_LENGTH,
    TimeFilterConfig,
    resolve_timezone,
)


ENV_VARS = (
    "TIMEFORGE_TIMEZONE",
    "TIMEFORGE_MAX_DATA_POINTS",
    "TIMEFORGE_MAX_QUERY_LENGTH",
    "TIMEFORGE_DEFAULT_RANGE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestTimeFilterConfig:
    def test_defaults(self):
        config = TimeFilterConfig.from_env()
        assert config.timezone_name == "UTC"
        assert config.reference_tz is timezone.utc
        assert config.max_data_points == DEFAULT_MAX_DATA_POINTS
        assert config.max_query_length == DEFAULT_MAX_QUERY_LENGTH
        assert config.default_range_label == "Last 1 hour"

    def test_timezone_from_env(self, monkeypatch):
        monkeypatch.setenv("TIMEFORGE_TIMEZONE", "America/New_York")
        config = TimeFilterConfig.from_env()
        assert config.timezone_name == "America/New_York"
        winter = datetime(2024, 1, 2, 12, tzinfo=config.reference_tz)
        assert winter.utcoffset() == timedelta(hours=-5)

    def test_unknown_timezone_falls_back_to_utc(self, monkeypatch):
        monkeypatch.setenv("TIMEFORGE_TIMEZONE", "Mars/Olympus_Mons")
        config = TimeFilterConfig.from_env()
        assert config.timezone_name == "UTC"
        assert config.reference_tz is timezone.utc

    @pytest.mark.parametrize("raw,expected", [("500", 500), ("abc", 1000), ("-5", 1000), ("0", 1000)])
    def test_max_data_points(self, monkeypatch, raw, expected):
        monkeypatch.setenv("TIMEFORGE_MAX_DATA_POINTS", raw)
        assert TimeFilterConfig.from_env().max_data_points == expected

    def test_query_length_and_default_range(self, monkeypatch):
        monkeypatch.setenv("TIMEFORGE_MAX_QUERY_LENGTH", "2048")
        monkeypatch.setenv("TIMEFORGE_DEFAULT_RANGE", "Last 24 hours")
        config = TimeFilterConfig.from_env()
        assert config.max_query_length == 2048
        assert config.default_range_label == "Last 24 hours"


class TestResolveTimezone:
    @pytest.mark.parametrize("name", ["UTC", "utc", "Z", "GMT"])
    def test_utc_aliases(self, name):
        assert resolve_timezone(name) is timezone.utc

    def test_iana_name(self):
        assert resolve_timezone("Europe/Berlin") is not None

    def test_unknown(self):
        assert resolve_timezone("Mars/Olympus_Mons") is None
        assert resolve_timezone("") is None
