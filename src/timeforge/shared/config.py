"""Configuration management for the time-filter engine and server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Optional

from dateutil import tz

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
DEFAULT_MAX_DATA_POINTS = 1000
DEFAULT_MAX_QUERY_LENGTH = 100_000
DEFAULT_RANGE_LABEL = "Last 1 hour"


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer. Using default: %d", name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s must be positive. Using default: %d", name, default)
        return default
    return value


@dataclass
class TimeFilterConfig:
    """Settings shared by the engine entry points."""

    timezone_name: str = DEFAULT_TIMEZONE
    max_data_points: int = DEFAULT_MAX_DATA_POINTS
    max_query_length: int = DEFAULT_MAX_QUERY_LENGTH
    default_range_label: str = DEFAULT_RANGE_LABEL
    reference_tz: tzinfo = field(default=timezone.utc, repr=False)

    @classmethod
    def from_env(cls) -> TimeFilterConfig:
        """Load configuration from environment variables.

        Environment
        -----------
        TIMEFORGE_TIMEZONE:
            Reference timezone for snapping and for timestamps without an
            offset. Unknown names fall back to UTC.
        TIMEFORGE_MAX_DATA_POINTS:
            Upper bound on points per series when sizing ``$__interval``.
        TIMEFORGE_MAX_QUERY_LENGTH:
            Longest query accepted by the server tools.
        TIMEFORGE_DEFAULT_RANGE:
            Quick-range label used when a caller gives no range.
        """
        timezone_name = os.getenv("TIMEFORGE_TIMEZONE", DEFAULT_TIMEZONE).strip() or DEFAULT_TIMEZONE
        reference_tz = resolve_timezone(timezone_name)
        if reference_tz is None:
            logger.warning("Unknown timezone %r. Using default: %s", timezone_name, DEFAULT_TIMEZONE)
            timezone_name = DEFAULT_TIMEZONE
            reference_tz = timezone.utc

        config = cls(
            timezone_name=timezone_name,
            max_data_points=_int_from_env("TIMEFORGE_MAX_DATA_POINTS", DEFAULT_MAX_DATA_POINTS),
            max_query_length=_int_from_env("TIMEFORGE_MAX_QUERY_LENGTH", DEFAULT_MAX_QUERY_LENGTH),
            default_range_label=os.getenv("TIMEFORGE_DEFAULT_RANGE", DEFAULT_RANGE_LABEL).strip()
            or DEFAULT_RANGE_LABEL,
            reference_tz=reference_tz,
        )
        logger.info(
            "Time filter config loaded: timezone=%s, max_data_points=%d, default_range=%s",
            config.timezone_name,
            config.max_data_points,
            config.default_range_label,
        )
        return config


def resolve_timezone(name: str) -> Optional[tzinfo]:
    """Return a tzinfo for an IANA name or ``UTC``, or None if unknown."""

    if not name:
        return None
    if name.upper() in ("UTC", "Z", "GMT"):
        return timezone.utc
    return tz.gettz(name)


__all__ = ["TimeFilterConfig", "resolve_timezone"]
