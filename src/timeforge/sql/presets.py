"""Quick time ranges offered by the time picker."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from rapidfuzz import fuzz, process, utils

from .compiler import TimeRange

logger = logging.getLogger(__name__)

DEFAULT_TIME_RANGE = TimeRange("now-1h", "now", True, "Last 1 hour")
NO_TIME_FILTER = TimeRange("", "", False, "No time filter")

QUICK_RANGES: Tuple[TimeRange, ...] = (
    TimeRange("now-5m", "now", True, "Last 5 minutes"),
    TimeRange("now-15m", "now", True, "Last 15 minutes"),
    TimeRange("now-30m", "now", True, "Last 30 minutes"),
    DEFAULT_TIME_RANGE,
    TimeRange("now-3h", "now", True, "Last 3 hours"),
    TimeRange("now-6h", "now", True, "Last 6 hours"),
    TimeRange("now-12h", "now", True, "Last 12 hours"),
    TimeRange("now-24h", "now", True, "Last 24 hours"),
    TimeRange("now-2d", "now", True, "Last 2 days"),
    TimeRange("now-7d", "now", True, "Last 7 days"),
    TimeRange("now-30d", "now", True, "Last 30 days"),
    TimeRange("now-90d", "now", True, "Last 90 days"),
    TimeRange("now-6M", "now", True, "Last 6 months"),
    TimeRange("now-1y", "now", True, "Last 1 year"),
    TimeRange("now/d", "now", True, "Today"),
    TimeRange("now-1d/d", "now/d", True, "Yesterday"),
    TimeRange("now/w", "now", True, "This week"),
    TimeRange("now-1w/w", "now/w", True, "Previous week"),
    TimeRange("now/M", "now", True, "This month"),
    TimeRange("now-1M/M", "now/M", True, "Previous month"),
    TimeRange("now/y", "now", True, "This year"),
    TimeRange("now-1y/y", "now/y", True, "Previous year"),
)

DEFAULT_SCORE_CUTOFF = 80.0

_DIGITS_RE = re.compile(r"\d+")


def _all_presets() -> List[TimeRange]:
    return [*QUICK_RANGES, NO_TIME_FILTER]


def list_quick_ranges() -> List[Dict[str, object]]:
    return [preset.to_dict() for preset in _all_presets()]


def find_quick_range(label: str, score_cutoff: float = DEFAULT_SCORE_CUTOFF) -> Optional[TimeRange]:
    """Look up a preset by display label, falling back to fuzzy matching.

    ``"last 24 hrs"`` finds "Last 24 hours". Candidates must carry the same
    numbers as the label, so "Last 4 hours" never resolves to "Last 24
    hours".
    """
    if not label or not label.strip():
        return None
    wanted = label.strip().lower()

    for preset in _all_presets():
        if preset.display.lower() == wanted:
            return preset

    digits = _DIGITS_RE.findall(wanted)
    candidates = [p for p in _all_presets() if _DIGITS_RE.findall(p.display) == digits]
    if not candidates:
        return None

    match = process.extractOne(
        wanted,
        [p.display for p in candidates],
        scorer=fuzz.WRatio,
        processor=utils.default_process,
        score_cutoff=score_cutoff,
    )
    if match is None:
        logger.debug("No quick range matches %r", label)
        return None
    choice, score, index = match
    logger.debug("Quick range %r matched %r (score=%.1f)", label, choice, score)
    return candidates[index]


__all__ = [
    "DEFAULT_TIME_RANGE",
    "NO_TIME_FILTER",
    "QUICK_RANGES",
    "list_quick_ranges",
    "find_quick_range",
]
