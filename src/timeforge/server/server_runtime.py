from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from timeforge.shared.config import TimeFilterConfig, resolve_timezone
from timeforge.sql.compiler import TimeRange
from timeforge.sql.expressions import current_reference_time
from timeforge.sql.presets import DEFAULT_TIME_RANGE, find_quick_range


logger = logging.getLogger(__name__)


class ServerRuntime:
    """Holds configuration and shared defaults for the MCP server."""

    def __init__(self, config: Optional[TimeFilterConfig] = None) -> None:
        self.config = config or TimeFilterConfig()
        self._default_range: Optional[TimeRange] = None
        self._server_ready = False

    # ------------------------------------------------------------------
    # Properties exposing runtime state
    # ------------------------------------------------------------------
    @property
    def server_ready(self) -> bool:
        return self._server_ready

    @property
    def default_range(self) -> TimeRange:
        if self._default_range is None:
            self._default_range = self._resolve_default_range()
        return self._default_range

    # ------------------------------------------------------------------
    # Time helpers
    # ------------------------------------------------------------------
    def reference_now(self, timezone_name: Optional[str] = None) -> datetime:
        """Read the clock once, in ``timezone_name`` or the configured zone."""

        tz = self.config.reference_tz
        if timezone_name:
            resolved = resolve_timezone(timezone_name)
            if resolved is None:
                raise ValueError(f"Unknown timezone '{timezone_name}'")
            tz = resolved
        return current_reference_time(tz)

    def _resolve_default_range(self) -> TimeRange:
        preset = find_quick_range(self.config.default_range_label)
        if preset is None:
            logger.warning(
                "Default range %r matches no quick range. Using %s",
                self.config.default_range_label,
                DEFAULT_TIME_RANGE.display,
            )
            return DEFAULT_TIME_RANGE
        return preset

    # ------------------------------------------------------------------
    # Initialization routines
    # ------------------------------------------------------------------
    def initialize_critical_components(self) -> None:
        """Resolve defaults up front so the first tool call does no setup."""

        logger.info("🔍 Initializing time filter runtime...")
        logger.info("✅ Reference timezone: %s", self.config.timezone_name)
        logger.info("✅ Default time range: %s", self.default_range.display)
        self._server_ready = True
        logger.info("✅ Runtime initialized - server ready to accept requests")


__all__ = ["ServerRuntime"]
