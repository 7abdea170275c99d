from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from fastmcp import FastMCP

from timeforge.server.server_runtime import ServerRuntime
from timeforge.shared.validation import validate_time_macros, validate_time_range
from timeforge.sql.compiler import CompiledPredicate, TimeRange, compile_time_filter
from timeforge.sql.errors import TimeFilterError
from timeforge.sql.expressions import parse_time_expression, resolve_instant, to_sql_expression
from timeforge.sql.presets import find_quick_range, list_quick_ranges
from timeforge.sql.processor import process_query
from timeforge.sql.representation import (
    ColumnTimeMetadata,
    Precision,
    find_best_time_field,
    identify_time_fields,
    resolve_representation,
)
from timeforge.sql.splicer import has_existing_time_filter, inject_time_filter

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Argument helpers
# ----------------------------------------------------------------------
def reference_from_args(
    runtime: ServerRuntime,
    reference_time: Optional[str] = None,
    timezone: Optional[str] = None,
) -> datetime:
    """Fixed reference instant from an ISO string, or the current time."""

    now = runtime.reference_now(timezone)
    if not reference_time:
        return now
    try:
        parsed = date_parser.isoparse(reference_time)
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Invalid reference_time '{reference_time}': {exc}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=now.tzinfo)
    return parsed


def range_from_args(
    runtime: ServerRuntime,
    time_from: Optional[str] = None,
    time_to: Optional[str] = None,
    preset: Optional[str] = None,
    enabled: bool = True,
) -> TimeRange:
    """Build a TimeRange from a preset label, explicit endpoints, or the default."""

    if preset:
        match = find_quick_range(preset)
        if match is None:
            raise ValueError(f"Unknown quick range '{preset}'")
        return match
    if not time_from and not time_to:
        return runtime.default_range if enabled else TimeRange(enabled=False)
    return TimeRange(from_=time_from or "", to=time_to or "", enabled=enabled)


def column_from_args(
    column: Optional[str],
    data_type: Optional[str] = None,
    time_unit: Optional[str] = None,
) -> Optional[ColumnTimeMetadata]:
    if not column or not column.strip():
        return None
    return ColumnTimeMetadata(
        name=column.strip(),
        declared_type=(data_type or "").strip(),
        explicit_unit=Precision.parse(time_unit),
    )


# ----------------------------------------------------------------------
# Tool implementations
# ----------------------------------------------------------------------
def resolve_expression(
    runtime: ServerRuntime,
    expression: str,
    reference_time: Optional[str] = None,
    timezone: Optional[str] = None,
) -> Dict[str, Any]:
    reference_now = reference_from_args(runtime, reference_time, timezone)
    parsed = parse_time_expression(expression, reference_now.tzinfo)
    instant = resolve_instant(parsed, reference_now)
    return {
        "expression": parsed.text,
        "kind": parsed.kind.value,
        "reference_time": reference_now.isoformat(),
        "instant": instant.isoformat(),
        "epoch_ms": Precision.MILLIS.from_instant(instant),
        "sql": to_sql_expression(parsed),
    }


def resolve_column(
    name: str,
    data_type: Optional[str] = None,
    time_unit: Optional[str] = None,
) -> Dict[str, Any]:
    representation = resolve_representation(name, data_type, time_unit)
    return {"column": name, "representation": representation.to_dict()}


def identify_columns(columns: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "time_fields": identify_time_fields(columns),
        "best_time_field": find_best_time_field(columns),
    }


def compile_filter(
    runtime: ServerRuntime,
    column: str,
    time_from: Optional[str] = None,
    time_to: Optional[str] = None,
    preset: Optional[str] = None,
    data_type: Optional[str] = None,
    time_unit: Optional[str] = None,
    enabled: bool = True,
) -> Dict[str, Any]:
    time_range = range_from_args(runtime, time_from, time_to, preset, enabled)
    metadata = column_from_args(column, data_type, time_unit)
    representation = metadata.representation() if metadata else resolve_representation("")
    predicate = compile_time_filter(
        time_range,
        representation,
        metadata.name if metadata else "",
        runtime.reference_now(),
    )
    return {
        "predicate": predicate.sql if predicate else None,
        "column": metadata.name if metadata else None,
        "representation": representation.to_dict(),
        "time_range": time_range.to_dict(),
    }


def inject_filter(query: str, predicate: str, column: str) -> Dict[str, Any]:
    compiled = CompiledPredicate(sql=predicate.strip(), column=(column or "").strip())
    rewritten = inject_time_filter(query, compiled)
    return {
        "query": rewritten,
        "injected": rewritten != query,
        "had_time_filter": has_existing_time_filter(query),
    }


def preview_query(
    runtime: ServerRuntime,
    query: str,
    column: Optional[str] = None,
    time_from: Optional[str] = None,
    time_to: Optional[str] = None,
    preset: Optional[str] = None,
    data_type: Optional[str] = None,
    time_unit: Optional[str] = None,
    enabled: bool = True,
    reference_time: Optional[str] = None,
) -> Dict[str, Any]:
    time_range = range_from_args(runtime, time_from, time_to, preset, enabled)
    metadata = column_from_args(column, data_type, time_unit)
    reference_now = reference_from_args(runtime, reference_time)
    processed = process_query(query, time_range, metadata, reference_now, runtime.config)
    payload = processed.to_dict()
    payload["time_range"] = time_range.to_dict()
    payload["reference_time"] = reference_now.isoformat()
    return payload


def validate_range(
    runtime: ServerRuntime,
    time_from: str,
    time_to: str,
    query: Optional[str] = None,
    reference_time: Optional[str] = None,
) -> Dict[str, Any]:
    reference_now = reference_from_args(runtime, reference_time)
    result = validate_time_range(TimeRange(from_=time_from, to=time_to), reference_now)
    if query is not None:
        macros = validate_time_macros(query, runtime.config.max_query_length)
        result.add_issues(macros.errors + macros.warnings + macros.info)
    return result.to_dict()


# ----------------------------------------------------------------------
# Registration
# ----------------------------------------------------------------------
def register_timefilter_tools(mcp: FastMCP, runtime: ServerRuntime) -> None:
    """Register time-filter tooling with the MCP runtime."""

    @mcp.tool
    def timefilter_list_quick_ranges() -> Dict[str, Any]:
        """Return the quick time ranges offered by the time picker and the default range."""

        ranges = list_quick_ranges()
        logger.info("Listing %d quick ranges", len(ranges))
        return {"quick_ranges": ranges, "default": runtime.default_range.to_dict()}

    @mcp.tool
    def timefilter_resolve_expression(
        expression: str,
        reference_time: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Resolve a time expression to a concrete instant and to deferred SQL.

        Args:
            expression: Relative expression (now, now-24h, now-1d/d, now/w)
                        or an absolute timestamp / epoch
            reference_time: Optional ISO timestamp used as "now"
            timezone: Optional IANA timezone for snapping

        Returns:
            Dictionary with expression kind, resolved instant, epoch millis and SQL
        """
        try:
            result = resolve_expression(runtime, expression, reference_time, timezone)
            logger.info("Resolved time expression %s -> %s", expression, result["instant"])
            return result
        except (TimeFilterError, ValueError) as exc:
            logger.warning("Failed to resolve time expression: %s", exc)
            return {"error": str(exc)}

    @mcp.tool
    def timefilter_resolve_column(
        name: str,
        data_type: Optional[str] = None,
        time_unit: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Infer how a column stores time: datetime, or integer epoch at s/ms/us/ns.

        Args:
            name: Column name
            data_type: Declared column type (e.g., 'BIGINT', 'TIMESTAMP')
            time_unit: Optional explicit unit override ('s', 'ms', 'us', 'ns')
        """
        try:
            result = resolve_column(name, data_type, time_unit)
        except ValueError as exc:
            return {"error": str(exc)}
        logger.info("Column %s resolved to %s", name, result["representation"])
        return result

    @mcp.tool
    def timefilter_identify_time_fields(columns: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Detect time columns in a table schema.

        Args:
            columns: Schema entries with 'columnName'/'name', 'dataType'/'type'
                     and optional 'timeUnit'

        Returns:
            Candidate time fields in schema order and the preferred one
        """
        result = identify_columns(columns)
        logger.info("Identified %d time fields", len(result["time_fields"]))
        return result

    @mcp.tool
    def timefilter_compile(
        column: str,
        time_from: Optional[str] = None,
        time_to: Optional[str] = None,
        preset: Optional[str] = None,
        data_type: Optional[str] = None,
        time_unit: Optional[str] = None,
        enabled: bool = True,
    ) -> Dict[str, Any]:
        """
        Compile a time range into a SQL predicate for one column.

        Args:
            column: Time column to constrain
            time_from: Range start (e.g., 'now-24h')
            time_to: Range end (e.g., 'now')
            preset: Quick range label instead of explicit endpoints (e.g., 'Last 7 days')
            data_type: Declared column type
            time_unit: Optional explicit epoch unit
            enabled: False disables filtering

        Returns:
            Dictionary with 'predicate' (None when no filter applies)
        """
        try:
            result = compile_filter(
                runtime, column, time_from, time_to, preset, data_type, time_unit, enabled
            )
        except (TimeFilterError, ValueError) as exc:
            logger.warning("Failed to compile time filter: %s", exc)
            return {"error": str(exc)}
        logger.info("Compiled time filter for %s: %s", column, result["predicate"])
        return result

    @mcp.tool
    def timefilter_inject(query: str, predicate: str, column: str) -> Dict[str, Any]:
        """
        Splice a compiled predicate into a SQL query.

        Queries that already filter on time are returned unchanged.
        """
        try:
            result = inject_filter(query, predicate, column)
        except TimeFilterError as exc:
            logger.warning("Failed to inject time filter: %s", exc)
            return {"error": str(exc)}
        logger.info("Time filter injected=%s", result["injected"])
        return result

    @mcp.tool
    def timefilter_preview_query(
        query: str,
        column: Optional[str] = None,
        time_from: Optional[str] = None,
        time_to: Optional[str] = None,
        preset: Optional[str] = None,
        data_type: Optional[str] = None,
        time_unit: Optional[str] = None,
        enabled: bool = True,
        reference_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Show the query exactly as it would be executed for a time range.

        Time macros ($__timeFilter, $__timeField, $__timeFrom, $__timeTo,
        $__interval) are expanded; other queries get the time filter spliced in.
        Without endpoints or a preset the default range is used.
        """
        try:
            result = preview_query(
                runtime,
                query,
                column,
                time_from,
                time_to,
                preset,
                data_type,
                time_unit,
                enabled,
                reference_time,
            )
        except (TimeFilterError, ValueError) as exc:
            logger.warning("Failed to preview query: %s", exc)
            return {"error": str(exc)}
        logger.info(
            "Previewed query (injected=%s, skipped=%s)",
            result["injected"],
            result["skipped_reason"],
        )
        return result

    @mcp.tool
    def timefilter_validate_range(
        time_from: str,
        time_to: str,
        query: Optional[str] = None,
        reference_time: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate a time range and, optionally, the time macros of a query.

        Returns:
            Validation results with errors, warnings and suggestions
        """
        try:
            result = validate_range(runtime, time_from, time_to, query, reference_time)
        except ValueError as exc:
            return {"error": str(exc)}
        logger.info(
            "Validated range %s to %s: valid=%s",
            time_from,
            time_to,
            result["valid"],
        )
        return result


__all__ = [
    "register_timefilter_tools",
    "reference_from_args",
    "range_from_args",
    "column_from_args",
    "resolve_expression",
    "resolve_column",
    "identify_columns",
    "compile_filter",
    "inject_filter",
    "preview_query",
    "validate_range",
]
