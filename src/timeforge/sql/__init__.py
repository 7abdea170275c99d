"""
SQL time-filter engine.

This module provides time expression parsing, timestamp representation
inference, predicate compilation and query splicing for the analytical
query console.
"""

from .compiler import CompiledPredicate, TimeRange, compile_time_filter
from .errors import AmbiguousColumnMissing, TimeFilterError, UnparseableTimeExpression
from .expressions import TimeExpression, parse_time_expression, resolve_instant, to_sql_expression
from .processor import ProcessedQuery, process_query
from .representation import ColumnTimeMetadata, Precision, TimestampRepresentation, resolve_representation
from .splicer import has_existing_time_filter, inject_time_filter

__all__ = [
    'AmbiguousColumnMissing',
    'ColumnTimeMetadata',
    'CompiledPredicate',
    'Precision',
    'ProcessedQuery',
    'TimeExpression',
    'TimeFilterError',
    'TimeRange',
    'TimestampRepresentation',
    'UnparseableTimeExpression',
    'compile_time_filter',
    'has_existing_time_filter',
    'inject_time_filter',
    'parse_time_expression',
    'process_query',
    'resolve_instant',
    'resolve_representation',
    'to_sql_expression',
]
