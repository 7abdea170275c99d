"""Splice a compiled time predicate into an existing SQL query.

This works on the raw query text with case-insensitive keyword search; it
is not a SQL parser. It assumes a single top-level SELECT. Keywords inside
quoted literals, comments and parenthesised subqueries are ignored. Whenever
the query cannot be classified the original text is returned unchanged.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .compiler import CompiledPredicate
from .errors import AmbiguousColumnMissing

logger = logging.getLogger(__name__)

_LEXICAL_RE = re.compile(
    r"(?P<quoted>'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")"
    r"|(?P<comment>--[^\n]*|/\*.*?(?:\*/|\Z))",
    re.DOTALL,
)
_FROM_RE = re.compile(r"\bFROM\b", re.IGNORECASE)
_WHERE_RE = re.compile(r"\bWHERE\b", re.IGNORECASE)
_TIME_FILTER_MACRO_RE = re.compile(r"\$__timeFilter\b")

# Searched in priority order when a WHERE clause has to be created.
_BOUNDARY_PATTERNS = (
    ("GROUP BY", re.compile(r"\bGROUP\s+BY\b", re.IGNORECASE)),
    ("ORDER BY", re.compile(r"\bORDER\s+BY\b", re.IGNORECASE)),
    ("LIMIT", re.compile(r"\bLIMIT\b", re.IGNORECASE)),
)

# Searched with quoted text intact.
_QUOTED_TEXT_HEURISTICS = (
    # time-ish identifier next to a comparison
    re.compile(
        r"\b(?:\w+\.)?(?:\w*(?:time|date)\w*|\w*_at|\w*_ts|ts)\s*(?:>=|<=|<>|!=|=|>|<|\bbetween\b)",
        re.IGNORECASE,
    ),
    # date literals
    re.compile(r"'\d{4}-\d{2}-\d{2}"),
)

# Searched with the inside of literals blanked out.
_EXPRESSION_HEURISTICS = (
    # time functions and intervals
    re.compile(
        r"\b(?:now|current_timestamp|current_date|date_trunc|to_timestamp|interval)\b|\bextract\s*\(\s*epoch\b",
        re.IGNORECASE,
    ),
    # numbers long enough to be epochs
    re.compile(r"\b\d{10,19}\b"),
)


def _mask(query: str, literals: bool = True) -> str:
    """Blank out comments, and optionally the inside of quoted literals.

    Offsets and line breaks are kept intact.
    """

    def replace(match: re.Match[str]) -> str:
        text = match.group(0)
        if match.group("comment") is not None:
            return re.sub(r"[^\n]", " ", text)
        if not literals:
            return text
        return text[0] + " " * (len(text) - 2) + text[-1]

    return _LEXICAL_RE.sub(replace, query)


def _paren_depths(masked: str) -> Optional[List[int]]:
    """Parenthesis depth at every offset, or None when unbalanced."""

    depths = []
    depth = 0
    for char in masked:
        if char == ")":
            depth -= 1
            if depth < 0:
                return None
        depths.append(depth)
        if char == "(":
            depth += 1
    if depth != 0:
        return None
    return depths


def _search_top_level(
    pattern: re.Pattern[str], masked: str, depths: List[int], start: int = 0
) -> Optional[re.Match[str]]:
    for match in pattern.finditer(masked, start):
        if depths[match.start()] == 0:
            return match
    return None


def _where_clause_text(query: str, literals: bool = True) -> Optional[str]:
    masked = _mask(query)
    match = _WHERE_RE.search(masked)
    if match is None:
        return None
    if not literals:
        masked = _mask(query, literals=False)
    return masked[match.end():]


def has_existing_time_filter(query: str) -> bool:
    """Return True when the query already restricts time.

    Only the text after the first WHERE keyword is inspected, ignoring
    comments. Literal values only count when they look like dates. A
    ``$__timeFilter`` macro anywhere outside a comment also counts.
    """
    if not query or not query.strip():
        return False
    if _TIME_FILTER_MACRO_RE.search(_mask(query, literals=False)):
        return True

    clause = _where_clause_text(query, literals=False)
    if clause is None:
        return False
    checks = [(pattern, clause) for pattern in _QUOTED_TEXT_HEURISTICS]
    masked_clause = _where_clause_text(query)
    checks.extend((pattern, masked_clause) for pattern in _EXPRESSION_HEURISTICS)
    for pattern, text in checks:
        if pattern.search(text):
            logger.debug("Existing time filter detected by %s", pattern.pattern)
            return True
    return False


def _constrains_column(query: str, column: str) -> bool:
    clause = _where_clause_text(query, literals=False)
    if clause is None:
        return False
    pattern = re.compile(
        r"(?<![\w.])" + re.escape(column) + r"\s*(?:>=|<=|>|<|\bbetween\b)",
        re.IGNORECASE,
    )
    return bool(pattern.search(clause))


def _split_query(query: str) -> Tuple[str, str, str]:
    """Split into statement body, terminator and trailing comments."""

    masked = _mask(query)
    end = len(masked.rstrip())
    trailing = query[end:] if query[end:].strip() else ""
    body = query[:end]
    terminator = ""
    if masked[:end].endswith(";"):
        body = query[:len(masked[:end - 1].rstrip())]
        terminator = ";"
    return body, terminator, trailing


def _has_line_comment(text: str) -> bool:
    return any(
        match.group("comment") is not None and match.group(0).startswith("--")
        for match in _LEXICAL_RE.finditer(text)
    )


def inject_time_filter(query: str, predicate: Optional[CompiledPredicate]) -> str:
    """Insert ``predicate`` into ``query`` and return the rewritten text.

    With no WHERE clause, ``WHERE <predicate>`` goes before the first
    top-level GROUP BY, ORDER BY or LIMIT following FROM, or at the end of
    the statement ahead of any trailing comment. With a WHERE clause, the
    existing condition becomes ``<predicate> AND (<existing>)``. Queries
    that already filter on time are returned unchanged, so re-injection is
    a no-op.

    Raises:
        AmbiguousColumnMissing: If the predicate names no column.
    """
    if predicate is None:
        return query
    if not predicate.column or not predicate.column.strip():
        raise AmbiguousColumnMissing()
    if not query or not query.strip():
        return query

    if predicate.sql in query or has_existing_time_filter(query) or _constrains_column(query, predicate.column):
        logger.info("Query already has a time filter; leaving it unchanged")
        return query

    body, terminator, trailing = _split_query(query)
    masked = _mask(body)
    if ";" in masked:
        logger.warning("Refusing to inject a time filter into a multi-statement query")
        return query

    depths = _paren_depths(masked)
    if depths is None:
        logger.warning("Unbalanced parentheses; time filter not injected")
        return query

    from_match = _search_top_level(_FROM_RE, masked, depths)
    if from_match is None:
        logger.warning("No FROM clause found; time filter not injected")
        return query

    where_match = _search_top_level(_WHERE_RE, masked, depths, from_match.end())
    if where_match is None:
        insert_at = len(body)
        for keyword, pattern in _BOUNDARY_PATTERNS:
            boundary = _search_top_level(pattern, masked, depths, from_match.end())
            if boundary is not None:
                insert_at = boundary.start()
                logger.debug("Inserting WHERE before %s at offset %d", keyword, insert_at)
                break
        head_end = len(masked[:insert_at].rstrip())
        gap = body[head_end:insert_at]
        tail = body[insert_at:]
        rewritten = f"{body[:head_end]} WHERE {predicate.sql}"
        if tail:
            rewritten += gap if gap.strip() else " "
            rewritten += tail
        elif gap.strip():
            rewritten += gap
        return rewritten + terminator + trailing

    clause_start = where_match.end()
    clause_end = len(body)
    for _, pattern in _BOUNDARY_PATTERNS:
        boundary = _search_top_level(pattern, masked, depths, clause_start)
        if boundary is not None and boundary.start() < clause_end:
            clause_end = boundary.start()

    if not masked[clause_start:clause_end].strip():
        logger.warning("Empty WHERE clause; time filter not injected")
        return query

    existing = body[clause_start:clause_end].strip()
    if _has_line_comment(existing):
        existing += "\n"
    keyword = body[where_match.start():where_match.end()]
    rewritten = f"{body[:where_match.start()]}{keyword} {predicate.sql} AND ({existing})"
    tail = body[clause_end:].strip()
    if tail:
        rewritten = f"{rewritten} {tail}"
    return rewritten + terminator + trailing


__all__ = ["has_existing_time_filter", "inject_time_filter"]
