"""
Condition-fragment helpers: escaping, literal rendering and the physical
access patterns of the two schema layouts.

Every piece of caller text that ends up inside a fragment goes through
``quote_literal`` (quotes doubled) or is bound as a parameter.  The
unsafe-marker check is an additional pre-filter, never a replacement.
"""
from __future__ import annotations

import math
from typing import Any

from nest_mcp.schema.loader import FullTextIndex

UNSAFE_MARKERS = ("'", '"', ";", "--", "/*", "*/")

LIKE_ESCAPE = "ESCAPE '\\'"


def find_unsafe_marker(text: str) -> str | None:
    """Return the first disallowed sequence found in *text*, if any."""
    for marker in UNSAFE_MARKERS:
        if marker in text:
            return marker
    return None


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so *value* matches literally (escape char ``\\``)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(value: str) -> str:
    return f"%{escape_like(value)}%"


def format_number(value: int | float) -> str:
    if isinstance(value, bool):
        raise TypeError("booleans are not numeric bounds")
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise ValueError(f"non-finite number: {value!r}")
    if value.is_integer():
        return str(int(value))
    return repr(value)


def render_literal(value: Any) -> str:
    """Render a Python scalar as a DuckDB literal."""
    if isinstance(value, str):
        return quote_literal(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_number(value)
    raise TypeError(f"Cannot render {type(value).__name__} as a SQL literal")


def any_of(conditions: list[str]) -> str:
    """OR-combine *conditions*, parenthesised when there is more than one."""
    if len(conditions) == 1:
        return conditions[0]
    return "(" + " OR ".join(conditions) + ")"


# ── Layout-specific access patterns ──────────────────────

def category_condition(layout: str, column: str, value_sql: str) -> str:
    """Membership test of one category against the categories column.

    *value_sql* is already rendered: a literal or a parameter placeholder.  For
    the flattened layout it must be a LIKE pattern (see ``contains_pattern``).
    """
    if layout == "typed":
        return f"list_contains({column}, {value_sql})"
    return f"{column} LIKE {value_sql} {LIKE_ESCAPE}"


def category_value(layout: str, category: str) -> str:
    """The value to compare for *category* under *layout*."""
    if layout == "typed":
        return category
    return contains_pattern(category)


def metric_path(layout: str, column: str, year: int, metric: str) -> str:
    """Access expression for one (year, metric) pair; NULL when absent."""
    if layout == "typed":
        return f"{column}['{year}']['{metric}']"
    return f"TRY_CAST(json_extract_string({column}, '$.\"{year}\".{metric}') AS DOUBLE)"


def relevance_call(fulltext: FullTextIndex, key_column: str, query: str) -> str:
    """Full-text relevance function call; the query is always escaped inline."""
    args = [key_column, quote_literal(query)]
    if fulltext.fields:
        args.append(f"fields := {quote_literal(','.join(fulltext.fields))}")
    return f"{fulltext.qualified_function}({', '.join(args)})"
