"""
Search compiler -- turns a FilterRequest into one DuckDB query string.

The compiler reads table, column roles, the fixed financial-year list and the
physical access patterns entirely from the schema model.  It is a pure
function: no engine contact, no state retained between calls.

Output contract (keywords upper case, single spaces, no trailing ';'):

    SELECT * FROM <table> WHERE 1=1[ AND <fragment>]... ORDER BY <name> LIMIT <n>

and, when a purpose-text relevance predicate is active:

    SELECT * FROM <table> WHERE 1=1[ AND <fragment>]... ORDER BY <rank> DESC, <name> LIMIT <n>

Fragments appear in field order: name, foundation year, categories, purpose,
revenue, employees.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from nest_mcp.core.config import get_settings
from nest_mcp.core.errors import (
    EmptyFilterSet,
    InvalidNumericRange,
    InvalidYearRange,
    UnsafeCharacterInInput,
)
from nest_mcp.core.logging import get_logger
from nest_mcp.schema.loader import SchemaModel, load_schema_model
from nest_mcp.search.fragments import (
    LIKE_ESCAPE,
    any_of,
    category_condition,
    category_value,
    contains_pattern,
    find_unsafe_marker,
    metric_path,
    relevance_call,
    render_literal,
)
from nest_mcp.search.request import FilterRequest

logger = get_logger(__name__)

MIN_FOUNDATION_YEAR = 1800
MAX_FOUNDATION_YEAR = 2024


@dataclass(frozen=True)
class CompiledQuery:
    sql: str
    params: dict[str, Any] = field(default_factory=dict)
    ranked: bool = False


# ── Builder ──────────────────────────────────────────────

class SearchQueryBuilder:
    """Accumulates condition fragments and renders the final statement.

    With ``bind_parameters`` on, values passed through ``value()`` become
    DuckDB named parameters (``$name``); otherwise they are rendered as
    escaped literals.
    """

    def __init__(self, table: str, order_column: str, limit: int, bind_parameters: bool = True):
        self.table = table
        self.order_column = order_column
        self.limit = limit
        self.bind_parameters = bind_parameters
        self.params: dict[str, Any] = {}
        self._conditions: list[str] = []
        self._rank: str | None = None

    @property
    def has_conditions(self) -> bool:
        return bool(self._conditions)

    def value(self, name: str, value: Any) -> str:
        if not self.bind_parameters:
            return render_literal(value)
        self.params[name] = value
        return f"${name}"

    def where(self, fragment: str) -> "SearchQueryBuilder":
        self._conditions.append(fragment)
        return self

    def rank_by(self, expression: str) -> "SearchQueryBuilder":
        self._rank = expression
        return self

    def build(self) -> CompiledQuery:
        where = " AND ".join(["1=1", *self._conditions])
        if self._rank:
            order = f"{self._rank} DESC, {self.order_column}"
        else:
            order = self.order_column
        sql = f"SELECT * FROM {self.table} WHERE {where} ORDER BY {order} LIMIT {int(self.limit)}"
        return CompiledQuery(sql=sql, params=dict(self.params), ranked=self._rank is not None)


# ── Per-field validation + fragments ─────────────────────

def _clean_text(field_name: str, value: str | None, check_markers: bool = True) -> str | None:
    """Trim *value*; None when absent or blank.  Rejects unsafe sequences."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if check_markers:
        marker = find_unsafe_marker(text)
        if marker is not None:
            raise UnsafeCharacterInInput(field_name, value, marker)
    return text


def _check_year_range(field_name: str, bounds: tuple[int, int]) -> tuple[int, int]:
    low, high = bounds
    if low > high:
        raise InvalidYearRange(field_name, low, high, "low bound exceeds high bound")
    for bound in (low, high):
        if not MIN_FOUNDATION_YEAR <= bound <= MAX_FOUNDATION_YEAR:
            raise InvalidYearRange(
                field_name, low, high,
                f"years must lie within {MIN_FOUNDATION_YEAR}-{MAX_FOUNDATION_YEAR}",
            )
    return low, high


def _check_numeric_range(field_name: str, bounds: tuple[float, float]) -> tuple[float, float]:
    low, high = bounds
    if not (math.isfinite(low) and math.isfinite(high)):
        raise InvalidNumericRange(field_name, low, high, "bounds must be finite numbers")
    if low < 0 or high < 0:
        raise InvalidNumericRange(field_name, low, high, "bounds must be non-negative")
    if low > high:
        raise InvalidNumericRange(field_name, low, high, "low bound exceeds high bound")
    return low, high


def _name_fragment(request: FilterRequest, schema: SchemaModel, builder: SearchQueryBuilder) -> None:
    text = _clean_text("name_substring", request.name_substring)
    if text is None:
        return
    pattern = builder.value("name_pattern", contains_pattern(text))
    builder.where(f"{schema.columns.name} ILIKE {pattern} {LIKE_ESCAPE}")


def _foundation_year_fragment(request: FilterRequest, schema: SchemaModel, builder: SearchQueryBuilder) -> None:
    if request.foundation_year_range is None:
        return
    low, high = _check_year_range("foundation_year_range", request.foundation_year_range)
    builder.where(
        f"{schema.columns.foundation_year} BETWEEN "
        f"{builder.value('year_low', low)} AND {builder.value('year_high', high)}"
    )


def _category_fragment(request: FilterRequest, schema: SchemaModel, builder: SearchQueryBuilder) -> None:
    if request.industry_categories is None:
        return
    categories: list[str] = []
    for raw in request.industry_categories:
        text = _clean_text("industry_categories", raw)
        if text is not None:
            categories.append(text)
    if not categories:
        return

    conditions = []
    for i, category in enumerate(categories):
        value_sql = builder.value(f"category_{i}", category_value(schema.layout, category))
        conditions.append(category_condition(schema.layout, schema.columns.categories, value_sql))
    builder.where(any_of(conditions))


def _purpose_fragment(request: FilterRequest, schema: SchemaModel, builder: SearchQueryBuilder) -> None:
    text = _clean_text("purpose_text", request.purpose_text, check_markers=False)
    if text is None:
        return
    rank = relevance_call(schema.fulltext, schema.columns.key, text)
    builder.where(f"{rank} IS NOT NULL")
    builder.rank_by(rank)


def _metric_range_fragment(
    field_name: str,
    prefix: str,
    bounds: tuple[float, float] | None,
    schema: SchemaModel,
    builder: SearchQueryBuilder,
) -> None:
    if bounds is None:
        return
    low, high = _check_numeric_range(field_name, bounds)
    metric = schema.range_metric(field_name)
    low_sql = builder.value(f"{prefix}_low", low)
    high_sql = builder.value(f"{prefix}_high", high)
    conditions = [
        f"{metric_path(schema.layout, schema.columns.financials, year, metric)} BETWEEN {low_sql} AND {high_sql}"
        for year in schema.years()
    ]
    builder.where(any_of(conditions))


# ── Public API ───────────────────────────────────────────

def compile_search(
    request: FilterRequest,
    schema: SchemaModel | None = None,
    *,
    bind_parameters: bool | None = None,
    require_filter: bool | None = None,
    limit: int | None = None,
) -> CompiledQuery:
    """Compile *request* into a single SELECT over the company table.

    Parameters
    ----------
    request : FilterRequest
        The caller's constraints; absent or blank fields add nothing.
    schema : SchemaModel, optional
        If None, loads the schema for the configured layout.
    bind_parameters : bool, optional
        Emit named parameters instead of inline literals (default: settings).
    require_filter : bool, optional
        Reject requests that produce no condition (default: settings).
    limit : int, optional
        Result cap (default: settings, 1000).

    Raises
    ------
    SearchValidationError
        ``InvalidYearRange``, ``InvalidNumericRange``,
        ``UnsafeCharacterInInput`` or ``EmptyFilterSet``.
    """
    settings = get_settings()
    if schema is None:
        schema = load_schema_model()
    if bind_parameters is None:
        bind_parameters = settings.search_bind_parameters
    if require_filter is None:
        require_filter = settings.search_require_filter
    if limit is None:
        limit = settings.search_row_limit

    builder = SearchQueryBuilder(
        table=schema.table,
        order_column=schema.columns.name,
        limit=limit,
        bind_parameters=bind_parameters,
    )

    _name_fragment(request, schema, builder)
    _foundation_year_fragment(request, schema, builder)
    _category_fragment(request, schema, builder)
    _purpose_fragment(request, schema, builder)
    _metric_range_fragment("revenue_range", "revenue", request.revenue_range, schema, builder)
    _metric_range_fragment("employee_range", "employees", request.employee_range, schema, builder)

    if require_filter and not builder.has_conditions:
        raise EmptyFilterSet()

    compiled = builder.build()
    logger.info("Compiled search (%s layout, ranked=%s):\n%s", schema.layout, compiled.ranked, compiled.sql)
    return compiled
