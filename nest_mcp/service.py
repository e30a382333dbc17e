"""
Query service -- orchestrates gate/compile -> execute -> JSON for every tool.

Two logical operations:
  - ``run_raw_query``: caller-supplied SQL, checked by the safety gate
  - ``search``: a FilterRequest routed through the search compiler

Each call opens its own connection (see ``nest_mcp.db.connection``), is timed
and logged, and raises a ``CompanyQueryError`` subclass on failure.  Nothing
is retried and nothing is cached between calls.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from nest_mcp.core.config import Settings, get_settings
from nest_mcp.core.errors import CompanyQueryError
from nest_mcp.core.logging import get_logger
from nest_mcp.core.utils import shorten, timer
from nest_mcp.db.bootstrap import describe_table
from nest_mcp.db.executor import execute_readonly, rows_to_json
from nest_mcp.governance.sql_safety import ensure_sql_safe
from nest_mcp.schema.loader import SchemaModel, load_schema_model
from nest_mcp.search.compiler import compile_search
from nest_mcp.search.request import FilterRequest

logger = get_logger(__name__)


@dataclass
class QueryResult:
    sql: str
    rows: list[dict[str, Any]]
    params: dict[str, Any] = field(default_factory=dict)
    latency_ms: int = 0
    truncated: bool = False
    row_limit: int | None = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_json(self) -> str:
        """JSON array of rows; an object carrying the rows when the result was cut short."""
        if self.truncated:
            return json.dumps(
                {"rows": self.rows, "truncated": True, "row_limit": self.row_limit},
                indent=2, ensure_ascii=False, default=str,
            )
        return rows_to_json(self.rows)


def run_raw_query(sql: str, settings: Settings | None = None) -> QueryResult:
    """Gate and execute caller-supplied SQL.

    The full result set is returned unless ``raw_query_row_limit`` is set; a
    result cut at that limit is flagged with ``truncated``.

    Raises
    ------
    UnsafeQuery
        If the statement fails the safety gate.
    EngineConnectionError, EngineExecutionError
        If the engine cannot be opened or the query fails.
    """
    if settings is None:
        settings = get_settings()
    limit = settings.raw_query_row_limit
    logger.info("run_raw_query | sql=%s", shorten(sql))

    with timer() as t:
        statement = ensure_sql_safe(sql)
        try:
            # One row past the limit tells a full result apart from a cut one.
            rows = execute_readonly(statement, settings=settings, max_rows=None if limit is None else limit + 1)
        except CompanyQueryError:
            logger.exception("Raw query failed")
            raise

    truncated = limit is not None and len(rows) > limit
    if truncated:
        rows = rows[:limit]
        logger.warning("run_raw_query | result truncated at %d rows", limit)

    logger.info("run_raw_query | rows=%d | latency_ms=%d", len(rows), t["elapsed_ms"])
    return QueryResult(
        sql=statement, rows=rows, latency_ms=t["elapsed_ms"], truncated=truncated, row_limit=limit,
    )


def search(
    request: FilterRequest,
    settings: Settings | None = None,
    schema: SchemaModel | None = None,
) -> QueryResult:
    """Compile *request* and execute it.

    Raises
    ------
    SearchValidationError
        If the request is rejected by the compiler (no engine contact).
    EngineConnectionError, EngineExecutionError
        If the engine cannot be opened or the query fails.
    """
    if settings is None:
        settings = get_settings()
    if schema is None:
        schema = load_schema_model(settings.schema_layout)
    logger.info("search | request=%s", request.model_dump(exclude_none=True))

    with timer() as t:
        compiled = compile_search(
            request,
            schema,
            bind_parameters=settings.search_bind_parameters,
            require_filter=settings.search_require_filter,
            limit=settings.search_row_limit,
        )
        try:
            rows = execute_readonly(compiled.sql, compiled.params, settings=settings)
        except CompanyQueryError:
            logger.exception("Search query failed")
            raise

    logger.info("search | rows=%d | ranked=%s | latency_ms=%d", len(rows), compiled.ranked, t["elapsed_ms"])
    return QueryResult(sql=compiled.sql, rows=rows, params=compiled.params, latency_ms=t["elapsed_ms"])


def describe_companies(settings: Settings | None = None, schema: SchemaModel | None = None) -> QueryResult:
    """Column names and engine types of the company table."""
    if settings is None:
        settings = get_settings()
    if schema is None:
        schema = load_schema_model(settings.schema_layout)

    with timer() as t:
        rows = describe_table(schema.table, settings=settings)
    return QueryResult(sql=f"DESCRIBE {schema.table}", rows=rows, latency_ms=t["elapsed_ms"])
