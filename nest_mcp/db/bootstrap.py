"""
Builds the company table from the source parquet export.

The export carries free-text JSON for categories, location and the per-year
financial figures.  Depending on the schema layout the table keeps them as
text (``flattened``) or parses them into typed nested columns (``typed``),
where the financial STRUCT is typed from the schema model's year bands.

Run:  nest-mcp bootstrap --parquet hello_nest.parquet
"""
from __future__ import annotations

import json
from typing import Any

import duckdb

from nest_mcp.core.config import Settings, get_settings
from nest_mcp.core.errors import EngineExecutionError
from nest_mcp.core.logging import get_logger
from nest_mcp.db.connection import open_connection
from nest_mcp.db.executor import execute_readonly, fetch_rows
from nest_mcp.schema.loader import SchemaModel, load_schema_model
from nest_mcp.search.fragments import quote_literal

logger = get_logger(__name__)

_PASSTHROUGH_COLUMNS = (
    "company_id",
    "organization_number",
    "company_type",
    "company_purpose",
    "foundation_year",
    "registered_for_payroll_tax",
    "homepage",
    "postal_address",
    "visitor_address",
)

_LOCATION_EXPR = """CASE
        WHEN location IS NULL OR CAST(location AS VARCHAR) IN ('', '{}') THEN NULL
        ELSE STRUCT_PACK(
            county := json_extract_string(location, '$.county'),
            countryPart := json_extract_string(location, '$.countryPart'),
            municipality := json_extract_string(location, '$.municipality'),
            coordinates := CASE
                WHEN json_extract(location, '$.coordinates') IS NULL THEN NULL
                ELSE STRUCT_PACK(
                    XCoordinate := CAST(json_extract(location, '$.coordinates[0].XCoordinate') AS DOUBLE),
                    YCoordinate := CAST(json_extract(location, '$.coordinates[0].YCoordinate') AS DOUBLE),
                    coordinateSystem := json_extract_string(location, '$.coordinates[0].coordinateSystem')
                )
            END
        )
    END"""


def _source_column(schema: SchemaModel, target: str) -> str:
    """Quoted parquet column that feeds *target*."""
    for source, renamed in schema.source_renames.items():
        if renamed == target:
            return f'"{source}"'
    return f'"{target}"'


def _categories_expr(schema: SchemaModel) -> str:
    src = _source_column(schema, schema.columns.categories)
    text = f"CAST({src} AS VARCHAR)"
    empty = f"{src} IS NULL OR {text} IN ('', '[]', 'null')"
    if schema.layout == "typed":
        return f"CASE WHEN {empty} THEN NULL ELSE from_json({text}, '[\"VARCHAR\"]') END"
    return f"CASE WHEN {empty} THEN NULL ELSE {text} END"


def _financials_expr(schema: SchemaModel) -> str:
    src = _source_column(schema, schema.columns.financials)
    if schema.layout == "typed":
        structure = json.dumps(schema.financial_structure(), separators=(",", ":"))
        return f"from_json(CAST({src} AS JSON), {quote_literal(structure)})"
    return f"CAST(CAST({src} AS JSON) AS VARCHAR)"


def build_create_sql(parquet_path: str, schema: SchemaModel) -> str:
    """Return the CREATE TABLE ... AS SELECT statement for *schema*'s layout."""
    cols = schema.columns
    select_parts = list(_PASSTHROUGH_COLUMNS)
    select_parts.insert(1, f"{_source_column(schema, cols.name)} AS {cols.name}")
    select_parts.append(
        "CASE WHEN established_date IS NULL OR CAST(established_date AS VARCHAR) = '' THEN NULL "
        "ELSE TRY_CAST(established_date AS DATE) END AS established_date"
    )
    select_parts.append(f"{_categories_expr(schema)} AS {cols.categories}")
    select_parts.append(f"{_LOCATION_EXPR} AS location")
    select_parts.append(f"{_financials_expr(schema)} AS {cols.financials}")

    return (
        f"CREATE OR REPLACE TABLE {schema.table} AS\n"
        "SELECT\n    "
        + ",\n    ".join(select_parts)
        + f"\nFROM read_parquet({quote_literal(parquet_path)})"
    )


def build_fts_index_sql(schema: SchemaModel) -> str:
    fields = ", ".join(quote_literal(f) for f in schema.fulltext.fields)
    return (
        f"PRAGMA create_fts_index({quote_literal(schema.table)}, "
        f"{quote_literal(schema.columns.key)}, {fields}, overwrite = 1)"
    )


def build_company_table(
    parquet_path: str,
    settings: Settings | None = None,
    schema: SchemaModel | None = None,
    fulltext: bool = True,
) -> int:
    """(Re)create the company table and, unless disabled, its full-text index.

    Returns the number of rows loaded.
    """
    if settings is None:
        settings = get_settings()
    if schema is None:
        schema = load_schema_model(settings.schema_layout)

    logger.info("Building table '%s' (%s layout) from %s", schema.table, schema.layout, parquet_path)
    with open_connection(settings, read_only=False) as conn:
        try:
            conn.execute(build_create_sql(parquet_path, schema))
            if fulltext:
                conn.execute("INSTALL fts")
                conn.execute("LOAD fts")
                conn.execute(build_fts_index_sql(schema))
            row_count = conn.execute(f"SELECT COUNT(*) FROM {schema.table}").fetchone()[0]
        except duckdb.Error as exc:
            raise EngineExecutionError(f"Failed to create {schema.table} table: {exc}") from exc

    logger.info("Table '%s' ready with %d rows (fulltext=%s)", schema.table, row_count, fulltext)
    return row_count


def inspect_parquet_schema(parquet_path: str) -> list[dict[str, Any]]:
    """DESCRIBE the source parquet file (in-memory, no serving database needed)."""
    conn = duckdb.connect(":memory:")
    try:
        return fetch_rows(conn, f"DESCRIBE SELECT * FROM read_parquet({quote_literal(parquet_path)}) LIMIT 1")
    finally:
        conn.close()


def describe_table(table: str, settings: Settings | None = None) -> list[dict[str, Any]]:
    """DESCRIBE a table in the serving database."""
    return execute_readonly(f"DESCRIBE {table}", settings=settings)
