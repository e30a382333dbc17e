"""
Integration tests -- building the company table from a parquet export, and
full-text relevance search on top of it.

The full-text tests need the DuckDB ``fts`` extension and are skipped when it
cannot be installed (e.g. offline).
"""
from __future__ import annotations

import json

import duckdb
import pytest

from nest_mcp.core.config import Settings
from nest_mcp.db.bootstrap import build_company_table, build_create_sql, inspect_parquet_schema
from nest_mcp.schema.loader import load_schema_model
from nest_mcp.search.request import FilterRequest
from nest_mcp.service import run_raw_query, search

try:
    _check = duckdb.connect(":memory:")
    _check.execute("INSTALL fts")
    _check.execute("LOAD fts")
    _check.close()
    FTS_AVAILABLE = True
except Exception:
    FTS_AVAILABLE = False

needs_fts = pytest.mark.skipif(not FTS_AVAILABLE, reason="DuckDB fts extension not available")


_SOURCE_ROWS = [
    {
        "company_id": "a1",
        "name": "Havbruk Nord AS",
        "purpose": "Oppdrett av laks og regnbueorret",
        "year": 2004,
        "categories": ["03211"],
        "financials": {"2016": {"revenue": 9_000_000, "number_of_employees": 14}},
        "location": {"county": "Nordland", "municipality": "Bodø",
                     "coordinates": [{"XCoordinate": 14.4, "YCoordinate": 67.3, "coordinateSystem": "EPSG:4258"}]},
    },
    {
        "company_id": "a2",
        "name": "Kodeverket AS",
        "purpose": "Utvikling av programvare og drift av datasystemer",
        "year": 2019,
        "categories": ["62010", "62030"],
        "financials": {"2023": {"revenue": 3_500_000, "number_of_employees": 6, "ebitda": 400_000}},
        "location": None,
    },
]


@pytest.fixture
def parquet_path(tmp_path):
    path = tmp_path / "export.parquet"
    conn = duckdb.connect(":memory:")
    try:
        conn.execute(
            "CREATE TABLE src (company_id VARCHAR, name VARCHAR, organization_number VARCHAR, "
            "company_type VARCHAR, company_purpose VARCHAR, foundation_year INTEGER, "
            "registered_for_payroll_tax BOOLEAN, homepage VARCHAR, "
            "postal_address STRUCT(street VARCHAR, postal_code VARCHAR, city VARCHAR, country VARCHAR), "
            "visitor_address STRUCT(street VARCHAR, postal_code VARCHAR, city VARCHAR, country VARCHAR), "
            "established_date VARCHAR, nace_categories VARCHAR, location VARCHAR, \"financiaL_data\" VARCHAR)"
        )
        for i, row in enumerate(_SOURCE_ROWS):
            conn.execute(
                "INSERT INTO src VALUES (?, ?, ?, 'AS', ?, ?, true, NULL, NULL, NULL, ?, ?, ?, ?)",
                [
                    row["company_id"], row["name"], f"91234567{i}", row["purpose"], row["year"],
                    f"{row['year']}-03-01", json.dumps(row["categories"]),
                    json.dumps(row["location"]) if row["location"] else "",
                    json.dumps(row["financials"]),
                ],
            )
        conn.execute(f"COPY src TO '{path}' (FORMAT parquet)")
    finally:
        conn.close()
    return str(path)


def _settings(tmp_path, layout: str) -> Settings:
    return Settings(
        duckdb_path=str(tmp_path / f"{layout}.db"),
        duckdb_temp_directory=str(tmp_path),
        duckdb_load_fts=FTS_AVAILABLE,
        schema_layout=layout,
    )


# ── Table build ──────────────────────────────────────────

def test_inspect_parquet_schema(parquet_path):
    columns = {row["column_name"] for row in inspect_parquet_schema(parquet_path)}
    assert {"name", "financiaL_data", "nace_categories"} <= columns


def test_create_sql_renames_source_columns(parquet_path):
    sql = build_create_sql(parquet_path, load_schema_model("typed"))
    assert '"name" AS company_name' in sql
    assert 'CAST("financiaL_data" AS JSON)' in sql


@pytest.mark.parametrize("layout", ["typed", "flattened"])
def test_build_company_table(tmp_path, parquet_path, layout):
    settings = _settings(tmp_path, layout)
    assert build_company_table(parquet_path, settings=settings, fulltext=False) == 2

    result = search(FilterRequest(revenue_range=(1_000_000, 5_000_000)), settings)
    assert [r["company_name"] for r in result.rows] == ["Kodeverket AS"]

    result = search(FilterRequest(industry_categories=["03211"]), settings)
    assert [r["company_id"] for r in result.rows] == ["a1"]


def test_typed_table_shapes(tmp_path, parquet_path):
    settings = _settings(tmp_path, "typed")
    build_company_table(parquet_path, settings=settings, fulltext=False)

    rows = run_raw_query(
        "SELECT location, established_date, financial_data['2023']['ebitda'] AS ebitda "
        "FROM companies ORDER BY company_id",
        settings,
    ).rows
    assert rows[0]["location"]["county"] == "Nordland"
    assert rows[0]["location"]["coordinates"]["YCoordinate"] == 67.3
    assert rows[0]["established_date"] == "2004-03-01"
    assert rows[1]["location"] is None
    assert rows[1]["ebitda"] == 400_000


# ── Full-text relevance ──────────────────────────────────

@needs_fts
@pytest.mark.parametrize("layout", ["typed", "flattened"])
def test_purpose_search_ranked(tmp_path, parquet_path, layout):
    settings = _settings(tmp_path, layout)
    build_company_table(parquet_path, settings=settings)

    result = search(FilterRequest(purpose_text="programvare"), settings)
    assert [r["company_name"] for r in result.rows] == ["Kodeverket AS"]
    assert "DESC, company_name" in result.sql


@needs_fts
def test_purpose_search_with_quote(tmp_path, parquet_path):
    settings = _settings(tmp_path, "typed")
    build_company_table(parquet_path, settings=settings)

    result = search(FilterRequest(purpose_text="laks'"), settings)
    assert [r["company_id"] for r in result.rows] == ["a1"]
