"""
Shared fixtures -- small company databases in both layouts, built directly
with DuckDB in a temporary directory.
"""
from __future__ import annotations

import json

import duckdb
import pytest

from nest_mcp.core.config import Settings
from nest_mcp.schema.loader import load_schema_model

# (id, name, foundation_year, purpose, categories, {year: (revenue, employees)})
COMPANIES = [
    (
        "c1", "Test Company AS", 2021, "Utvikling av programvare og konsulenttjenester",
        ["62010", "62020"], {2023: (2_000_000, 12)},
    ),
    (
        "c2", "Fjord Fisk AS", 1999, "Oppdrett av laks og salg av sjomat",
        ["03211"], {2016: (50_000_000, 80), 2024: (61_000_000, 95)},
    ),
    (
        "c3", "Nordic_Data 100% AS", 2015, "Data analysis and software consulting",
        ["62020"], {},
    ),
]


def _financial_json(figures: dict[int, tuple[int, int]]) -> str | None:
    if not figures:
        return None
    return json.dumps({
        str(year): {"revenue": revenue, "number_of_employees": employees}
        for year, (revenue, employees) in figures.items()
    })


def _typed_struct(years: list[int]) -> str:
    per_year = "STRUCT(revenue BIGINT, number_of_employees DOUBLE)"
    return "STRUCT(" + ", ".join(f'"{year}" {per_year}' for year in years) + ")"


def _typed_structure_json(years: list[int]) -> str:
    return json.dumps({str(y): {"revenue": "BIGINT", "number_of_employees": "DOUBLE"} for y in years})


def _create_typed(conn: duckdb.DuckDBPyConnection) -> None:
    years = load_schema_model("typed").years()
    conn.execute(
        "CREATE TABLE companies (company_id VARCHAR, company_name VARCHAR, foundation_year INTEGER, "
        f"company_purpose VARCHAR, nace_categories VARCHAR[], financial_data {_typed_struct(years)})"
    )
    structure = _typed_structure_json(years).replace("'", "''")
    for cid, name, year, purpose, cats, figures in COMPANIES:
        conn.execute(
            "INSERT INTO companies SELECT $id, $name, $year, $purpose, $cats, "
            f"from_json(CAST($fin AS VARCHAR), '{structure}')",
            {"id": cid, "name": name, "year": year, "purpose": purpose,
             "cats": cats, "fin": _financial_json(figures)},
        )


def _create_flattened(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(
        "CREATE TABLE companies (company_id VARCHAR, company_name VARCHAR, foundation_year INTEGER, "
        "company_purpose VARCHAR, nace_categories VARCHAR, financial_data VARCHAR)"
    )
    for cid, name, year, purpose, cats, figures in COMPANIES:
        conn.execute(
            "INSERT INTO companies VALUES (?, ?, ?, ?, ?, ?)",
            [cid, name, year, purpose, json.dumps(cats), _financial_json(figures)],
        )


def _make_db(path, layout: str) -> None:
    conn = duckdb.connect(str(path))
    try:
        if layout == "typed":
            _create_typed(conn)
        else:
            _create_flattened(conn)
    finally:
        conn.close()


@pytest.fixture
def typed_settings(tmp_path) -> Settings:
    path = tmp_path / "typed.db"
    _make_db(path, "typed")
    return Settings(
        duckdb_path=str(path),
        duckdb_temp_directory=str(tmp_path),
        duckdb_load_fts=False,
        schema_layout="typed",
    )


@pytest.fixture
def flattened_settings(tmp_path) -> Settings:
    path = tmp_path / "flattened.db"
    _make_db(path, "flattened")
    return Settings(
        duckdb_path=str(path),
        duckdb_temp_directory=str(tmp_path),
        duckdb_load_fts=False,
        schema_layout="flattened",
    )
