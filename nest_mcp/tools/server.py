"""FastMCP server exposing the company query tools."""
from __future__ import annotations

from typing import Annotated

from fastmcp import FastMCP
from pydantic import Field, ValidationError

from nest_mcp.core.config import Settings, get_settings
from nest_mcp.core.errors import MalformedRequest
from nest_mcp.core.logging import get_logger
from nest_mcp.schema.loader import SchemaModel, load_schema_model
from nest_mcp.search.request import FilterRequest
from nest_mcp.tools import handlers

logger = get_logger(__name__)

INSTRUCTIONS = "This server provides SQL query tools for company database access."

_READ_ONLY = {"readOnlyHint": True}


def create_tool_server(settings: Settings | None = None, schema: SchemaModel | None = None) -> FastMCP:
    """Create the MCP server with every company tool registered."""
    if settings is None:
        settings = get_settings()
    if schema is None:
        schema = load_schema_model(settings.schema_layout)

    mcp = FastMCP(name="nest-mcp", instructions=INSTRUCTIONS, mask_error_details=True)
    _register_query_tools(mcp, settings, schema)
    _register_search_tools(mcp, settings, schema)
    logger.info("MCP tools registered (%s layout)", schema.layout)
    return mcp


def _register_query_tools(mcp: FastMCP, settings: Settings, schema: SchemaModel) -> None:
    table_description = schema.describe()

    @mcp.tool(
        name="company",
        description=(
            "Execute SQL queries against the company database. Read-only DuckDB SQL, "
            "one statement, results as a JSON array.\n\n" + table_description
        ),
        annotations={"title": "Companies", **_READ_ONLY},
    )
    async def company(sql: Annotated[str, Field(description="A single read-only DuckDB SQL statement")]) -> str:
        return await handlers.run_company_query(sql, settings=settings)

    @mcp.tool(
        name="company_annual_report",
        description=(
            "Execute SQL queries against the company annual report database. Annual report "
            f"figures live in {schema.columns.financials}, keyed by financial year.\n\n" + table_description
        ),
        annotations={"title": "Company Annual Reports", **_READ_ONLY},
    )
    async def company_annual_report(
        sql: Annotated[str, Field(description="A single read-only DuckDB SQL statement")],
    ) -> str:
        return await handlers.run_company_query(sql, settings=settings)

    @mcp.tool(
        name="company_schema",
        description=f"Describe the columns and engine types of the `{schema.table}` table.",
        annotations={"title": "Company Table Schema", **_READ_ONLY},
    )
    async def company_schema() -> str:
        return await handlers.describe_companies(settings=settings)


def _register_search_tools(mcp: FastMCP, settings: Settings, schema: SchemaModel) -> None:
    years = schema.years()

    @mcp.tool(
        name="search_companies",
        description=(
            "Structured company search. All filters are optional and combined with AND. "
            "Results are ordered by name, or by relevance when purpose_text is given, "
            f"and capped at {settings.search_row_limit} rows. Revenue and employee ranges "
            f"match when any financial year {years[0]}-{years[-1]} falls inside the range."
        ),
        annotations={"title": "Search Companies", **_READ_ONLY},
    )
    async def search_companies(
        name_substring: Annotated[str | None, Field(description="Case-insensitive part of the company name")] = None,
        foundation_year_range: Annotated[
            list[int] | None, Field(description="Inclusive [low, high] foundation year (1800-2024)")
        ] = None,
        industry_categories: Annotated[
            list[str] | None, Field(description="NACE codes; matches companies having any of them")
        ] = None,
        purpose_text: Annotated[
            str | None, Field(description="Free text ranked against the company purpose")
        ] = None,
        revenue_range: Annotated[
            list[float] | None, Field(description="Inclusive [low, high] revenue in NOK")
        ] = None,
        employee_range: Annotated[
            list[float] | None, Field(description="Inclusive [low, high] number of employees")
        ] = None,
    ) -> str:
        try:
            request = FilterRequest(
                name_substring=name_substring,
                foundation_year_range=foundation_year_range,
                industry_categories=industry_categories,
                purpose_text=purpose_text,
                revenue_range=revenue_range,
                employee_range=employee_range,
            )
        except ValidationError as exc:
            raise handlers.tool_error(MalformedRequest(exc.errors())) from exc
        return await handlers.search_companies(request, settings=settings)
