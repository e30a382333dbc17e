"""POST /search and POST /query -- REST mirrors of the MCP query tools."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from nest_mcp import service
from nest_mcp.search.request import FilterRequest

router = APIRouter()


class RawQueryRequest(BaseModel):
    sql: str = Field(..., min_length=1, description="A single read-only DuckDB SQL statement")


class QueryResponse(BaseModel):
    sql: str
    params: dict[str, Any]
    rows: list[dict[str, Any]]
    row_count: int
    latency_ms: int
    truncated: bool = False


def _response(result: service.QueryResult) -> QueryResponse:
    return QueryResponse(
        sql=result.sql,
        params=result.params,
        rows=result.rows,
        row_count=result.row_count,
        latency_ms=result.latency_ms,
        truncated=result.truncated,
    )


@router.post("/search", response_model=QueryResponse)
def search_endpoint(req: FilterRequest, request: Request):
    """Compile the filter request and return matching companies."""
    return _response(service.search(req, request.app.state.settings))


@router.post("/query", response_model=QueryResponse)
def query_endpoint(req: RawQueryRequest, request: Request):
    """Run a gated, read-only SQL statement."""
    return _response(service.run_raw_query(req.sql, request.app.state.settings))
