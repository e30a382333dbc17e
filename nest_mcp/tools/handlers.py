"""
Async tool handlers shared by the MCP server.

Blocking DuckDB work is pushed to a worker thread so one slow query does not
stall other invocations.  Failures are re-raised as ``ToolError`` carrying the
JSON error payload, which FastMCP forwards to the client unmasked.
"""
from __future__ import annotations

import functools
import json
from typing import Any, Callable

import anyio
from fastmcp.exceptions import ToolError

from nest_mcp import service
from nest_mcp.core.config import Settings
from nest_mcp.core.errors import CompanyQueryError
from nest_mcp.core.logging import get_logger
from nest_mcp.search.request import FilterRequest

logger = get_logger(__name__)


def tool_error(exc: CompanyQueryError) -> ToolError:
    """Wrap *exc* so the client receives its JSON payload as the error text."""
    logger.warning("Tool call failed: %s", exc.message)
    return ToolError(json.dumps(exc.to_payload()))


async def _run(fn: Callable[..., service.QueryResult], *args: Any, **kwargs: Any) -> str:
    try:
        result = await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))
    except CompanyQueryError as exc:
        raise tool_error(exc) from exc
    return result.to_json()


async def run_company_query(sql: str, settings: Settings | None = None) -> str:
    return await _run(service.run_raw_query, sql, settings=settings)


async def search_companies(request: FilterRequest, settings: Settings | None = None) -> str:
    return await _run(service.search, request, settings=settings)


async def describe_companies(settings: Settings | None = None) -> str:
    return await _run(service.describe_companies, settings=settings)
