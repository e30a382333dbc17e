"""
Read-only DuckDB executor.

All tool queries run through `execute_readonly`, which:
  1. Opens its own connection (read-only unless configured otherwise)
  2. Passes bound parameters to the engine instead of splicing them in
  3. Converts Decimal/date/datetime/UUID/bytes -- also inside nested
     structs, maps and lists -- to JSON-safe Python types
  4. Closes the connection, whatever happens
"""
from __future__ import annotations

import datetime
import decimal
import json
import uuid
from typing import Any

import duckdb

from nest_mcp.core.config import Settings
from nest_mcp.core.errors import EngineExecutionError
from nest_mcp.core.logging import get_logger
from nest_mcp.db.connection import open_connection

logger = get_logger(__name__)


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, dict):
        return {str(k): _serialise_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [_serialise_value(v) for v in val]
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime, datetime.time)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    if isinstance(val, uuid.UUID):
        return str(val)
    if isinstance(val, (bytes, bytearray, memoryview)):
        return bytes(val).hex()
    return val


def fetch_rows(
    conn: duckdb.DuckDBPyConnection,
    sql: str,
    params: dict[str, Any] | None = None,
    max_rows: int | None = None,
) -> list[dict[str, Any]]:
    """Run *sql* on an open connection and return serialisable row dicts.

    With *max_rows* set, at most that many rows are read; the caller decides
    whether a full page means the result was cut short.
    """
    try:
        cursor = conn.execute(sql, params) if params else conn.execute(sql)
        columns = [d[0] for d in cursor.description or []]
        raw_rows = cursor.fetchall() if max_rows is None else cursor.fetchmany(max_rows)
    except duckdb.Error as exc:
        raise EngineExecutionError(f"Failed to execute query: {exc}") from exc

    rows = [
        {col: _serialise_value(val) for col, val in zip(columns, row)}
        for row in raw_rows
    ]
    logger.info("Returned %d rows", len(rows))
    return rows


def execute_readonly(
    sql: str,
    params: dict[str, Any] | None = None,
    settings: Settings | None = None,
    max_rows: int | None = None,
) -> list[dict[str, Any]]:
    """Execute one query on a fresh connection and return rows as dicts.

    Raises
    ------
    EngineConnectionError
        If the database cannot be opened.
    EngineExecutionError
        If the engine rejects or fails the query.
    """
    logger.info("Executing SQL (%d chars, %d params)", len(sql), len(params or {}))
    with open_connection(settings) as conn:
        return fetch_rows(conn, sql, params, max_rows=max_rows)


def rows_to_json(rows: list[dict[str, Any]]) -> str:
    """Render rows as a pretty-printed JSON array (one object per row)."""
    return json.dumps(rows, indent=2, ensure_ascii=False, default=str)
