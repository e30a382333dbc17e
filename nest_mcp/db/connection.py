"""DuckDB connection factory.

Every tool invocation opens its own short-lived connection, runs one
statement and closes it.  There is no pool and no result cache; the
database is opened read-only for serving.
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import duckdb

from nest_mcp.core.config import Settings, get_settings
from nest_mcp.core.errors import EngineConnectionError
from nest_mcp.core.logging import get_logger

logger = get_logger(__name__)


def database_path(settings: Settings) -> Path:
    """Resolve the database file; relative paths live in the temp directory."""
    path = Path(settings.duckdb_path)
    if path.is_absolute():
        return path
    return settings.temp_directory / path


def _configure(conn: duckdb.DuckDBPyConnection, settings: Settings) -> None:
    if settings.duckdb_configure_httpfs:
        conn.execute(f"SET http_timeout = {int(settings.duckdb_http_timeout_s)}")
        conn.execute(f"SET http_keep_alive = {str(bool(settings.duckdb_http_keep_alive)).lower()}")
        conn.execute(f"SET http_retries = {int(settings.duckdb_http_retries)}")
        conn.execute(f"SET s3_uploader_thread_limit = {int(settings.duckdb_s3_uploader_thread_limit)}")

    if settings.duckdb_s3_credential_chain:
        conn.execute("CREATE SECRET (TYPE s3, PROVIDER credential_chain, REFRESH auto)")

    if settings.duckdb_load_fts:
        try:
            conn.execute("LOAD fts")
        except duckdb.Error as exc:
            # Relevance search fails later with an execution error; raw queries still work.
            logger.warning("FTS extension could not be loaded: %s", exc)


def connect(settings: Settings | None = None, read_only: bool | None = None) -> duckdb.DuckDBPyConnection:
    """Open and configure a new connection (caller must close)."""
    if settings is None:
        settings = get_settings()
    if read_only is None:
        read_only = settings.duckdb_read_only

    path = database_path(settings)
    config = {
        "temp_directory": str(settings.temp_directory),
        "max_temp_directory_size": settings.duckdb_max_temp_directory_size,
    }
    try:
        conn = duckdb.connect(str(path), read_only=read_only, config=config)
    except duckdb.Error as exc:
        raise EngineConnectionError(f"Failed to connect to database: {exc}") from exc

    try:
        _configure(conn, settings)
    except duckdb.Error as exc:
        conn.close()
        raise EngineConnectionError(f"Failed to configure database connection: {exc}") from exc

    logger.debug("DuckDB connection opened  path=%s  read_only=%s", path, read_only)
    return conn


@contextmanager
def open_connection(
    settings: Settings | None = None,
    read_only: bool | None = None,
) -> Generator[duckdb.DuckDBPyConnection, None, None]:
    """Yield a fresh connection and always close it on exit."""
    conn = connect(settings, read_only=read_only)
    try:
        yield conn
    finally:
        conn.close()
