"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ── DuckDB ───────────────────────────────────────────
    duckdb_path: str = "nest_mcp.db"
    duckdb_read_only: bool = True
    duckdb_temp_directory: str = ""  # empty -> current working directory
    duckdb_max_temp_directory_size: str = "10GB"
    duckdb_load_fts: bool = True

    # httpfs / S3 (only applied when the database reads remote parquet)
    duckdb_configure_httpfs: bool = False
    duckdb_http_timeout_s: int = 15 * 60
    duckdb_http_keep_alive: bool = True
    duckdb_http_retries: int = 3
    duckdb_s3_uploader_thread_limit: int = 64
    duckdb_s3_credential_chain: bool = False

    # ── Search ───────────────────────────────────────────
    schema_layout: str = "typed"  # typed | flattened
    search_row_limit: int = 1000
    search_bind_parameters: bool = True
    search_require_filter: bool = False
    raw_query_row_limit: int | None = None  # None -> full result set

    # ── Transport ────────────────────────────────────────
    mcp_transport: str = "http"  # http | sse
    mcp_path: str = "/mcp"
    client_gate_enabled: bool = True
    client_gate_user_agents: list[str] = ["claude"]  # case-insensitive substrings
    client_gate_origins: list[str] = ["claude.ai"]

    # ── App ──────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @property
    def temp_directory(self) -> Path:
        if self.duckdb_temp_directory:
            return Path(self.duckdb_temp_directory)
        return Path.cwd()


@lru_cache
def get_settings() -> Settings:
    return Settings()
