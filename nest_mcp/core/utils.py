"""
Small shared utilities for query handling.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Record elapsed wall-clock milliseconds under ``result["elapsed_ms"]``."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def strip_statement_terminator(sql: str) -> str:
    """Drop surrounding whitespace and any trailing semicolons / newlines."""
    return sql.strip().rstrip("; \t\r\n")


def shorten(text: str, width: int = 120) -> str:
    """One-line preview of *text* for log messages."""
    flat = " ".join(text.split())
    if len(flat) <= width:
        return flat
    return flat[: width - 3] + "..."
