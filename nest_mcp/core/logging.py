"""
Structured logging for the nest-mcp service.

Application modules call ``get_logger(__name__)``.  ``configure_service_logging``
routes the server libraries (uvicorn, FastMCP) through the same stdout format so
gate decisions, tool calls and request logs read as one stream.
"""
from __future__ import annotations

import logging
import sys

from nest_mcp.core.config import get_settings

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_SERVICE_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastmcp", "mcp")


def _level(name: str | None = None) -> int:
    name = name or get_settings().log_level
    return getattr(logging, name.upper(), logging.INFO)


def _stdout_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    return handler


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(_stdout_handler())
    logger.setLevel(_level())
    return logger


def configure_service_logging(level: str | None = None) -> None:
    """Give the HTTP server and MCP library loggers the service format."""
    for name in _SERVICE_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers = [_stdout_handler()]
        logger.setLevel(_level(level))
        logger.propagate = False
