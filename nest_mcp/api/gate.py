"""
Perimeter gate -- only lets through requests that look like they come from
a Claude client.

Allow rules:
  - CORS preflight (OPTIONS) always passes
  - ``/.well-known/*`` always passes
  - ``User-Agent`` contains one of ``client_gate_user_agents``
  - ``Origin`` or ``Referer`` contains one of ``client_gate_origins``

Everything else receives 403 with a structured body.  The gate never looks at
tool arguments.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from nest_mcp.core.config import Settings, get_settings
from nest_mcp.core.logging import get_logger

logger = get_logger(__name__)

FORBIDDEN_BODY = {
    "error": "forbidden",
    "message": "Only requests from claude.ai are allowed",
}


def is_from_claude(headers: Mapping[str, str], settings: Settings) -> bool:
    user_agent = headers.get("user-agent", "").lower()
    if any(marker.lower() in user_agent for marker in settings.client_gate_user_agents):
        return True
    for header in ("origin", "referer"):
        value = headers.get(header, "").lower()
        if any(marker.lower() in value for marker in settings.client_gate_origins):
            return True
    return False


def build_client_gate(
    settings: Settings | None = None,
) -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    """Return an ``http`` middleware function enforcing the allow rules."""
    if settings is None:
        settings = get_settings()

    async def client_gate(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if not settings.client_gate_enabled:
            return await call_next(request)
        if request.method == "OPTIONS" or request.url.path.startswith("/.well-known"):
            return await call_next(request)

        if is_from_claude(request.headers, settings):
            logger.info("Request allowed: detected Claude client via headers")
            return await call_next(request)

        logger.warning("Request blocked: not from Claude  path=%s", request.url.path)
        return JSONResponse(status_code=403, content=FORBIDDEN_BODY)

    return client_gate
