"""
FastAPI application entry-point: perimeter gate, metadata endpoints, REST
routers and the mounted MCP app.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nest_mcp.api.gate import build_client_gate
from nest_mcp.api.routers import catalog, search
from nest_mcp.core.config import Settings, get_settings
from nest_mcp.core.errors import CompanyQueryError, MalformedRequest
from nest_mcp.core.logging import configure_service_logging, get_logger
from nest_mcp.tools.server import create_tool_server

logger = get_logger(__name__)

PROTECTED_RESOURCE_METADATA = {
    "resource": "mcp",
    "authorization_servers": [],
    "bearer_methods_supported": ["header"],
}


def _mcp_http_app(settings: Settings):
    mcp = create_tool_server(settings)
    if settings.mcp_transport == "sse":
        return mcp.http_app(path="/sse", transport="sse")
    return mcp.http_app(path="/", json_response=True, stateless_http=True)


def create_app(settings: Settings | None = None) -> FastAPI:
    if settings is None:
        settings = get_settings()

    configure_service_logging(settings.log_level)
    mcp_app = _mcp_http_app(settings)

    app = FastAPI(
        title="nest-mcp",
        version="0.1.0",
        description="Query tools over the company register and annual reports",
        lifespan=mcp_app.lifespan,
    )
    app.state.settings = settings

    # Registered before CORS so preflight responses still get CORS headers.
    app.middleware("http")(build_client_gate(settings))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CompanyQueryError)
    async def company_query_error_handler(request: Request, exc: CompanyQueryError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = MalformedRequest(list(exc.errors()))
        logger.warning("Rejected malformed request  path=%s  %s", request.url.path, error.message)
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.get("/.well-known/oauth-protected-resource")
    def oauth_protected_resource():
        return PROTECTED_RESOURCE_METADATA

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(search.router, tags=["Search"])
    app.include_router(catalog.router, tags=["Catalog"])
    app.mount(settings.mcp_path, mcp_app)

    logger.info("App ready  mcp=%s (%s)", settings.mcp_path, settings.mcp_transport)
    return app


app = create_app()
