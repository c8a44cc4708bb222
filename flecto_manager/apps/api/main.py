from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flecto_manager.apps.api.errors import (
    flecto_error_handler,
    http_exception_handler,
    project_scope_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from flecto_manager.apps.api.response import API_VERSION, REQUEST_ID_HEADER
from flecto_manager.apps.api.routes import (
    agent_feed,
    agents,
    auth,
    health,
    namespaces,
    pages,
    projects,
    redirects,
    roles,
    tokens,
    users,
)
from flecto_manager.core.config import Settings, get_settings
from flecto_manager.core.errors import FlectoError
from flecto_manager.core.logging import configure_logging
from flecto_manager.persistence.guards import ProjectScopeError


logger = logging.getLogger(__name__)

# Reachable without a bearer credential.
PUBLIC_PATHS = frozenset({f"/{API_VERSION}/health", f"/{API_VERSION}/auth/login", f"/{API_VERSION}/auth/refresh"})

_ROUTE_MODULES = (health, auth, agent_feed, namespaces, projects, redirects, pages, agents, roles, users, tokens)

# Most specific exception types first; Exception is the catch-all.
_EXCEPTION_HANDLERS = (
    (FlectoError, flecto_error_handler),
    (ProjectScopeError, project_scope_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (HTTPException, http_exception_handler),
    (StarletteHTTPException, starlette_http_exception_handler),
    (Exception, unhandled_exception_handler),
)


def _build_openapi(app: FastAPI, settings: Settings) -> dict:
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(title=settings.app_name, version=API_VERSION, routes=app.routes)
    schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
    schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
    for path, operations in schema.get("paths", {}).items():
        if path in PUBLIC_PATHS:
            continue
        for operation in operations.values():
            operation.setdefault("security", [{"BearerAuth": []}])
    app.openapi_schema = schema
    return schema


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title=settings.app_name, openapi_url=None, docs_url=None, redoc_url=None)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        logger.debug(
            "request method=%s path=%s status=%s latency_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - start) * 1000.0,
        )
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    for exc_type, handler in _EXCEPTION_HANDLERS:
        app.add_exception_handler(exc_type, handler)

    for module in _ROUTE_MODULES:
        app.include_router(module.router, prefix=f"/{API_VERSION}")

    @app.get(f"/{API_VERSION}/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get(f"/{API_VERSION}/docs", include_in_schema=False)
    async def docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url=f"/{API_VERSION}/openapi.json", title=f"{settings.app_name} {API_VERSION}")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url=f"/{API_VERSION}/docs")

    app.openapi = lambda: _build_openapi(app, settings)  # type: ignore[method-assign]
    logger.info("api configured app=%s routers=%d", settings.app_name, len(_ROUTE_MODULES))
    return app


app = create_app()
