"""FastAPI application factory for the kubecache status API.

Usage::

    from kubecache.api.app import create_app

    app = create_app(cache=cache)

Used both by the production bootstrap (``kubecache.app``) and by tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kubecache.api.routes import router
from kubecache.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(cache: Any, config: Any = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        cache:  ResourceCache to expose. Only its read and introspection
                methods are used.
        config: KubeCacheConfig, kept on ``app.state`` for handlers.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubecache import __version__

    app = FastAPI(
        title="kubecache",
        summary="Read-only view of a watch-driven Kubernetes resource cache",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )
    app.state.cache = cache
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Map query validation errors to the error envelope."""
        errors = exc.errors()
        detail = ""
        if errors:
            locs = errors[0].get("loc", ())
            field = str(locs[-1]) if locs else ""
            detail = f"{field}: {errors[0].get('msg', '')}"
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=detail).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all: log and answer 500 without a stack trace."""
        _log.error("api_unhandled_exception", path=str(request.url.path), method=request.method, error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="INTERNAL_ERROR", detail="An unexpected error occurred.").model_dump(),
        )

    return app
