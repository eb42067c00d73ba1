"""FastAPI application factory for the kubemirror status API.

Usage::

    from kubemirror.api.app import create_app

    app = create_app(access=access, config=config)

The factory is used by both the production bootstrap (``kubemirror.app``)
and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kubemirror.api.routes import router
from kubemirror.api.schemas import ErrorResponse
from kubemirror.errors import AccessError

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"

_STATUS_BY_CODE = {
    "KIND_NOT_FOUND": 404,
    "RESOURCE_NOT_FOUND": 404,
    "INVALID_MANIFEST": 400,
    "UNSUPPORTED_KIND": 400,
    "DISCOVERY_UNAVAILABLE": 503,
    "UPSTREAM_ERROR": 502,
    "CANCELLED": 504,
}


def create_app(access: Any, config: Any = None) -> FastAPI:
    """Create and configure the status API.

    Args:
        access: ResourceAccess instance whose fan-out state is reported.
        config: KubeMirrorConfig, kept on ``app.state`` for handlers.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubemirror import __version__

    app = FastAPI(
        title="kubemirror",
        summary="Kubernetes resource mirror status API",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.access = access
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(AccessError)
    async def access_exception_handler(
        _request: Request,
        exc: AccessError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=_STATUS_BY_CODE.get(exc.code, 500),
            content=ErrorResponse(error=exc.code, detail=str(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
