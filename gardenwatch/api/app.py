"""FastAPI application factory for gardenwatch.

Usage::

    from gardenwatch.api.app import create_app

    app = create_app(store=store, watches=[(collection, dispatcher), ...])

The factory is used by both the production bootstrap (``gardenwatch.app``)
and unit tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from gardenwatch.api.routes import router
from gardenwatch.api.schemas import ErrorResponse, HealthResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    store: Any,
    watches: Sequence[tuple[Any, Any]] = (),
) -> FastAPI:
    """Create and configure the status API.

    Args:
        store:   ResourceStore holding the watched collections.
        watches: ``(ResourceCollection, Dispatcher)`` pairs, one per watch.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from gardenwatch import __version__

    app = FastAPI(
        title="gardenwatch",
        summary="Watch status for Gardener cluster resources",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.store = store
    app.state.watches = list(watches)

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(version=__version__)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

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
