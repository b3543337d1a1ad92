"""
FastAPI application factory.

``create_app()`` wires middleware, routers, error handlers and lifespan
events around a ``Runtime`` into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root for HTTP: routers get
    the orchestrator and pool injected, nothing imports a global.

Tags:
    adops-core, api, app-factory, composition-root, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from adops import __version__
from adops.api.routers import create_credentials_router, create_health_router, create_jobs_router
from adops.core.errors import AdopsError, ErrorCategory
from adops.observability.logging import configure_logging, get_logger
from adops.runtime import Runtime, get_runtime

logger = get_logger(__name__)

_CATEGORY_STATUS = {
    ErrorCategory.CONFIG: 400,
    ErrorCategory.JOB: 404,
    ErrorCategory.CREDENTIAL: 503,
    ErrorCategory.NETWORK: 502,
    ErrorCategory.SOURCE: 502,
    ErrorCategory.DISPATCH: 503,
}


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to the response and to every log event."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


async def adops_error_handler(request: Request, exc: AdopsError) -> JSONResponse:
    """Errors that escaped a router become a JSON body with their category."""
    status_code = _CATEGORY_STATUS.get(exc.category, 500)
    logger.warning("request_failed", path=request.url.path, status_code=status_code, **exc.to_dict())
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "error": exc.to_dict()})


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Args:
        runtime: Override the process runtime (useful for testing). When
            ``None`` the cached :func:`get_runtime` instance is used.
    """
    runtime = runtime or get_runtime()
    configure_logging(level=runtime.settings.log_level, format=runtime.settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("api_starting", version=app.version, dispatch_mode=runtime.dispatcher.mode)
        yield
        logger.info("api_stopping")

    app = FastAPI(title="adops-core", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime

    app.add_middleware(RequestIDMiddleware)
    app.add_exception_handler(AdopsError, adops_error_handler)

    app.include_router(create_health_router(runtime))
    app.include_router(create_jobs_router(runtime.orchestrator))
    app.include_router(create_credentials_router(runtime))
    return app
