"""FastAPI application factory for ComicGate.

The app owns one :class:`ComicGateContainer` for its whole lifetime: it is
built and its maintenance loops started when the lifespan begins, and it
is closed when the lifespan ends. Routes reach it through
``comicgate.dependencies``.
"""

import time
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from comicgate.config import Settings, get_settings
from comicgate.core.exceptions import ComicGateError, ReadCancelledError
from comicgate.core.logging import (
    bind_request_id,
    clear_request_context,
    configure_logging,
    get_logger,
    get_request_id,
)
from comicgate.services.container import ComicGateContainer

REQUEST_ID_HEADER = "X-Request-ID"

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing
        transport: Optional httpx transport for every outbound request;
            tests pass an ``httpx.MockTransport`` here

    Returns:
        FastAPI: Configured application instance
    """
    if settings is None:
        settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(settings)
        container = ComicGateContainer.create(settings, transport=transport)
        app.state.container = container
        container.start_maintenance()
        logger.info(
            "app_started",
            environment=settings.app_env.value,
            mirrors=container.pool.bases(),
            maintenance=container.background.names,
        )
        try:
            yield
        finally:
            await container.close()
            logger.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Retrieval layer for a mirrored, encrypted comic API: mirror "
            "failover, payload decryption, page descrambling and caching."
        ),
        version=settings.service_version,
        lifespan=lifespan,
    )

    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(ComicGateError, comicgate_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    configure_routes(app, settings)

    return app


# =============================================================================
# Middleware
# =============================================================================


async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Bind a request id to the log context and time the request."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    bind_request_id(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "request_failed",
            method=request.method,
            path=request.url.path,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        raise
    else:
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_request_context()


# =============================================================================
# Exception handlers
# =============================================================================


async def comicgate_error_handler(request: Request, exc: ComicGateError) -> JSONResponse:
    """Render a ComicGateError as ``{"error": {...}}`` with its status code."""
    fields = {"error_code": exc.code, "path": request.url.path}
    if isinstance(exc, ReadCancelledError):
        logger.info("read_cancelled_response", stage=exc.stage, **fields)
    elif exc.status_code >= 500:
        logger.error("upstream_error_response", error=exc.message, **fields)
    else:
        logger.warning("client_error_response", error=exc.message, **fields)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(request_id=get_request_id()),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "request_id": get_request_id(),
            }
        },
    )


# =============================================================================
# Routes
# =============================================================================


def configure_routes(app: FastAPI, settings: Settings) -> None:
    """Mount the probes and the versioned API."""
    from comicgate.api.v1.router import router as v1_router

    @app.get("/health/live", tags=["Health"], summary="Liveness probe")
    async def liveness() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/", tags=["Root"], summary="Service information")
    async def root() -> dict[str, str]:
        return {
            "service": settings.app_name,
            "version": settings.service_version,
            "docs": "/docs",
            "health": "/health/live",
        }

    app.include_router(v1_router, prefix="/api/v1")


def cli() -> None:
    """Run the service with uvicorn using environment settings."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "comicgate.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
