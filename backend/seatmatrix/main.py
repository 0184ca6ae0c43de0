"""FastAPI application for the seat and fare matrix service.

Routers are mounted under ``API_V1_PREFIX``; railway errors escaping a route
are turned into JSON responses by ``railway_error_handler``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from seatmatrix import __version__
from seatmatrix.api import account, availability, matrix
from seatmatrix.api.errors import railway_error_handler
from seatmatrix.core.config import settings
from seatmatrix.core.errors import RailwayError
from seatmatrix.core.logging import configure_logging
from seatmatrix.core.telemetry import get_tracer_provider, shutdown_logger_provider, shutdown_tracer_provider
from seatmatrix.middleware import AccessLoggingMiddleware

# Before the app exists, so uvicorn's startup lines are rendered by structlog too
configure_logging(log_level=settings.LOG_LEVEL)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Install the tracer provider per worker; flush telemetry on the way out."""
    if settings.OTEL_ENABLED and (provider := get_tracer_provider()):
        trace.set_tracer_provider(provider)
        logger.info("otel_tracer_provider_initialized")

    logger.info(
        "startup_complete",
        railway_api=settings.RAILWAY_API_BASE_URL,
        max_concurrent_requests=settings.MAX_CONCURRENT_REQUESTS,
        server_credentials_configured=bool(settings.RAILWAY_AUTH_TOKEN and settings.RAILWAY_DEVICE_KEY),
    )
    try:
        yield
    finally:
        if settings.OTEL_ENABLED:
            shutdown_tracer_provider()
            shutdown_logger_provider()
        logger.info("shutdown_complete")


app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Bangladesh Railway seat and fare matrix service",
    version=__version__,
    lifespan=lifespan,
)

if settings.OTEL_ENABLED:
    FastAPIInstrumentor().instrument_app(app, excluded_urls=",".join(settings.OTEL_EXCLUDED_URLS))

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "X-Device-Key", "Content-Type"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(AccessLoggingMiddleware)
app.add_exception_handler(RailwayError, railway_error_handler)

for router in (matrix.router, availability.router, account.router):
    app.include_router(router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": app.title, "version": __version__}


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness probe; the service holds no connections that need warming up."""
    return {"status": "ready"}
