# src/runboard/main.py

"""Main FastAPI application for Runboard."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .api import health, leaderboard, live
from .config import settings
from .db.session import engine, pool_monitor
from .exceptions import (
    RunboardError,
    StoreError,
    StoreIntegrityError,
    ValidationError,
)
from .middleware.logging import RequestLoggingMiddleware
from .services import diagnostics
from .services.presence import PresenceBroadcaster

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown events."""
    # Startup: report the environment, then make sure the schema exists.
    # A store failure here propagates and aborts the server.
    start_time = time.perf_counter()
    diagnostics.log_startup_banner(settings)
    if not settings.is_sqlite and settings.store_url.host:
        await diagnostics.log_dns_resolution(settings.store_url.host)
    await diagnostics.init_database(engine, pool_monitor, settings)

    logger.info(diagnostics.BANNER)
    logger.info(
        "Server ready on port %d (startup: %.0fms)",
        settings.port,
        (time.perf_counter() - start_time) * 1000,
    )
    logger.info("  Health check: http://localhost:%d/health", settings.port)
    logger.info("  Live viewers: ws://localhost:%d/ws", settings.port)
    logger.info("  Pool stats - %s", pool_monitor.format_stats())
    logger.info(diagnostics.BANNER)
    yield
    # Shutdown: Dispose of database connections gracefully
    await engine.dispose()


app = FastAPI(title="Runboard API", lifespan=lifespan)

# Live viewer count lives for the process lifetime
app.state.presence = PresenceBroadcaster()

# Add middleware (order matters - last added = outermost)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# =============================================================================
# Global Exception Handlers
# =============================================================================


@app.exception_handler(ValidationError)
async def validation_error_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """Handle all validation errors -> 400."""
    logger.warning("Validation error: %s", exc.message, extra=exc.details)
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle malformed bodies and query parameters -> 400."""
    logger.warning("Invalid request: %s", exc.errors())
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Handle store failures -> 500 with the underlying reason."""
    if isinstance(exc, StoreIntegrityError):
        logger.error("Store integrity error: %s", exc.reason, extra=exc.details, exc_info=exc)
    else:
        logger.error("Store unavailable: %s", exc.reason, extra=exc.details)
    return JSONResponse(
        status_code=500,
        content={"error": exc.message, "message": exc.reason},
    )


@app.exception_handler(RunboardError)
async def runboard_error_handler(
    request: Request, exc: RunboardError
) -> JSONResponse:
    """Catch-all for any other Runboard errors -> 500."""
    logger.error("Runboard error: %s", exc.message, extra=exc.details, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": exc.message, "error_type": type(exc).__name__},
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Catch-all for SQLAlchemy errors that escaped the service layer."""
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "An internal database error occurred"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "An internal server error occurred"},
    )


# Include routers into the main application
app.include_router(leaderboard.router)
app.include_router(health.router)
app.include_router(live.router)
