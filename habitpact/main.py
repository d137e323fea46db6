"""habitpact - Main Application.

FastAPI application exposing the challenge lifecycle core over HTTP.
"""

import os
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from habitpact import __version__
from habitpact.challenges.api import router as challenges_router
from habitpact.challenges.config import get_challenge_settings
from habitpact.challenges.scheduler import challenge_scheduler_tick
from habitpact.infrastructure.database.session import close_db, init_db
from habitpact.infrastructure.scheduler import PeriodicScheduler
from habitpact.shared.utils.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)

logger = get_logger(__name__)

APP_TITLE = "habitpact"
APP_DESCRIPTION = """
Time-boxed habit challenges with invited participants and optional
per-person stakes. Stakes are tracked as metadata only; no money moves.

Callers identify themselves with the `X-User-Id` header, set by the
upstream identity provider.
"""
APP_VERSION = __version__
API_PREFIX = "/api/v1"

TAGS_METADATA = [
    {
        "name": "health",
        "description": "Health check and status endpoints",
    },
    {
        "name": "challenges",
        "description": "Challenge lifecycle, invitations and stake verification",
    },
]


# ===========================================
# LIFECYCLE MANAGEMENT
# ===========================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    configure_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        json_format=os.getenv("LOG_FORMAT", "json").lower() == "json",
    )
    logger.info("app_starting", title=APP_TITLE, version=APP_VERSION)

    await init_db(create_tables=os.getenv("DATABASE_CREATE_TABLES", "false").lower() == "true")

    settings = get_challenge_settings()
    scheduler = PeriodicScheduler()
    if settings.auto_complete_enabled:
        scheduler.register(
            "challenge_auto_complete",
            settings.auto_complete_interval_seconds,
            challenge_scheduler_tick,
        )
    await scheduler.start()
    app.state.scheduler = scheduler

    yield

    logger.info("app_stopping", title=APP_TITLE)
    await scheduler.stop()
    await close_db()


# ===========================================
# APPLICATION FACTORY
# ===========================================


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def add_request_timing(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id, user_id=request.headers.get("X-User-Id"))
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc) if app.debug else "An unexpected error occurred",
            },
        )

    app.include_router(challenges_router, prefix=API_PREFIX)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "healthy", "version": APP_VERSION}

    return app


app = create_app()
