"""
Invoice Manager API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import engine
from app.core.middleware import (
    CSRFMiddleware,
    RequestTimeoutMiddleware,
    SecurityHeadersMiddleware,
    error_response,
)
from app.core.redis import close_redis, ping_redis
from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router

settings = get_settings()
log = structlog.get_logger()

GENERIC_ERROR = "Something went wrong. Please try again."


async def _database_ready() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        log.error("ready.database_unavailable", error=str(e))
        return False


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Invoice Manager",
        description="Multi-tenant invoice intake, verification and hand-off to accountants.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters - last added is outermost)
    app.add_middleware(RequestTimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log.exception("request.unhandled_error", path=request.url.path, method=request.method)
        return error_response(500, "INTERNAL_ERROR", GENERIC_ERROR)

    # Auth routes (not org-scoped)
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    # Uploaded logos
    app.mount(settings.media_url, StaticFiles(directory=settings.media_root, check_dir=False), name="media")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis must both answer."""
        checks = {"database": await _database_ready(), "redis": await ping_redis()}
        failing = sorted(name for name, ok in checks.items() if not ok)
        if failing:
            return error_response(503, "NOT_READY", f"Unavailable: {', '.join(failing)}")
        return {"status": "ready", "checks": checks}

    @app.on_event("startup")
    async def on_startup():
        log.info("Invoice Manager starting", debug=settings.debug)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Invoice Manager shutting down")
        await close_redis()

    return app


app = create_app()
