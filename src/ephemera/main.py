# src/ephemera/main.py
"""Main entry point for the Ephemera application."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ephemera.api.v1 import moderation_router, posts_router, spaces_router, system_router
from ephemera.core.errors import EphemeraError
from ephemera.core.settings import Settings
from ephemera.db.time import utcnow
from ephemera.services.cleanup import ExpirationScheduler, build_scheduler
from ephemera.services.moderation import ContentModerationService

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    session_factory: Callable[[], Session] | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Build the application with its scheduler and moderation engine.

    Args:
        settings: Configuration; defaults to the environment-loaded settings.
        session_factory: Session maker; defaults to the engine from ``settings``.
        clock: Source of the current UTC time.
    """
    if settings is None:
        from ephemera.core.settings import settings as env_settings

        settings = env_settings
    if session_factory is None:
        from ephemera.db.session import SessionLocal

        session_factory = SessionLocal

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Ephemera API",
        description="Ephemeral community walls: every post expires",
        version=settings.app_version,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.clock = clock
    app.state.moderation = ContentModerationService(settings)
    app.state.scheduler = build_scheduler(settings, session_factory, clock)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Add GZip middleware for compression
    app.add_middleware(GZipMiddleware)

    @app.middleware("http")
    async def piggyback_cleanup(request: Request, call_next):
        # Never blocks: the lazy policy schedules its sweep as a background task.
        request.app.state.scheduler.on_request()
        return await call_next(request)

    @app.exception_handler(EphemeraError)
    async def handle_domain_error(request: Request, exc: EphemeraError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Include API routers
    app.include_router(spaces_router, prefix="/api/v1")
    app.include_router(posts_router, prefix="/api/v1")
    app.include_router(moderation_router, prefix="/api/v1")
    app.include_router(system_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup() -> None:
        scheduler: ExpirationScheduler = app.state.scheduler
        await scheduler.start()
        logger.info(
            "%s %s started (cleanup strategy: %s)",
            settings.app_name,
            settings.app_version,
            settings.cleanup_strategy,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        scheduler: ExpirationScheduler = app.state.scheduler
        await scheduler.stop()

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic information about the API."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/api/v1/system/health",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    from ephemera.core.settings import settings as env_settings

    uvicorn.run("ephemera.main:app", host="0.0.0.0", port=8000, reload=env_settings.debug)
