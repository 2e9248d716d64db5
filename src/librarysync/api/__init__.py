"""HTTP API for the library sync service."""

from fastapi import FastAPI

from librarysync.api.exception_handlers import register_exception_handlers
from librarysync.api.routers import health, library
from librarysync.config import Settings
from librarysync.infrastructure.lifecycle import lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use instead of get_settings() (tests pass their own)
    """
    app = FastAPI(title="librarysync", version="0.1.0", lifespan=lifespan)
    if settings is not None:
        app.state.settings = settings

    register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(library.router)
    return app


__all__ = ["create_app"]
