"""Dependency injection for API endpoints."""

from fastapi import HTTPException, Request, status

from librarysync.application.services import LibrarySyncEngine
from librarysync.infrastructure.foreground import ForegroundSignal


# Hey future me, everything lives on app.state (set by the lifespan). If it's missing the app
# is still starting or startup failed - answer 503 instead of an AttributeError 500.
def get_engine(request: Request) -> LibrarySyncEngine:
    """Get the library sync engine from app state."""
    engine: LibrarySyncEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Library sync engine not initialized",
        )
    return engine


def get_foreground(request: Request) -> ForegroundSignal:
    """Get the foreground signal from app state."""
    foreground: ForegroundSignal | None = getattr(request.app.state, "foreground", None)
    if foreground is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Foreground signal not initialized",
        )
    return foreground
