"""API routers."""

from librarysync.api.routers import health, library

__all__ = ["health", "library"]
