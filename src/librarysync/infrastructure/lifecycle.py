"""Wiring and lifespan of the library sync service.

This module builds the object graph (database, store, Spotify gateway, foreground signal,
engine) and owns the FastAPI lifespan that starts and stops it.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from librarysync.application.services import LibrarySyncEngine
from librarysync.config import Settings, get_settings
from librarysync.domain.exceptions import ConfigurationError
from librarysync.infrastructure.foreground import ForegroundSignal
from librarysync.infrastructure.integrations.spotify_client import SpotifyLibraryClient
from librarysync.infrastructure.observability import configure_logging
from librarysync.infrastructure.persistence import Database, SqlAlchemyLibraryStore

logger = logging.getLogger(__name__)


@dataclass
class LibrarySyncComponents:
    """Everything the service needs at runtime, built once at startup."""

    database: Database
    store: SqlAlchemyLibraryStore
    gateway: SpotifyLibraryClient
    foreground: ForegroundSignal
    engine: LibrarySyncEngine


def build_components(settings: Settings) -> LibrarySyncComponents:
    """Construct the engine and its collaborators. Does no I/O."""
    database = Database(settings)
    store = SqlAlchemyLibraryStore(database)
    gateway = SpotifyLibraryClient(settings.spotify)
    foreground = ForegroundSignal()
    engine = LibrarySyncEngine(
        gateway,
        store,
        store,
        foreground,
        page_size=settings.sync.page_size,
        poll_interval_seconds=settings.sync.poll_interval_seconds,
    )
    return LibrarySyncComponents(
        database=database,
        store=store,
        gateway=gateway,
        foreground=foreground,
        engine=engine,
    )


# Hey future me, this validates the SQLite path BEFORE the engine opens it. SQLite also needs
# to create -wal/-shm files next to the .db file, so we check the directory is writable, not
# just that it exists. We don't pre-create the .db file - SQLite initialises it properly.
def _validate_sqlite_path(settings: Settings) -> None:
    """Ensure the SQLite parent directory exists and is writable."""
    db_path = settings._get_sqlite_db_path()
    if db_path is None:
        return

    try:
        if db_path.parent and str(db_path.parent) != ".":
            db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update LIBRARYSYNC_DATABASE__URL or adjust directory permissions."
        ) from exc

    try:
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to write files in database directory '{db_path.parent}': {exc}. "
            "SQLite requires write permissions to create database and journal files."
        ) from exc


def _log_start_result(task: "asyncio.Task[None]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            "library_sync.engine.start_failed",
            exc_info=(type(error), error, error.__traceback__),
        )


# Listen future me, everything before `yield` runs at STARTUP, everything after at SHUTDOWN.
# engine.start() runs as a background task: a cold start of a big library can take a while
# and the API should answer /library/state (initial_load_complete=False) in the meantime.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    _validate_sqlite_path(settings)
    components = build_components(settings)
    await components.database.create_tables()

    app.state.settings = settings
    app.state.db = components.database
    app.state.library_store = components.store
    app.state.spotify_client = components.gateway
    app.state.foreground = components.foreground
    app.state.engine = components.engine

    start_task = asyncio.create_task(components.engine.start(), name="library-sync-start")
    start_task.add_done_callback(_log_start_result)

    try:
        yield
    finally:
        logger.info("Shutting down application")

        # 1. Stop the engine (timer, in-flight cycle, foreground observer)
        try:
            await components.engine.aclose()
        except Exception as e:
            logger.exception("Error stopping library sync engine: %s", e)

        # 2. The initial load may still be running; its token is fired, give it a moment
        if not start_task.done():
            try:
                await asyncio.wait_for(
                    asyncio.shield(start_task),
                    timeout=settings.observability.shutdown_timeout,
                )
            except TimeoutError:
                start_task.cancel()
            except Exception:
                # Already reported by _log_start_result
                pass

        # 3. Close HTTP client
        try:
            await components.gateway.close()
        except Exception as e:
            logger.exception("Error closing Spotify client: %s", e)

        # 4. Close database connection
        try:
            await components.database.close()
            logger.info("Database connection closed")
        except Exception as e:
            logger.exception("Error closing database: %s", e)
