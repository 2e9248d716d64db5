"""Library endpoints: cached collections, sync state, manual sync and live updates."""

import asyncio
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request, Response, status
from sse_starlette.sse import EventSourceResponse

from librarysync.api.dependencies import get_engine, get_foreground
from librarysync.api.schemas.library import (
    AlbumDTO,
    ForegroundRequest,
    ForegroundResponse,
    LibrarySnapshotDTO,
    PlaylistDTO,
    SyncStateDTO,
)
from librarysync.application.services import LibrarySyncEngine
from librarysync.domain.entities import CachedAlbum, CachedPlaylist, SyncState
from librarysync.infrastructure.foreground import ForegroundSignal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/library", tags=["library"])

# Slow clients lose the oldest snapshots, never block the engine
EVENT_QUEUE_SIZE = 32
EVENT_WAIT_SECONDS = 15.0


def _snapshot(
    state: SyncState,
    playlists: list[CachedPlaylist] | None,
    albums: list[CachedAlbum] | None,
    liked_songs_count: int | None,
) -> LibrarySnapshotDTO:
    return LibrarySnapshotDTO(
        state=SyncStateDTO.from_entity(state),
        playlists=[PlaylistDTO.from_entity(p) for p in playlists] if playlists is not None else None,
        albums=[AlbumDTO.from_entity(a) for a in albums] if albums is not None else None,
        liked_songs_count=liked_songs_count,
    )


@router.get("/state", response_model=SyncStateDTO)
async def get_state(engine: LibrarySyncEngine = Depends(get_engine)) -> SyncStateDTO:
    """Current sync state."""
    return SyncStateDTO.from_entity(engine.get_state())


@router.get("/playlists", response_model=list[PlaylistDTO])
async def list_playlists(engine: LibrarySyncEngine = Depends(get_engine)) -> list[PlaylistDTO]:
    """Cached playlists, in remote order."""
    return [PlaylistDTO.from_entity(p) for p in await engine.get_playlists()]


@router.get("/albums", response_model=list[AlbumDTO])
async def list_albums(engine: LibrarySyncEngine = Depends(get_engine)) -> list[AlbumDTO]:
    """Cached saved albums, in remote order."""
    return [AlbumDTO.from_entity(a) for a in await engine.get_albums()]


@router.post("/sync", response_model=SyncStateDTO)
async def sync_now(engine: LibrarySyncEngine = Depends(get_engine)) -> SyncStateDTO:
    """Run one sync cycle now and return the resulting state.

    If a cycle is already running this returns right away with syncing=True.
    """
    await engine.sync_now()
    return SyncStateDTO.from_entity(engine.get_state())


@router.post("/foreground", response_model=ForegroundResponse)
async def set_foreground(
    body: ForegroundRequest,
    engine: LibrarySyncEngine = Depends(get_engine),
    foreground: ForegroundSignal = Depends(get_foreground),
) -> ForegroundResponse:
    """Tell the engine the app moved to the foreground or background."""
    foreground.set_visible(body.visible)
    return ForegroundResponse(visible=foreground.visible, polling=engine.is_polling)


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache(engine: LibrarySyncEngine = Depends(get_engine)) -> Response:
    """Wipe the local cache (e.g. on sign-out)."""
    await engine.clear_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def snapshot_events(
    request: Request, engine: LibrarySyncEngine
) -> AsyncIterator[dict[str, str]]:
    """Yield one "snapshot" SSE message per engine notification until the client leaves.

    The first message is the current state (no collections), like any new subscriber gets.
    """
    queue: asyncio.Queue[LibrarySnapshotDTO] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)

    def on_update(
        state: SyncState,
        playlists: list[CachedPlaylist] | None,
        albums: list[CachedAlbum] | None,
        liked_songs_count: int | None,
    ) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(_snapshot(state, playlists, albums, liked_songs_count))

    unsubscribe = engine.subscribe(on_update)
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=EVENT_WAIT_SECONDS)
            except TimeoutError:
                continue
            yield {"event": "snapshot", "data": snapshot.model_dump_json()}
    except asyncio.CancelledError:
        logger.debug("SSE connection cancelled")
        raise
    finally:
        unsubscribe()


@router.get("/events")
async def library_events(
    request: Request, engine: LibrarySyncEngine = Depends(get_engine)
) -> EventSourceResponse:
    """Server-sent events stream of library snapshots."""
    return EventSourceResponse(snapshot_events(request, engine))
