"""First snapshot at boot: warm start from cache or progressive cold start."""

import asyncio
import contextlib
import logging

from librarysync.application.services.library_reconciler import build_meta
from librarysync.application.services.subscription_hub import SubscriptionHub
from librarysync.domain.entities import (
    CachedAlbum,
    CachedPlaylist,
    CollectionMeta,
    LibraryCollection,
    utc_now,
)
from librarysync.domain.exceptions import CacheUnavailableError, SyncAbortedError
from librarysync.domain.ports import ILibraryGateway, ILibraryStore
from librarysync.domain.value_objects import CancellationToken
from librarysync.infrastructure.observability import log_operation

logger = logging.getLogger(__name__)


class StartupController:
    """Produce the first usable snapshot as fast as possible.

    Warm start: the cache has playlists or albums -> mark the initial load complete and
    broadcast the cache right away. The engine then runs one validation cycle.

    Cold start: nothing cached -> stream the library page by page. Every page is broadcast
    immediately; a collection is persisted (items, then meta) once its last page arrived.
    """

    def __init__(
        self, gateway: ILibraryGateway, store: ILibraryStore, hub: SubscriptionHub
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._hub = hub

    async def serve_cache(self) -> bool:
        """Broadcast the cached library if there is one.

        Returns:
            True for a warm start (cache had data), False if a cold start is needed

        Raises:
            CacheUnavailableError: If the store cannot be read
        """
        playlists, albums, liked_meta = await asyncio.gather(
            self._store.get_all(LibraryCollection.PLAYLISTS),
            self._store.get_all(LibraryCollection.ALBUMS),
            self._store.get_meta(LibraryCollection.LIKED_SONGS),
        )
        if not playlists and not albums:
            return False

        self._hub.update_state(initial_load_complete=True)
        self._hub.notify(
            playlists=playlists,  # type: ignore[arg-type]
            albums=albums,  # type: ignore[arg-type]
            liked_songs_count=liked_meta.total_count if liked_meta is not None else None,
        )
        logger.info(
            "library_startup.warm",
            extra={"playlists": len(playlists), "albums": len(albums)},
        )
        return True

    async def cold_start(self, token: CancellationToken) -> bool:
        """Progressively load the library from the remote service.

        Hey future me - initial_load_complete ends up True on EVERY path out of here (success,
        error, abort, not signed in). A UI waiting on it must never hang.

        Returns:
            Whether the engine should start polling afterwards (False when not signed in)

        Raises:
            CacheUnavailableError: If the fetched library cannot be written to the store
        """
        if not self._gateway.is_authenticated():
            self._hub.update_state(initial_load_complete=True, syncing=False)
            self._hub.notify(playlists=[], albums=[])
            logger.info("library_startup.unauthenticated")
            return False

        self._hub.update_state(syncing=True, error=None)
        self._hub.notify()

        playlists: list[CachedPlaylist] = []
        albums: list[CachedAlbum] = []
        liked_task = asyncio.create_task(self._fetch_liked_songs_count(token))

        try:
            async with log_operation(logger, "library_startup.cold"):
                async with contextlib.aclosing(
                    token.iterate(self._gateway.stream_library(token))
                ) as events:
                    async for event in events:
                        if event.collection is LibraryCollection.PLAYLISTS:
                            playlists = list(event.items)  # type: ignore[arg-type]
                        elif event.collection is LibraryCollection.ALBUMS:
                            albums = list(event.items)  # type: ignore[arg-type]
                        self._hub.notify(playlists=playlists, albums=albums)

                        if event.is_complete:
                            items = list(event.items)
                            await self._store.put_all(event.collection, items)
                            await self._store.put_meta(
                                build_meta(event.collection, items, len(items))
                            )

                liked_count = await liked_task
        except SyncAbortedError:
            await self._cancel(liked_task)
            self._hub.update_state(initial_load_complete=True, syncing=False)
            self._hub.notify()
            return True
        except CacheUnavailableError as e:
            await self._cancel(liked_task)
            self._hub.update_state(initial_load_complete=True, syncing=False, error=e.message)
            self._hub.notify()
            raise
        except Exception as e:
            await self._cancel(liked_task)
            self._hub.update_state(
                initial_load_complete=True, syncing=False, error=describe_error(e)
            )
            self._hub.notify()
            return True

        self._hub.update_state(
            initial_load_complete=True, syncing=False, last_sync_at=utc_now(), error=None
        )
        self._hub.notify(playlists=playlists, albums=albums, liked_songs_count=liked_count)
        return True

    async def _fetch_liked_songs_count(self, token: CancellationToken) -> int | None:
        """Fetch and persist the liked-songs count.

        A failed fetch is NOT persisted: the missing meta makes the next cycle pick it up.
        """
        try:
            count = await token.run(self._gateway.get_liked_songs_count(token))
        except SyncAbortedError:
            raise
        except Exception as e:
            logger.warning(
                "library_startup.liked_count_failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return None

        await self._store.put_meta(
            CollectionMeta(
                collection=LibraryCollection.LIKED_SONGS,
                last_validated_at=utc_now(),
                total_count=count,
            )
        )
        return count

    @staticmethod
    async def _cancel(task: asyncio.Task[int | None]) -> None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


def describe_error(error: Exception) -> str:
    """Human-readable text for SyncState.error."""
    message = getattr(error, "message", None) or str(error)
    return message or type(error).__name__
