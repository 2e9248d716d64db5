"""Incremental diff-and-merge of cached collections against the remote service."""

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from librarysync.domain.entities import (
    LIKED_SONGS_CACHE_KEY,
    CachedAlbum,
    CachedPlaylist,
    CollectionMeta,
    LibraryChanges,
    LibraryCollection,
    LibraryItem,
    PageResult,
    derived_cache_key,
    utc_now,
)
from librarysync.domain.exceptions import SyncAbortedError
from librarysync.domain.ports import IDerivedCache, ILibraryGateway, ILibraryStore
from librarysync.domain.value_objects import CancellationToken
from librarysync.infrastructure.observability import log_operation

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    """What one cycle of reconciliation produced.

    A collection that wasn't reconciled (unchanged, or failed) has ``None`` here. Failures are
    collected per collection in ``errors``, in the order the collections were scheduled.
    """

    playlists: list[CachedPlaylist] | None = None
    albums: list[CachedAlbum] | None = None
    liked_songs_count: int | None = None
    errors: dict[LibraryCollection, Exception] = field(default_factory=dict)

    @property
    def error(self) -> Exception | None:
        """First failure of the cycle, if any."""
        return next(iter(self.errors.values()), None)


def latest_added_at(items: list[LibraryItem]) -> datetime | None:
    """Most recent ``added_at`` of ``items`` (None if none has one)."""
    stamps = [item.added_at for item in items if item.added_at is not None]
    return max(stamps) if stamps else None


def build_meta(
    collection: LibraryCollection, items: list[LibraryItem], total_count: int
) -> CollectionMeta:
    """Meta record describing ``items`` as the freshly validated state of ``collection``."""
    return CollectionMeta(
        collection=collection,
        last_validated_at=utc_now(),
        total_count=total_count,
        version_tokens={item.id: item.version_token for item in items if item.version_token},
        latest_added_at=latest_added_at(items),
    )


class LibraryReconciler:
    """Fetch the authoritative first page of a changed collection and merge it into the store.

    Hey future me - the algorithm is the same for playlists and albums:
    1. read cache + meta
    2. fetch page ONE (yes, only one - see the warning below)
    3. drop cached ids that vanished remotely (and their derived caches)
    4. upsert fetched items, carrying added_at forward; invalidate derived cache on token change
    5. write meta LAST, with the count the change detector saw

    Step 5 being last is what makes a crash (or stop()) safe: a reader never sees a meta record
    that claims more than the data it describes.
    """

    def __init__(
        self,
        gateway: ILibraryGateway,
        store: ILibraryStore,
        derived_cache: IDerivedCache,
        page_size: int = 50,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._derived_cache = derived_cache
        self._page_size = page_size

    async def apply_changes(
        self, changes: LibraryChanges, token: CancellationToken
    ) -> ReconcileOutcome:
        """Reconcile every changed collection concurrently.

        One collection failing does not stop the others; its error ends up in the outcome and
        its cached state stays as it was.

        Raises:
            SyncAbortedError: If the token fired during any of the reconciliations
        """
        jobs: dict[LibraryCollection, Awaitable[object]] = {
            collection: self._job_for(collection, changes.count_for(collection), token)
            for collection in changes.changed_collections()
        }
        results = await asyncio.gather(*jobs.values(), return_exceptions=True)

        outcome = ReconcileOutcome()
        aborted: SyncAbortedError | None = None
        for collection, result in zip(jobs.keys(), results, strict=True):
            if isinstance(result, SyncAbortedError):
                aborted = result
            elif isinstance(result, Exception):
                outcome.errors[collection] = result
            elif isinstance(result, BaseException):
                raise result
            elif collection is LibraryCollection.PLAYLISTS:
                outcome.playlists = result  # type: ignore[assignment]
            elif collection is LibraryCollection.ALBUMS:
                outcome.albums = result  # type: ignore[assignment]
            else:
                outcome.liked_songs_count = result  # type: ignore[assignment]

        if aborted is not None:
            raise aborted
        return outcome

    def _job_for(
        self, collection: LibraryCollection, count: int, token: CancellationToken
    ) -> Awaitable[object]:
        if collection is LibraryCollection.PLAYLISTS:
            return self.reconcile_playlists(count, token)
        if collection is LibraryCollection.ALBUMS:
            return self.reconcile_albums(count, token)
        return self.reconcile_liked_songs(count)

    async def reconcile_playlists(
        self, authoritative_count: int, token: CancellationToken
    ) -> list[CachedPlaylist]:
        return await self._reconcile(  # type: ignore[return-value]
            LibraryCollection.PLAYLISTS,
            lambda: self._gateway.get_playlists_page(self._page_size, token),
            authoritative_count,
            token,
        )

    async def reconcile_albums(
        self, authoritative_count: int, token: CancellationToken
    ) -> list[CachedAlbum]:
        return await self._reconcile(  # type: ignore[return-value]
            LibraryCollection.ALBUMS,
            lambda: self._gateway.get_albums_page(self._page_size, token),
            authoritative_count,
            token,
        )

    async def reconcile_liked_songs(self, liked_songs_count: int) -> int:
        """Liked songs have no content to diff: drop the cached listing, record the count."""
        async with log_operation(
            logger, "library_reconcile", collection=LibraryCollection.LIKED_SONGS.value
        ):
            await self._derived_cache.invalidate(LIKED_SONGS_CACHE_KEY)
            await self._store.put_meta(
                CollectionMeta(
                    collection=LibraryCollection.LIKED_SONGS,
                    last_validated_at=utc_now(),
                    total_count=liked_songs_count,
                )
            )
        return liked_songs_count

    async def _reconcile(
        self,
        collection: LibraryCollection,
        fetch_page: Callable[[], Awaitable[PageResult[CachedPlaylist] | PageResult[CachedAlbum]]],
        authoritative_count: int,
        token: CancellationToken,
    ) -> list[LibraryItem]:
        async with log_operation(logger, "library_reconcile", collection=collection.value):
            cached_items, meta = await asyncio.gather(
                self._store.get_all(collection),
                self._store.get_meta(collection),
            )
            page = await token.run(fetch_page())

            # Listen up: only page one is ever reconciled. Libraries bigger than one page
            # never pick up additions beyond it. Known boundary, tested as such - don't
            # silently start paginating here.
            if page.has_more:
                logger.warning(
                    "library_reconcile.first_page_only",
                    extra={
                        "collection": collection.value,
                        "page_size": self._page_size,
                        "fetched": len(page.items),
                        "authoritative_count": authoritative_count,
                    },
                )

            # Past this point nothing awaits the remote service; the writes run to the end
            # even if the token fires, so data and meta stay a consistent pair.
            token.raise_if_cancelled()

            cached_by_id = {item.id: item for item in cached_items}
            previous_tokens = dict(meta.version_tokens) if meta is not None else {}
            fetched_ids = {item.id for item in page.items}

            removed_ids = [item.id for item in cached_items if item.id not in fetched_ids]
            for item_id in removed_ids:
                await self._store.remove(collection, item_id)
                await self._derived_cache.invalidate(derived_cache_key(collection, item_id))

            now = utc_now()
            merged: list[LibraryItem] = []
            invalidated = 0
            for fetched in page.items:
                existing = cached_by_id.get(fetched.id)
                if existing is not None and existing.added_at is not None:
                    fetched = dataclasses.replace(fetched, added_at=existing.added_at)
                elif fetched.added_at is None:
                    fetched = dataclasses.replace(fetched, added_at=now)

                previous_token = (
                    existing.version_token if existing is not None else None
                ) or previous_tokens.get(fetched.id)
                if (
                    previous_token is not None
                    and fetched.version_token is not None
                    and previous_token != fetched.version_token
                ):
                    await self._derived_cache.invalidate(derived_cache_key(collection, fetched.id))
                    invalidated += 1

                await self._store.put(collection, fetched)
                merged.append(fetched)

            await self._store.put_meta(build_meta(collection, merged, authoritative_count))

            logger.info(
                "library_reconcile.merged",
                extra={
                    "collection": collection.value,
                    "removed": len(removed_ids),
                    "added": len(fetched_ids - cached_by_id.keys()),
                    "invalidated": invalidated,
                    "total": len(merged),
                },
            )
            return merged
