"""In-memory library cache for tests and disk-less runs."""

import asyncio
from typing import Any

from librarysync.domain.entities import (
    CachedTrackList,
    CollectionMeta,
    LibraryCollection,
    LibraryItem,
    item_type_for,
)
from librarysync.domain.ports import IDerivedCache, ILibraryStore


class InMemoryLibraryStore(ILibraryStore, IDerivedCache):
    """Same contracts as SqlAlchemyLibraryStore, backed by dicts.

    Listen up future me, this is IN-MEMORY ONLY - process exit loses everything. Entities are
    stored as their to_dict() payloads and rebuilt on read, so callers always get fresh objects
    and mutating a returned item never changes the cache. The _lock keeps concurrent
    reconciliations of different collections from interleaving inside one dict operation.
    """

    def __init__(self) -> None:
        self._items: dict[LibraryCollection, dict[str, dict[str, Any]]] = {
            LibraryCollection.PLAYLISTS: {},
            LibraryCollection.ALBUMS: {},
        }
        self._meta: dict[LibraryCollection, dict[str, Any]] = {}
        self._track_lists: dict[str, CachedTrackList] = {}
        self._lock = asyncio.Lock()

    async def get_all(self, collection: LibraryCollection) -> list[LibraryItem]:
        item_type = item_type_for(collection)
        async with self._lock:
            payloads = list(self._items[collection].values())
        return [item_type.from_dict(payload) for payload in payloads]

    async def put_all(self, collection: LibraryCollection, items: list[LibraryItem]) -> None:
        item_type_for(collection)
        async with self._lock:
            self._items[collection] = {item.id: item.to_dict() for item in items}

    async def put(self, collection: LibraryCollection, item: LibraryItem) -> None:
        item_type_for(collection)
        async with self._lock:
            # dict assignment keeps the slot of an existing key, new keys go last
            self._items[collection][item.id] = item.to_dict()

    async def remove(self, collection: LibraryCollection, item_id: str) -> None:
        async with self._lock:
            self._items.get(collection, {}).pop(item_id, None)

    async def get_meta(self, collection: LibraryCollection) -> CollectionMeta | None:
        async with self._lock:
            payload = self._meta.get(collection)
        return CollectionMeta.from_dict(payload) if payload is not None else None

    async def put_meta(self, meta: CollectionMeta) -> None:
        async with self._lock:
            self._meta[meta.collection] = meta.to_dict()

    async def clear(self) -> None:
        async with self._lock:
            for items in self._items.values():
                items.clear()
            self._meta.clear()
            self._track_lists.clear()

    async def get_track_list(self, key: str) -> CachedTrackList | None:
        async with self._lock:
            return self._track_lists.get(key)

    async def put_track_list(
        self, key: str, tracks: list[dict[str, Any]], version_token: str | None = None
    ) -> None:
        async with self._lock:
            self._track_lists[key] = CachedTrackList(
                key=key, tracks=list(tracks), version_token=version_token
            )

    async def invalidate(self, key: str) -> None:
        prefix = f"{key}:"
        async with self._lock:
            for cache_key in [k for k in self._track_lists if k == key or k.startswith(prefix)]:
                del self._track_lists[cache_key]
