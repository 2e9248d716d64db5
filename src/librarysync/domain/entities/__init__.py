"""Domain entities."""

from librarysync.domain.entities.library import (
    ITEM_TYPES,
    LIKED_SONGS_CACHE_KEY,
    CachedAlbum,
    CachedPlaylist,
    CachedTrackList,
    CollectionMeta,
    LibraryCollection,
    LibraryItem,
    derived_cache_key,
    ensure_utc_aware,
    item_type_for,
    parse_datetime,
    utc_now,
)
from librarysync.domain.entities.sync import (
    LibraryChanges,
    LibraryPageEvent,
    PageResult,
    SyncState,
)

__all__ = [
    "ITEM_TYPES",
    "LIKED_SONGS_CACHE_KEY",
    "CachedAlbum",
    "CachedPlaylist",
    "CachedTrackList",
    "CollectionMeta",
    "LibraryChanges",
    "LibraryCollection",
    "LibraryItem",
    "LibraryPageEvent",
    "PageResult",
    "SyncState",
    "derived_cache_key",
    "ensure_utc_aware",
    "item_type_for",
    "parse_datetime",
    "utc_now",
]
