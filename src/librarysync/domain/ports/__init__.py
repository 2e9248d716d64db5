"""Domain ports (interfaces) for the library sync engine.

Hey future me - these are the seams between the engine and the outside world. The engine only
ever talks to these ABCs; the Spotify client, the SQLAlchemy store, the in-memory store and the
test fakes all plug in here. Keep them small!
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable

from librarysync.domain.entities import (
    CachedAlbum,
    CachedPlaylist,
    CollectionMeta,
    LibraryCollection,
    LibraryItem,
    LibraryPageEvent,
    PageResult,
    SyncState,
)
from librarysync.domain.value_objects import CancellationToken

# (state, playlists?, albums?, liked_songs_count?) - None means "no payload for this one"
type SyncListener = Callable[
    [SyncState, list[CachedPlaylist] | None, list[CachedAlbum] | None, int | None], None
]

# Called with True when the app comes to the foreground, False when it goes to the background
type ForegroundCallback = Callable[[bool], None]

type Unsubscribe = Callable[[], None]


class ILibraryGateway(ABC):
    """Remote music service, as far as the sync engine needs it.

    Count endpoints must be cheap (never enumerate the full collection). Page endpoints only
    ever return the FIRST page.
    """

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Whether a usable access token is available right now."""
        pass

    @abstractmethod
    async def get_playlist_count(self, token: CancellationToken) -> int:
        pass

    @abstractmethod
    async def get_album_count(self, token: CancellationToken) -> int:
        pass

    @abstractmethod
    async def get_liked_songs_count(self, token: CancellationToken) -> int:
        pass

    @abstractmethod
    async def get_playlists_page(
        self, page_size: int, token: CancellationToken
    ) -> PageResult[CachedPlaylist]:
        """Fetch the first page of the user's playlists."""
        pass

    @abstractmethod
    async def get_albums_page(
        self, page_size: int, token: CancellationToken
    ) -> PageResult[CachedAlbum]:
        """Fetch the first page of the user's saved albums."""
        pass

    @abstractmethod
    def stream_library(self, token: CancellationToken) -> AsyncIterator[LibraryPageEvent]:
        """Progressively fetch the whole library (playlists and albums interleaved).

        Yields one event per fetched page, carrying the accumulated items of that collection.
        The last event of each collection has ``is_complete=True``.
        """
        pass


class ILibraryStore(ABC):
    """Durable metadata store - the only persistent state of the engine."""

    @abstractmethod
    async def get_all(self, collection: LibraryCollection) -> list[LibraryItem]:
        pass

    @abstractmethod
    async def put_all(self, collection: LibraryCollection, items: list[LibraryItem]) -> None:
        """Replace the whole collection with ``items``."""
        pass

    @abstractmethod
    async def put(self, collection: LibraryCollection, item: LibraryItem) -> None:
        """Insert or update a single item."""
        pass

    @abstractmethod
    async def remove(self, collection: LibraryCollection, item_id: str) -> None:
        pass

    @abstractmethod
    async def get_meta(self, collection: LibraryCollection) -> CollectionMeta | None:
        pass

    @abstractmethod
    async def put_meta(self, meta: CollectionMeta) -> None:
        """Write the meta record of ``meta.collection``."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Wipe everything (e.g. on sign-out)."""
        pass


class IDerivedCache(ABC):
    """Secondary caches keyed off a library member (track listings and friends)."""

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        """Drop ``key`` and every entry stored under ``{key}:...``."""
        pass


class IForegroundSignal(ABC):
    """App became active/inactive. Browsers call it visibility, desktops call it focus."""

    @property
    @abstractmethod
    def visible(self) -> bool:
        """Whether the app is in the foreground right now."""
        pass

    @abstractmethod
    def subscribe(self, callback: ForegroundCallback) -> Unsubscribe:
        pass


__all__ = [
    "ForegroundCallback",
    "IDerivedCache",
    "IForegroundSignal",
    "ILibraryGateway",
    "ILibraryStore",
    "SyncListener",
    "Unsubscribe",
]
