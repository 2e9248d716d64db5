"""Transient sync records - never persisted."""

from dataclasses import dataclass, field
from datetime import datetime

from librarysync.domain.entities.library import LibraryCollection, LibraryItem


@dataclass(frozen=True)
class SyncState:
    """The only state subscribers get to see.

    It's a plain record, rebuilt with dataclasses.replace() on every transition. Frozen so a
    listener can't mutate what other listeners receive.
    """

    initial_load_complete: bool = False
    syncing: bool = False
    last_sync_at: datetime | None = None
    error: str | None = None


@dataclass(frozen=True)
class LibraryChanges:
    """Result of one change-detection pass: which collections differ, plus the fresh counts."""

    playlists_changed: bool
    albums_changed: bool
    liked_songs_changed: bool
    playlist_count: int
    album_count: int
    liked_songs_count: int

    @property
    def any_changed(self) -> bool:
        return self.playlists_changed or self.albums_changed or self.liked_songs_changed

    def changed_collections(self) -> list[LibraryCollection]:
        changed = []
        if self.playlists_changed:
            changed.append(LibraryCollection.PLAYLISTS)
        if self.albums_changed:
            changed.append(LibraryCollection.ALBUMS)
        if self.liked_songs_changed:
            changed.append(LibraryCollection.LIKED_SONGS)
        return changed

    def count_for(self, collection: LibraryCollection) -> int:
        return {
            LibraryCollection.PLAYLISTS: self.playlist_count,
            LibraryCollection.ALBUMS: self.album_count,
            LibraryCollection.LIKED_SONGS: self.liked_songs_count,
        }[collection]


@dataclass
class PageResult[T]:
    """One page of a remote collection."""

    items: list[T] = field(default_factory=list)
    has_more: bool = False
    total: int | None = None


@dataclass(frozen=True)
class LibraryPageEvent:
    """One step of the cold-start progressive fetch.

    ``items`` is the ACCUMULATED set for the collection so far, not just the latest page.
    """

    collection: LibraryCollection
    items: list[LibraryItem]
    is_complete: bool
