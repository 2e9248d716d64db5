"""Cheap count-based change detection."""

import asyncio
import logging

from librarysync.domain.entities import LibraryChanges, LibraryCollection
from librarysync.domain.ports import ILibraryGateway, ILibraryStore
from librarysync.domain.value_objects import CancellationToken

logger = logging.getLogger(__name__)

# Missing meta compares as -1 so the very first cycle always reconciles
UNKNOWN_COUNT = -1


class ChangeDetector:
    """Compare cached counts with fresh remote counts.

    Hey future me - this is a HEURISTIC and it's meant to be one. A playlist renamed without
    adding/removing anything has the same count, so we won't notice until something else
    triggers a reconcile of playlists (where the version-token check catches it). Don't "fix"
    this by fetching full pages every cycle - the whole point is that a quiet cycle costs three
    tiny requests.
    """

    def __init__(self, gateway: ILibraryGateway, store: ILibraryStore) -> None:
        self._gateway = gateway
        self._store = store

    async def detect_changes(self, token: CancellationToken) -> LibraryChanges:
        """Fetch the three remote counts concurrently and compare them with the meta records.

        Raises:
            SyncAbortedError: If ``token`` fires while waiting
            ExternalServiceError: If any count request fails
        """
        playlists_meta, albums_meta, liked_meta = await asyncio.gather(
            self._store.get_meta(LibraryCollection.PLAYLISTS),
            self._store.get_meta(LibraryCollection.ALBUMS),
            self._store.get_meta(LibraryCollection.LIKED_SONGS),
        )

        playlist_count, album_count, liked_count = await token.run(
            asyncio.gather(
                self._gateway.get_playlist_count(token),
                self._gateway.get_album_count(token),
                self._gateway.get_liked_songs_count(token),
            )
        )

        cached_playlists = playlists_meta.total_count if playlists_meta else UNKNOWN_COUNT
        cached_albums = albums_meta.total_count if albums_meta else UNKNOWN_COUNT
        cached_liked = liked_meta.total_count if liked_meta else UNKNOWN_COUNT

        changes = LibraryChanges(
            playlists_changed=playlist_count != cached_playlists,
            albums_changed=album_count != cached_albums,
            liked_songs_changed=liked_count != cached_liked,
            playlist_count=playlist_count,
            album_count=album_count,
            liked_songs_count=liked_count,
        )
        logger.debug(
            "library_sync.changes.detected",
            extra={
                "playlists_changed": changes.playlists_changed,
                "albums_changed": changes.albums_changed,
                "liked_songs_changed": changes.liked_songs_changed,
                "playlist_count": playlist_count,
                "album_count": album_count,
                "liked_songs_count": liked_count,
            },
        )
        return changes
