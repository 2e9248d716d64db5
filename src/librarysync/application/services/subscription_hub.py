"""Fan-out of sync state and library snapshots to listeners."""

import dataclasses
import logging
from typing import Any

from librarysync.domain.entities import CachedAlbum, CachedPlaylist, SyncState
from librarysync.domain.ports import SyncListener, Unsubscribe

logger = logging.getLogger(__name__)


class SubscriptionHub:
    """Owns the current SyncState and broadcasts it.

    Hey future me - update_state() does NOT notify on its own. Callers batch a state change
    with its payload and then call notify() once, so listeners don't get a bare "syncing=False"
    followed a microsecond later by the same state plus the new albums.
    """

    def __init__(self) -> None:
        self._state = SyncState()
        self._listeners: list[SyncListener] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def update_state(self, **changes: Any) -> SyncState:
        """Replace fields of the current state (no broadcast)."""
        self._state = dataclasses.replace(self._state, **changes)
        return self._state

    def subscribe(self, listener: SyncListener) -> Unsubscribe:
        """Register ``listener`` and immediately hand it the current state (no payload).

        Returns:
            Function removing the listener again. Safe to call more than once.
        """
        self._listeners.append(listener)
        self._deliver(listener, self._state, None, None, None)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(
        self,
        playlists: list[CachedPlaylist] | None = None,
        albums: list[CachedAlbum] | None = None,
        liked_songs_count: int | None = None,
    ) -> None:
        """Broadcast the current state plus optional payload to every listener.

        Each listener gets its own list copies. A listener that raises is logged and skipped.
        """
        state = self._state
        # Iterate over a copy: a listener may unsubscribe itself while being notified
        for listener in list(self._listeners):
            self._deliver(
                listener,
                state,
                list(playlists) if playlists is not None else None,
                list(albums) if albums is not None else None,
                liked_songs_count,
            )

    def _deliver(
        self,
        listener: SyncListener,
        state: SyncState,
        playlists: list[CachedPlaylist] | None,
        albums: list[CachedAlbum] | None,
        liked_songs_count: int | None,
    ) -> None:
        try:
            listener(state, playlists, albums, liked_songs_count)
        except Exception:
            logger.exception(
                "library_sync.listener.failed",
                extra={"listener": getattr(listener, "__qualname__", repr(listener))},
            )
