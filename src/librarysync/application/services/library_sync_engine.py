"""Library sync engine - public facade over startup, detection, reconciliation and polling.

Hey future me - this is the ONLY class the outside world (API, lifecycle, tests) should talk
to. It owns:
- the in-flight guard (one cycle at a time, extra triggers are DROPPED, not queued)
- the cancellation token of the running cycle
- the poll worker and the foreground observer

Everything it does with the remote service and the store is delegated to ChangeDetector,
LibraryReconciler and StartupController, so each of those can be tested with fakes alone.
"""

import asyncio
import functools
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from librarysync.application.services.change_detector import ChangeDetector
from librarysync.application.services.library_reconciler import (
    LibraryReconciler,
    ReconcileOutcome,
)
from librarysync.application.services.startup_controller import (
    StartupController,
    describe_error,
)
from librarysync.application.services.subscription_hub import SubscriptionHub
from librarysync.application.workers import LibraryPollWorker
from librarysync.domain.entities import (
    CachedAlbum,
    CachedPlaylist,
    LibraryCollection,
    SyncState,
    utc_now,
)
from librarysync.domain.exceptions import CacheUnavailableError, SyncAbortedError
from librarysync.domain.ports import (
    IDerivedCache,
    IForegroundSignal,
    ILibraryGateway,
    ILibraryStore,
    SyncListener,
    Unsubscribe,
)
from librarysync.domain.value_objects import CancellationToken
from librarysync.infrastructure.observability import log_operation, set_correlation_id

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 90.0


class LibrarySyncEngine:
    """Keeps the local library cache converged with the remote service."""

    def __init__(
        self,
        gateway: ILibraryGateway,
        store: ILibraryStore,
        derived_cache: IDerivedCache,
        foreground: IForegroundSignal | None = None,
        *,
        page_size: int = 50,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._foreground = foreground
        self._hub = SubscriptionHub()
        self._detector = ChangeDetector(gateway, store)
        self._reconciler = LibraryReconciler(gateway, store, derived_cache, page_size=page_size)
        self._startup = StartupController(gateway, store, self._hub)
        self._poll_interval_seconds = poll_interval_seconds

        self._worker: LibraryPollWorker | None = None
        self._started = False
        self._polling_enabled = False
        self._visible = True
        self._in_flight = False
        self._token: CancellationToken | None = None
        self._cycle_task: asyncio.Task[Any] | None = None
        self._unsubscribe_foreground: Unsubscribe | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_polling(self) -> bool:
        return self._worker is not None and self._worker.is_running

    @property
    def poll_interval_seconds(self) -> float:
        return self._poll_interval_seconds

    async def start(self, interval_seconds: float | None = None) -> None:
        """Subscribe to foreground changes, run the initial load, then start polling.

        Idempotent. Resolves only after the initial load finished: on a warm start that
        includes the first validation cycle, so the data is at most one cycle stale.

        Raises:
            CacheUnavailableError: If the store cannot be read or the cold-start result
                cannot be written. The engine is left stopped.
        """
        if self._started:
            return
        self._started = True
        if interval_seconds is not None:
            self._poll_interval_seconds = interval_seconds

        if self._foreground is not None:
            self._unsubscribe_foreground = self._foreground.subscribe(
                self._on_foreground_change
            )
            # Only changes are called back; the state at start-up has to be read
            self._visible = self._foreground.visible

        try:
            if await self._startup.serve_cache():
                await self.sync_now()
                should_poll = True
            else:
                should_poll = await self._run_cold_start()
        except CacheUnavailableError:
            logger.error("library_sync.engine.start_failed", exc_info=True)
            self.stop()
            raise

        self._polling_enabled = should_poll
        # stop() may have been called while the initial load was running
        if should_poll and self._started and self._visible:
            self._ensure_worker().start()

        logger.info(
            "library_sync.engine.started",
            extra={
                "polling": self.is_polling,
                "interval_seconds": self._poll_interval_seconds,
            },
        )

    def stop(self) -> None:
        """Halt the timer, abort the in-flight cycle and drop the foreground observer.

        Idempotent. Manual sync_now() calls keep working afterwards.
        """
        if self._worker is not None:
            self._worker.stop()
        if self._token is not None:
            self._token.cancel("Engine stopped")
        if self._unsubscribe_foreground is not None:
            self._unsubscribe_foreground()
            self._unsubscribe_foreground = None
        if self._started:
            logger.info("library_sync.engine.stopped")
        self._started = False
        self._polling_enabled = False

    async def aclose(self) -> None:
        """stop() and wait until nothing of the engine touches the store any more.

        That covers the poll task, pending foreground syncs and the cycle in flight. A timer
        cycle runs shielded from the poll task, so stopping the timer alone does not end it.
        """
        self.stop()
        if self._worker is not None:
            await self._worker.join()
        pending = [*self._background_tasks]
        cycle = self._cycle_task
        if cycle is not None and cycle is not asyncio.current_task():
            pending.append(cycle)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Sync cycle
    # ------------------------------------------------------------------

    async def sync_now(self) -> None:
        """Run one detect-and-reconcile cycle.

        Dropped silently if a cycle is already in flight or the user is not signed in. Never
        raises for expected failures - read get_state().error instead.
        """
        if self._in_flight:
            logger.debug("library_sync.cycle.skipped", extra={"reason": "in_flight"})
            return
        if not self._gateway.is_authenticated():
            logger.debug("library_sync.cycle.skipped", extra={"reason": "unauthenticated"})
            return

        await self._launch_cycle(self._run_sync_cycle)

    async def _launch_cycle[R](
        self, body: Callable[[CancellationToken], Coroutine[Any, Any, R]]
    ) -> R:
        # The cycle gets a task of its own so aclose() can wait for it whoever started it
        self._in_flight = True
        token = self._new_token()
        task = asyncio.create_task(body(token), name="library-sync-cycle")
        self._cycle_task = task
        task.add_done_callback(functools.partial(self._cycle_finished, token))
        return await task

    def _cycle_finished(self, token: CancellationToken, task: asyncio.Task[Any]) -> None:
        self._in_flight = False
        if self._token is token:
            self._token = None
        if self._cycle_task is task:
            self._cycle_task = None

    async def _run_sync_cycle(self, token: CancellationToken) -> None:
        set_correlation_id()
        self._hub.update_state(syncing=True, error=None)
        self._hub.notify()

        try:
            async with log_operation(logger, "library_sync.cycle"):
                changes = await self._detector.detect_changes(token)
                if not changes.any_changed:
                    self._hub.update_state(syncing=False, last_sync_at=utc_now(), error=None)
                    self._hub.notify()
                    return

                outcome = await self._reconciler.apply_changes(changes, token)
                playlists, albums, liked_songs_count = await self._snapshot(outcome)

            if outcome.error is not None:
                # Collections that succeeded are already stored; report the first failure
                self._hub.update_state(syncing=False, error=describe_error(outcome.error))
            else:
                self._hub.update_state(syncing=False, last_sync_at=utc_now(), error=None)
            self._hub.notify(
                playlists=playlists,
                albums=albums,
                liked_songs_count=liked_songs_count,
            )
        except SyncAbortedError:
            self._hub.update_state(syncing=False)
            self._hub.notify()
        except Exception as e:
            self._hub.update_state(syncing=False, error=describe_error(e))
            self._hub.notify()

    async def _snapshot(
        self, outcome: ReconcileOutcome
    ) -> tuple[list[CachedPlaylist], list[CachedAlbum], int | None]:
        """What the store holds after the cycle: fresh results, cached values for the rest."""
        playlists = outcome.playlists
        if playlists is None:
            playlists = await self._store.get_all(LibraryCollection.PLAYLISTS)  # type: ignore[assignment]
        albums = outcome.albums
        if albums is None:
            albums = await self._store.get_all(LibraryCollection.ALBUMS)  # type: ignore[assignment]
        liked_songs_count = outcome.liked_songs_count
        if liked_songs_count is None:
            # Unchanged or failed: only a persisted count may reach listeners
            meta = await self._store.get_meta(LibraryCollection.LIKED_SONGS)
            liked_songs_count = meta.total_count if meta is not None else None
        return playlists, albums, liked_songs_count  # type: ignore[return-value]

    async def _run_cold_start(self) -> bool:
        return await self._launch_cycle(self._run_cold_start_cycle)

    async def _run_cold_start_cycle(self, token: CancellationToken) -> bool:
        set_correlation_id()
        return await self._startup.cold_start(token)

    def _new_token(self) -> CancellationToken:
        if self._token is not None:
            self._token.cancel("Superseded by a newer sync")
        self._token = CancellationToken()
        return self._token

    # ------------------------------------------------------------------
    # Polling and foreground
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> LibraryPollWorker:
        if self._worker is None or self._worker.interval_seconds != self._poll_interval_seconds:
            if self._worker is not None:
                self._worker.stop()
            self._worker = LibraryPollWorker(self.sync_now, self._poll_interval_seconds)
        return self._worker

    def _on_foreground_change(self, visible: bool) -> None:
        self._visible = visible
        if not visible:
            if self._worker is not None:
                self._worker.stop()
            logger.info("library_sync.engine.paused")
            return

        if self._polling_enabled:
            self._ensure_worker().start()
        logger.info("library_sync.engine.resumed")
        task = asyncio.create_task(self.sync_now())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def subscribe(self, listener: SyncListener) -> Unsubscribe:
        """Register a listener; it receives the current state right away."""
        return self._hub.subscribe(listener)

    def get_state(self) -> SyncState:
        """Synchronous snapshot of the sync state."""
        return self._hub.state

    async def get_playlists(self) -> list[CachedPlaylist]:
        return await self._store.get_all(LibraryCollection.PLAYLISTS)  # type: ignore[return-value]

    async def get_albums(self) -> list[CachedAlbum]:
        return await self._store.get_all(LibraryCollection.ALBUMS)  # type: ignore[return-value]

    async def clear_cache(self) -> None:
        """Abort the running cycle and wipe the cache (sign-out).

        The next start() or sync_now() rebuilds everything from scratch.
        """
        if self._token is not None:
            self._token.cancel("Cache cleared")
        await self._store.clear()
        self._hub.update_state(last_sync_at=None, error=None)
        self._hub.notify(playlists=[], albums=[], liked_songs_count=0)
        logger.info("library_sync.cache.cleared")
