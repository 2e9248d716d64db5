"""Tests for StartupController (warm and cold start)."""

import asyncio

import pytest
from library_fakes import (
    FakeLibraryGateway,
    ListenerRecorder,
    RecordingLibraryStore,
    make_album,
    make_playlist,
    paged_events,
)

from librarysync.application.services import StartupController, SubscriptionHub
from librarysync.application.services.library_reconciler import build_meta
from librarysync.domain.entities import LibraryCollection
from librarysync.domain.exceptions import CacheUnavailableError, ExternalServiceError
from librarysync.domain.value_objects import CancellationToken


@pytest.fixture
def hub(recorder: ListenerRecorder) -> SubscriptionHub:
    hub = SubscriptionHub()
    hub.subscribe(recorder)
    recorder.calls.clear()
    return hub


@pytest.fixture
def controller(
    gateway: FakeLibraryGateway, store: RecordingLibraryStore, hub: SubscriptionHub
) -> StartupController:
    return StartupController(gateway, store, hub)


class TestServeCache:
    async def test_empty_cache_needs_cold_start(
        self, controller: StartupController, recorder: ListenerRecorder
    ) -> None:
        assert await controller.serve_cache() is False
        assert recorder.calls == []

    async def test_warm_cache_is_broadcast_immediately(
        self,
        controller: StartupController,
        store: RecordingLibraryStore,
        recorder: ListenerRecorder,
    ) -> None:
        await store.put_all(LibraryCollection.ALBUMS, [make_album("A1")])
        await store.put_meta(build_meta(LibraryCollection.LIKED_SONGS, [], 77))

        assert await controller.serve_cache() is True

        state, playlists, albums, liked = recorder.last
        assert state.initial_load_complete
        assert not state.syncing
        assert playlists == []
        assert [a.id for a in albums or []] == ["A1"]
        assert liked == 77

    async def test_unreadable_store_raises(
        self, controller: StartupController, store: RecordingLibraryStore
    ) -> None:
        store.fail_on.add("get_all")

        with pytest.raises(CacheUnavailableError):
            await controller.serve_cache()


class TestColdStart:
    async def test_progressive_load_persists_complete_collection(
        self,
        controller: StartupController,
        gateway: FakeLibraryGateway,
        store: RecordingLibraryStore,
        recorder: ListenerRecorder,
    ) -> None:
        playlists = [make_playlist(f"P{i}") for i in range(7)]
        gateway.stream_events = paged_events(LibraryCollection.PLAYLISTS, playlists, [3, 4])
        gateway.set_counts(7, 0, 12)

        should_poll = await controller.cold_start(CancellationToken())

        assert should_poll is True
        page_sizes = [
            len(call[1]) for call in recorder.calls[:-1] if call[1] is not None
        ]
        assert page_sizes == [3, 7]
        assert len(await store.get_all(LibraryCollection.PLAYLISTS)) == 7
        meta = await store.get_meta(LibraryCollection.PLAYLISTS)
        assert meta is not None
        assert meta.total_count == 7

        state, final_playlists, _albums, liked = recorder.last
        assert state.initial_load_complete
        assert not state.syncing
        assert state.last_sync_at is not None
        assert len(final_playlists or []) == 7
        assert liked == 12

    async def test_incomplete_collection_is_not_persisted(
        self,
        controller: StartupController,
        gateway: FakeLibraryGateway,
        store: RecordingLibraryStore,
    ) -> None:
        """Pages are broadcast as they come, but only a finished collection is written."""
        albums = [make_album(f"A{i}") for i in range(4)]
        gateway.stream_events = [paged_events(LibraryCollection.ALBUMS, albums, [2, 2])[0]]
        gateway.failures["stream_library"] = ExternalServiceError("reset", status_code=502)

        await controller.cold_start(CancellationToken())

        assert await store.get_all(LibraryCollection.ALBUMS) == []
        assert await store.get_meta(LibraryCollection.ALBUMS) is None

    async def test_unauthenticated_completes_without_polling(
        self,
        controller: StartupController,
        gateway: FakeLibraryGateway,
        recorder: ListenerRecorder,
    ) -> None:
        gateway.authenticated = False

        assert await controller.cold_start(CancellationToken()) is False

        state, playlists, albums, _ = recorder.last
        assert state.initial_load_complete
        assert playlists == []
        assert albums == []
        assert "stream_library" not in gateway.calls

    async def test_remote_error_completes_with_error(
        self,
        controller: StartupController,
        gateway: FakeLibraryGateway,
        recorder: ListenerRecorder,
    ) -> None:
        gateway.failures["stream_library"] = ExternalServiceError("Spotify is down")

        assert await controller.cold_start(CancellationToken()) is True

        state = recorder.last[0]
        assert state.initial_load_complete
        assert not state.syncing
        assert state.error == "Spotify is down"
        assert state.last_sync_at is None

    async def test_failed_liked_count_is_not_persisted(
        self,
        controller: StartupController,
        gateway: FakeLibraryGateway,
        store: RecordingLibraryStore,
        recorder: ListenerRecorder,
    ) -> None:
        gateway.failures["get_liked_songs_count"] = ExternalServiceError("nope")

        await controller.cold_start(CancellationToken())

        assert await store.get_meta(LibraryCollection.LIKED_SONGS) is None
        state, _, _, liked = recorder.last
        assert state.error is None
        assert liked is None

    async def test_store_failure_is_raised(
        self,
        controller: StartupController,
        gateway: FakeLibraryGateway,
        store: RecordingLibraryStore,
        recorder: ListenerRecorder,
    ) -> None:
        gateway.stream_events = paged_events(
            LibraryCollection.PLAYLISTS, [make_playlist("P1")], [1]
        )
        store.fail_on.add("put_all")

        with pytest.raises(CacheUnavailableError):
            await controller.cold_start(CancellationToken())

        state = recorder.last[0]
        assert state.initial_load_complete
        assert state.error is not None

    async def test_abort_completes_quietly(
        self,
        controller: StartupController,
        gateway: FakeLibraryGateway,
        store: RecordingLibraryStore,
        recorder: ListenerRecorder,
    ) -> None:
        gateway.stream_events = paged_events(
            LibraryCollection.PLAYLISTS, [make_playlist("P1")], [1]
        )
        gateway.gates["stream_page"] = asyncio.Event()
        token = CancellationToken()

        task = asyncio.create_task(controller.cold_start(token))
        await asyncio.sleep(0.01)
        token.cancel("Engine stopped")

        assert await task is True
        state = recorder.last[0]
        assert state.initial_load_complete
        assert not state.syncing
        assert state.error is None
        assert not any(write.startswith("put_all") for write in store.writes())
        assert "stream_page" in gateway.cancelled_calls
