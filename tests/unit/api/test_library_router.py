"""Tests for the library and health endpoints."""

import json
import time
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from library_fakes import FakeLibraryGateway, RecordingLibraryStore, make_album, make_playlist

from librarysync.api import create_app
from librarysync.api.exception_handlers import register_exception_handlers
from librarysync.api.routers import health, library
from librarysync.api.routers.library import snapshot_events
from librarysync.application.services import LibrarySyncEngine
from librarysync.config import DatabaseSettings, Settings, SpotifySettings
from librarysync.domain.entities import LibraryCollection, PageResult
from librarysync.domain.exceptions import CacheUnavailableError, RateLimitExceededError
from librarysync.infrastructure.foreground import ForegroundSignal


@pytest.fixture
def library_store() -> RecordingLibraryStore:
    return RecordingLibraryStore()


@pytest.fixture
def engine(gateway: FakeLibraryGateway, library_store: RecordingLibraryStore) -> LibrarySyncEngine:
    return LibrarySyncEngine(gateway, library_store, library_store, poll_interval_seconds=3600)


@pytest.fixture
def app(engine: LibrarySyncEngine) -> FastAPI:
    # No lifespan: the engine under test is wired in by hand
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(library.router)
    app.state.engine = engine
    app.state.foreground = ForegroundSignal()
    return app


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as client:
        yield client


class TestLibraryEndpoints:
    def test_initial_state(self, client: TestClient) -> None:
        response = client.get("/library/state")

        assert response.status_code == 200
        assert response.json() == {
            "initial_load_complete": False,
            "syncing": False,
            "last_sync_at": None,
            "error": None,
        }

    def test_manual_sync_then_read_collections(
        self, client: TestClient, gateway: FakeLibraryGateway
    ) -> None:
        gateway.set_counts(1, 1, 4)
        gateway.playlists_page = PageResult(items=[make_playlist("P1")])
        gateway.albums_page = PageResult(items=[make_album("A1")])

        state = client.post("/library/sync").json()
        playlists = client.get("/library/playlists").json()
        albums = client.get("/library/albums").json()

        assert state["last_sync_at"] is not None
        assert state["error"] is None
        assert [p["id"] for p in playlists] == ["P1"]
        assert playlists[0]["version_token"] == "snap-1"
        assert albums[0]["artists"] == ["Artist"]

    def test_sync_error_is_reported_in_state(
        self, client: TestClient, gateway: FakeLibraryGateway
    ) -> None:
        gateway.failures["get_playlist_count"] = CacheUnavailableError("disk gone")

        state = client.post("/library/sync").json()

        assert state["error"] == "disk gone"
        assert state["syncing"] is False

    def test_foreground_toggle(self, client: TestClient) -> None:
        response = client.post("/library/foreground", json={"visible": False})

        assert response.status_code == 200
        assert response.json() == {"visible": False, "polling": False}

    def test_clear_cache(self, client: TestClient) -> None:
        client.post("/library/sync")

        response = client.delete("/library/cache")

        assert response.status_code == 204
        assert client.get("/library/playlists").json() == []

    def test_missing_engine_is_503(self, app: FastAPI) -> None:
        del app.state.engine
        with TestClient(app) as client:
            response = client.get("/library/state")

        assert response.status_code == 503


class TestHealthEndpoints:
    def test_liveness(self, client: TestClient) -> None:
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_not_ready_before_initial_load(self, client: TestClient) -> None:
        assert client.get("/health/ready").status_code == 503


class TestExceptionHandlers:
    def test_rate_limit_maps_to_429(self, app: FastAPI) -> None:
        @app.get("/boom")
        async def boom() -> None:
            raise RateLimitExceededError("slow down", retry_after=7)

        with TestClient(app) as client:
            response = client.get("/boom")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "7"


class _FakeRequest:
    """Just enough of starlette's Request for snapshot_events()."""

    def __init__(self, connected_polls: int) -> None:
        self._connected_polls = connected_polls

    async def is_disconnected(self) -> bool:
        self._connected_polls -= 1
        return self._connected_polls < 0


class TestSnapshotEvents:
    async def test_first_event_is_current_state_and_listener_is_released(
        self, engine: LibrarySyncEngine
    ) -> None:
        events = snapshot_events(_FakeRequest(connected_polls=1), engine)  # type: ignore[arg-type]

        received = [event async for event in events]

        assert len(received) == 1
        assert received[0]["event"] == "snapshot"
        payload = json.loads(received[0]["data"])
        assert payload["state"]["initial_load_complete"] is False
        assert payload["playlists"] is None
        assert engine._hub.listener_count == 0

    async def test_notifications_carry_collections(
        self, engine: LibrarySyncEngine, library_store: RecordingLibraryStore
    ) -> None:
        await library_store.put_all(LibraryCollection.PLAYLISTS, [make_playlist("P1")])
        events = snapshot_events(_FakeRequest(connected_polls=2), engine)  # type: ignore[arg-type]

        first = await anext(events)
        await engine.clear_cache()
        second = await anext(events)
        await events.aclose()

        assert json.loads(first["data"])["playlists"] is None
        assert json.loads(second["data"])["playlists"] == []
        assert json.loads(second["data"])["liked_songs_count"] == 0


class TestApplicationLifespan:
    def test_lifespan_starts_engine_without_credentials(self, tmp_path: Path) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None,
            database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}"),
            spotify=SpotifySettings(),
        )
        app = create_app(settings)

        with TestClient(app) as client:
            for _ in range(100):
                if client.get("/library/state").json()["initial_load_complete"]:
                    break
                time.sleep(0.02)
            state = client.get("/library/state").json()
            ready = client.get("/health/ready")

        assert state["initial_load_complete"] is True
        assert ready.status_code == 200
        assert (tmp_path / "cache.db").exists()
