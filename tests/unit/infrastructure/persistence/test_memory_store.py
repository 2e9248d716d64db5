"""Tests for InMemoryLibraryStore."""

from datetime import UTC, datetime

from library_fakes import make_playlist

from librarysync.domain.entities import CollectionMeta, LibraryCollection
from librarysync.infrastructure.persistence import InMemoryLibraryStore


class TestInMemoryLibraryStore:
    async def test_returned_items_are_copies(self) -> None:
        store = InMemoryLibraryStore()
        await store.put_all(LibraryCollection.PLAYLISTS, [make_playlist("P1")])

        [playlist] = await store.get_all(LibraryCollection.PLAYLISTS)
        playlist.name = "mutated"

        [again] = await store.get_all(LibraryCollection.PLAYLISTS)
        assert again.name == "Playlist P1"

    async def test_put_keeps_position_of_existing_item(self) -> None:
        store = InMemoryLibraryStore()
        await store.put_all(
            LibraryCollection.PLAYLISTS, [make_playlist("P1"), make_playlist("P2")]
        )

        await store.put(LibraryCollection.PLAYLISTS, make_playlist("P1", version_token="v9"))
        await store.put(LibraryCollection.PLAYLISTS, make_playlist("P3"))

        stored = await store.get_all(LibraryCollection.PLAYLISTS)
        assert [p.id for p in stored] == ["P1", "P2", "P3"]
        assert stored[0].version_token == "v9"

    async def test_invalidate_matches_sub_keys(self) -> None:
        store = InMemoryLibraryStore()
        await store.put_track_list("playlist:P1", [])
        await store.put_track_list("playlist:P1:offset=50", [])
        await store.put_track_list("playlist:P12", [])

        await store.invalidate("playlist:P1")

        assert await store.get_track_list("playlist:P1") is None
        assert await store.get_track_list("playlist:P1:offset=50") is None
        assert await store.get_track_list("playlist:P12") is not None

    async def test_clear(self) -> None:
        store = InMemoryLibraryStore()
        await store.put_all(LibraryCollection.PLAYLISTS, [make_playlist("P1")])
        await store.put_meta(
            CollectionMeta(
                collection=LibraryCollection.PLAYLISTS,
                last_validated_at=datetime(2024, 1, 1, tzinfo=UTC),
                total_count=1,
            )
        )

        await store.clear()

        assert await store.get_all(LibraryCollection.PLAYLISTS) == []
        assert await store.get_meta(LibraryCollection.PLAYLISTS) is None
