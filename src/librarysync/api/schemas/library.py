"""Pydantic DTOs for the library endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from librarysync.domain.entities import CachedAlbum, CachedPlaylist, SyncState


class SyncStateDTO(BaseModel):
    """Current sync state."""

    initial_load_complete: bool
    syncing: bool
    last_sync_at: datetime | None = None
    error: str | None = None

    @classmethod
    def from_entity(cls, state: SyncState) -> "SyncStateDTO":
        return cls(
            initial_load_complete=state.initial_load_complete,
            syncing=state.syncing,
            last_sync_at=state.last_sync_at,
            error=state.error,
        )


class PlaylistDTO(BaseModel):
    """Cached playlist."""

    id: str
    name: str
    description: str | None = None
    owner_name: str | None = None
    image_url: str | None = None
    track_count: int = 0
    uri: str | None = None
    version_token: str | None = None
    added_at: datetime | None = None

    @classmethod
    def from_entity(cls, playlist: CachedPlaylist) -> "PlaylistDTO":
        return cls(
            id=playlist.id,
            name=playlist.name,
            description=playlist.description,
            owner_name=playlist.owner_name,
            image_url=playlist.image_url,
            track_count=playlist.track_count,
            uri=playlist.uri,
            version_token=playlist.version_token,
            added_at=playlist.added_at,
        )


class AlbumDTO(BaseModel):
    """Cached saved album."""

    id: str
    name: str
    artists: list[str] = Field(default_factory=list)
    image_url: str | None = None
    release_date: str | None = None
    total_tracks: int = 0
    uri: str | None = None
    album_type: str | None = None
    added_at: datetime | None = None

    @classmethod
    def from_entity(cls, album: CachedAlbum) -> "AlbumDTO":
        return cls(
            id=album.id,
            name=album.name,
            artists=list(album.artists),
            image_url=album.image_url,
            release_date=album.release_date,
            total_tracks=album.total_tracks,
            uri=album.uri,
            album_type=album.album_type,
            added_at=album.added_at,
        )


class LibrarySnapshotDTO(BaseModel):
    """One notification pushed over the events stream.

    Collections are only present when the notification carried them.
    """

    state: SyncStateDTO
    playlists: list[PlaylistDTO] | None = None
    albums: list[AlbumDTO] | None = None
    liked_songs_count: int | None = None


class ForegroundRequest(BaseModel):
    """App moved to the foreground (visible=True) or background (visible=False)."""

    visible: bool


class ForegroundResponse(BaseModel):
    visible: bool
    polling: bool
