"""Cached library entities (playlists, albums) and their per-collection metadata."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Self

from librarysync.domain.exceptions import ValidationError


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite and JSON round-trips lose tzinfo. Everything inside the engine compares
# aware datetimes, so anything parsed from storage goes through here first.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc_aware(value)
    # fromisoformat() only accepts the trailing "Z" from Python 3.11 on, which we require anyway
    return ensure_utc_aware(datetime.fromisoformat(str(value)))


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class LibraryCollection(str, Enum):
    """The three collections the engine keeps in sync.

    Only PLAYLISTS and ALBUMS hold items in the store. LIKED_SONGS is tracked by count alone
    (it has a meta record but no item list).
    """

    PLAYLISTS = "playlists"
    ALBUMS = "albums"
    LIKED_SONGS = "liked_songs"


# Derived-cache keys. Track listings are cached under "playlist:{id}" / "album:{id}" and the
# paged liked-songs listing under "liked_songs" (plus "liked_songs:{...}" sub-keys).
LIKED_SONGS_CACHE_KEY = "liked_songs"

_DERIVED_KEY_PREFIX = {
    LibraryCollection.PLAYLISTS: "playlist",
    LibraryCollection.ALBUMS: "album",
}


def derived_cache_key(collection: LibraryCollection, item_id: str) -> str:
    """Build the derived-cache key for a member of ``collection``.

    Example:
        >>> derived_cache_key(LibraryCollection.PLAYLISTS, "P1")
        'playlist:P1'
    """
    try:
        prefix = _DERIVED_KEY_PREFIX[collection]
    except KeyError:
        raise ValidationError(f"Collection {collection.value} has no per-item cache") from None
    return f"{prefix}:{item_id}"


@dataclass
class CachedPlaylist:
    """A playlist as it lives in the local cache.

    ``version_token`` is Spotify's ``snapshot_id``. It changes whenever the playlist content
    changes, even if the playlist keeps the same size. ``added_at`` is NOT supplied by the
    playlists endpoint; the reconciler carries it forward from the cached copy.
    """

    id: str
    name: str
    description: str | None = None
    owner_name: str | None = None
    image_url: str | None = None
    track_count: int = 0
    uri: str | None = None
    version_token: str | None = None
    added_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_name": self.owner_name,
            "image_url": self.image_url,
            "track_count": self.track_count,
            "uri": self.uri,
            "version_token": self.version_token,
            "added_at": _format_datetime(self.added_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        if not data.get("id"):
            raise ValidationError("Cached playlist payload is missing 'id'")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            description=data.get("description"),
            owner_name=data.get("owner_name"),
            image_url=data.get("image_url"),
            track_count=int(data.get("track_count") or 0),
            uri=data.get("uri"),
            version_token=data.get("version_token"),
            added_at=parse_datetime(data.get("added_at")),
        )


@dataclass
class CachedAlbum:
    """A saved album as it lives in the local cache.

    Albums normally have no version token (Spotify doesn't expose one), but the field exists so
    the reconciler treats both collections the same way.
    """

    id: str
    name: str
    artists: list[str] = field(default_factory=list)
    image_url: str | None = None
    release_date: str | None = None
    total_tracks: int = 0
    uri: str | None = None
    album_type: str | None = None
    version_token: str | None = None
    added_at: datetime | None = None

    @property
    def artist_names(self) -> str:
        """Artists joined for display ("A, B")."""
        return ", ".join(self.artists)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "artists": list(self.artists),
            "image_url": self.image_url,
            "release_date": self.release_date,
            "total_tracks": self.total_tracks,
            "uri": self.uri,
            "album_type": self.album_type,
            "version_token": self.version_token,
            "added_at": _format_datetime(self.added_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        if not data.get("id"):
            raise ValidationError("Cached album payload is missing 'id'")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            artists=list(data.get("artists") or []),
            image_url=data.get("image_url"),
            release_date=data.get("release_date"),
            total_tracks=int(data.get("total_tracks") or 0),
            uri=data.get("uri"),
            album_type=data.get("album_type"),
            version_token=data.get("version_token"),
            added_at=parse_datetime(data.get("added_at")),
        )


type LibraryItem = CachedPlaylist | CachedAlbum

ITEM_TYPES: dict[LibraryCollection, type[CachedPlaylist] | type[CachedAlbum]] = {
    LibraryCollection.PLAYLISTS: CachedPlaylist,
    LibraryCollection.ALBUMS: CachedAlbum,
}


# Listen up, meta is written LAST in every reconcile. If you ever see a meta record whose
# total_count doesn't match the number of stored items, something wrote meta speculatively -
# that's a bug, not a race.
@dataclass
class CollectionMeta:
    """Bookkeeping for one collection.

    Attributes:
        collection: Which collection this record describes
        last_validated_at: When the count was last confirmed against the remote service
        total_count: Last authoritative remote count
        version_tokens: id -> version token for every cached member
        latest_added_at: Most recent ``added_at`` among cached members
    """

    collection: LibraryCollection
    last_validated_at: datetime
    total_count: int
    version_tokens: dict[str, str] = field(default_factory=dict)
    latest_added_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection.value,
            "last_validated_at": _format_datetime(self.last_validated_at),
            "total_count": self.total_count,
            "version_tokens": dict(self.version_tokens),
            "latest_added_at": _format_datetime(self.latest_added_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        last_validated_at = parse_datetime(data.get("last_validated_at"))
        if last_validated_at is None:
            raise ValidationError("Collection meta payload is missing 'last_validated_at'")
        return cls(
            collection=LibraryCollection(data["collection"]),
            last_validated_at=last_validated_at,
            total_count=int(data["total_count"]),
            version_tokens=dict(data.get("version_tokens") or {}),
            latest_added_at=parse_datetime(data.get("latest_added_at")),
        )


@dataclass
class CachedTrackList:
    """Derived-cache entry: the track listing of one library member.

    Track payloads are opaque to the sync engine; it only ever invalidates these by key.
    """

    key: str
    tracks: list[dict[str, Any]] = field(default_factory=list)
    version_token: str | None = None
    cached_at: datetime = field(default_factory=utc_now)


def item_type_for(collection: LibraryCollection) -> type[CachedPlaylist] | type[CachedAlbum]:
    """Entity class stored for ``collection``.

    Raises:
        ValidationError: For LIKED_SONGS, which has a meta record but no items
    """
    try:
        return ITEM_TYPES[collection]
    except KeyError:
        raise ValidationError(f"Collection {collection.value} does not store items") from None
