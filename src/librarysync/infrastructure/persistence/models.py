"""SQLAlchemy ORM models for the library cache."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from librarysync.domain.entities import utc_now


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Hey future me, playlists AND albums live in this one table, keyed by (collection, item_id).
# The full entity is a JSON payload (CachedPlaylist.to_dict() / CachedAlbum.to_dict()); only
# what we query on gets its own column. position keeps the remote order: new rows go to the
# end, updates keep their slot, put_all renumbers from 0.
class LibraryItemModel(Base):
    """A cached playlist or album."""

    __tablename__ = "library_items"

    collection: Mapped[str] = mapped_column(String(32), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_library_items_collection_position", "collection", "position"),
    )


class CollectionMetaModel(Base):
    """One meta record per collection (CollectionMeta.to_dict() payload)."""

    __tablename__ = "collection_meta"

    collection: Mapped[str] = mapped_column(String(32), primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


# Yo, this is the DERIVED cache: track listings keyed "playlist:{id}", "album:{id}",
# "liked_songs:{limit}". The sync engine never writes here, it only invalidates.
class TrackListModel(Base):
    """Cached track listing of a library member."""

    __tablename__ = "track_lists"

    cache_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    tracks: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    version_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cached_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
