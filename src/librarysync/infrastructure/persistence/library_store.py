"""SQLAlchemy-backed library cache (metadata store + derived track-list cache)."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from librarysync.domain.entities import (
    CachedTrackList,
    CollectionMeta,
    LibraryCollection,
    LibraryItem,
    ensure_utc_aware,
    item_type_for,
    utc_now,
)
from librarysync.domain.exceptions import CacheUnavailableError
from librarysync.domain.ports import IDerivedCache, ILibraryStore
from librarysync.infrastructure.persistence.database import Database
from librarysync.infrastructure.persistence.models import (
    CollectionMetaModel,
    LibraryItemModel,
    TrackListModel,
)

logger = logging.getLogger(__name__)


class SqlAlchemyLibraryStore(ILibraryStore, IDerivedCache):
    """Library cache on top of the async SQLAlchemy engine.

    Hey future me - every public method runs in its OWN session_scope (one transaction). That
    matters for put_all(): delete + insert of a whole collection commit together, so a reader
    never sees a half-replaced collection. Any SQLAlchemyError becomes CacheUnavailableError;
    callers never see driver exceptions.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._database.session_scope() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(
                "library_store.failed",
                extra={"operation": operation, "error": str(e), "error_type": type(e).__name__},
            )
            raise CacheUnavailableError(f"Library cache unavailable ({operation}): {e}") from e

    # ------------------------------------------------------------------
    # ILibraryStore
    # ------------------------------------------------------------------

    async def get_all(self, collection: LibraryCollection) -> list[LibraryItem]:
        item_type = item_type_for(collection)
        async with self._session("get_all") as session:
            result = await session.execute(
                select(LibraryItemModel.payload)
                .where(LibraryItemModel.collection == collection.value)
                .order_by(LibraryItemModel.position)
            )
            payloads = result.scalars().all()
        return [item_type.from_dict(payload) for payload in payloads]

    async def put_all(self, collection: LibraryCollection, items: list[LibraryItem]) -> None:
        item_type_for(collection)
        async with self._session("put_all") as session:
            await session.execute(
                delete(LibraryItemModel).where(LibraryItemModel.collection == collection.value)
            )
            session.add_all(
                LibraryItemModel(
                    collection=collection.value,
                    item_id=item.id,
                    position=position,
                    version_token=item.version_token,
                    payload=item.to_dict(),
                )
                for position, item in enumerate(items)
            )
        logger.debug(
            "library_store.put_all",
            extra={"collection": collection.value, "count": len(items)},
        )

    async def put(self, collection: LibraryCollection, item: LibraryItem) -> None:
        item_type_for(collection)
        async with self._session("put") as session:
            row = await session.get(LibraryItemModel, (collection.value, item.id))
            if row is not None:
                row.version_token = item.version_token
                row.payload = item.to_dict()
                return

            max_position = await session.scalar(
                select(func.max(LibraryItemModel.position)).where(
                    LibraryItemModel.collection == collection.value
                )
            )
            session.add(
                LibraryItemModel(
                    collection=collection.value,
                    item_id=item.id,
                    position=(max_position + 1) if max_position is not None else 0,
                    version_token=item.version_token,
                    payload=item.to_dict(),
                )
            )

    async def remove(self, collection: LibraryCollection, item_id: str) -> None:
        async with self._session("remove") as session:
            await session.execute(
                delete(LibraryItemModel).where(
                    LibraryItemModel.collection == collection.value,
                    LibraryItemModel.item_id == item_id,
                )
            )

    async def get_meta(self, collection: LibraryCollection) -> CollectionMeta | None:
        async with self._session("get_meta") as session:
            row = await session.get(CollectionMetaModel, collection.value)
            payload = dict(row.payload) if row is not None else None
        return CollectionMeta.from_dict(payload) if payload is not None else None

    async def put_meta(self, meta: CollectionMeta) -> None:
        async with self._session("put_meta") as session:
            row = await session.get(CollectionMetaModel, meta.collection.value)
            if row is None:
                session.add(
                    CollectionMetaModel(collection=meta.collection.value, payload=meta.to_dict())
                )
            else:
                row.payload = meta.to_dict()

    async def clear(self) -> None:
        async with self._session("clear") as session:
            await session.execute(delete(LibraryItemModel))
            await session.execute(delete(CollectionMetaModel))
            await session.execute(delete(TrackListModel))
        logger.info("library_store.cleared")

    # ------------------------------------------------------------------
    # Derived cache (track listings)
    # ------------------------------------------------------------------

    async def get_track_list(self, key: str) -> CachedTrackList | None:
        async with self._session("get_track_list") as session:
            row = await session.get(TrackListModel, key)
            if row is None:
                return None
            return CachedTrackList(
                key=row.cache_key,
                tracks=list(row.tracks),
                version_token=row.version_token,
                cached_at=ensure_utc_aware(row.cached_at),
            )

    async def put_track_list(
        self, key: str, tracks: list[dict[str, Any]], version_token: str | None = None
    ) -> None:
        async with self._session("put_track_list") as session:
            row = await session.get(TrackListModel, key)
            if row is None:
                session.add(
                    TrackListModel(cache_key=key, tracks=tracks, version_token=version_token)
                )
            else:
                row.tracks = tracks
                row.version_token = version_token
                row.cached_at = utc_now()

    async def invalidate(self, key: str) -> None:
        async with self._session("invalidate") as session:
            result = await session.execute(
                delete(TrackListModel).where(
                    or_(
                        TrackListModel.cache_key == key,
                        TrackListModel.cache_key.startswith(f"{key}:", autoescape=True),
                    )
                )
            )
        logger.debug(
            "library_store.invalidated",
            extra={"cache_key": key, "removed": result.rowcount},
        )
