"""Spotify Web API gateway for the library sync engine."""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from librarysync.config.settings import SpotifySettings
from librarysync.domain.entities import (
    CachedAlbum,
    CachedPlaylist,
    LibraryCollection,
    LibraryItem,
    LibraryPageEvent,
    PageResult,
    parse_datetime,
    utc_now,
)
from librarysync.domain.exceptions import (
    AuthenticationError,
    ExternalServiceError,
    RateLimitExceededError,
)
from librarysync.domain.ports import ILibraryGateway
from librarysync.domain.value_objects import CancellationToken
from librarysync.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Spotify's hard maximum for /me/playlists, /me/albums and /me/tracks
MAX_PAGE_SIZE = 50


def _first_image_url(images: list[dict[str, Any]] | None) -> str | None:
    if not images:
        return None
    return images[0].get("url")


def _parse_retry_after(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return max(0, int(value))
    except ValueError:
        return None


def map_playlist(data: dict[str, Any]) -> CachedPlaylist:
    """Simplified playlist object -> CachedPlaylist. ``snapshot_id`` becomes the version token."""
    owner = data.get("owner") or {}
    tracks = data.get("tracks") or {}
    return CachedPlaylist(
        id=data["id"],
        name=data.get("name") or "Untitled Playlist",
        description=data.get("description") or None,
        owner_name=owner.get("display_name") or owner.get("id"),
        image_url=_first_image_url(data.get("images")),
        track_count=int(tracks.get("total") or 0),
        uri=data.get("uri"),
        version_token=data.get("snapshot_id"),
    )


def map_saved_album(item: dict[str, Any]) -> CachedAlbum:
    """Saved-album item ({added_at, album}) -> CachedAlbum."""
    album = item["album"]
    return CachedAlbum(
        id=album["id"],
        name=album.get("name") or "Unknown Album",
        artists=[a["name"] for a in album.get("artists") or [] if a.get("name")],
        image_url=_first_image_url(album.get("images")),
        release_date=album.get("release_date") or None,
        total_tracks=int(album.get("total_tracks") or 0),
        uri=album.get("uri"),
        album_type=album.get("album_type"),
        added_at=parse_datetime(item.get("added_at")),
    )


class SpotifyLibraryClient(ILibraryGateway):
    """HTTP gateway to the user's Spotify library.

    Hey future me - the access token comes from outside (settings, or set_access_token() from
    whatever does the OAuth dance). This client never refreshes tokens: a 401 surfaces as
    AuthenticationError, the engine turns it into SyncState.error and the next cycle retries.
    """

    def __init__(
        self,
        settings: SpotifySettings,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """
        Initialize Spotify library client.

        Args:
            settings: Spotify configuration settings
            client: Pre-built httpx client (tests inject one with a MockTransport)
            rate_limiter: Shared limiter; defaults to one built from settings
        """
        self.settings = settings
        self._access_token = (
            settings.access_token.get_secret_value() if settings.access_token else None
        )
        self._client = client
        self._owns_client = client is None
        self._rate_limiter = rate_limiter or RateLimiter.for_spotify(settings)

    def set_access_token(self, access_token: str | None) -> None:
        self._access_token = access_token or None

    def is_authenticated(self) -> bool:
        return self._access_token is not None

    # Lazy on purpose: httpx.AsyncClient must be created inside the running loop
    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close HTTP client (only if we created it)."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self.settings.api_base_url}{path}"

    # Hey future me - ALL Spotify calls go through here:
    # - token bucket before every attempt
    # - retry on 429 honouring Retry-After, up to settings.max_retries
    # - httpx errors mapped onto the domain exceptions so the engine never sees httpx types
    async def _api_request(
        self,
        method: str,
        url: str,
        token: CancellationToken | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a rate-limited API request and return the decoded JSON body.

        Raises:
            SyncAbortedError: If ``token`` fired before an attempt
            AuthenticationError: No access token, or Spotify answered 401
            RateLimitExceededError: Still 429 after all retries
            ExternalServiceError: Transport failure or any other error status
        """
        if self._access_token is None:
            raise AuthenticationError("No Spotify access token configured")

        client = await self._get_client()
        headers = {"Authorization": f"Bearer {self._access_token}"}
        max_retries = self.settings.max_retries

        for attempt in range(max_retries + 1):
            if token is not None:
                token.raise_if_cancelled()
            await self._rate_limiter.acquire()

            try:
                response = await client.request(method, url, params=params, headers=headers)
            except httpx.HTTPError as e:
                raise ExternalServiceError(f"Spotify request failed: {e}") from e

            if response.status_code == 429:
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                if attempt >= max_retries:
                    raise RateLimitExceededError(
                        f"Spotify API rate limited (429) after {max_retries} retries. "
                        f"Retry-After: {retry_after if retry_after is not None else 'not provided'}",
                        retry_after=retry_after,
                    )
                wait_time = await self._rate_limiter.handle_rate_limit_response(retry_after)
                logger.warning(
                    "spotify.rate_limited",
                    extra={
                        "attempt": attempt + 1,
                        "max_retries": max_retries,
                        "waited_seconds": wait_time,
                        "url": url,
                    },
                )
                continue

            self._rate_limiter.reset_backoff()

            if response.status_code == 401:
                raise AuthenticationError("Spotify rejected the access token (401)")
            if response.is_error:
                raise ExternalServiceError(
                    f"Spotify API error: {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                )
            try:
                body = response.json()
            except ValueError as e:
                raise ExternalServiceError("Spotify returned a non-JSON response") from e
            if not isinstance(body, dict):
                raise ExternalServiceError("Spotify returned an unexpected response shape")
            return body

        # The loop either returns or raises; this keeps type checkers happy
        raise RateLimitExceededError("Spotify API rate limited (429)")

    async def _get_total(self, path: str, token: CancellationToken) -> int:
        # limit=1 keeps the payload tiny - we only want "total"
        data = await self._api_request("GET", self._url(path), token, params={"limit": 1})
        return int(data.get("total") or 0)

    async def get_playlist_count(self, token: CancellationToken) -> int:
        return await self._get_total("/me/playlists", token)

    async def get_album_count(self, token: CancellationToken) -> int:
        return await self._get_total("/me/albums", token)

    async def get_liked_songs_count(self, token: CancellationToken) -> int:
        return await self._get_total("/me/tracks", token)

    async def get_playlists_page(
        self, page_size: int, token: CancellationToken
    ) -> PageResult[CachedPlaylist]:
        data = await self._api_request(
            "GET",
            self._url("/me/playlists"),
            token,
            params={"limit": min(page_size, MAX_PAGE_SIZE), "offset": 0},
        )
        return PageResult(
            items=[map_playlist(p) for p in data.get("items") or [] if p and p.get("id")],
            has_more=data.get("next") is not None,
            total=data.get("total"),
        )

    async def get_albums_page(
        self, page_size: int, token: CancellationToken
    ) -> PageResult[CachedAlbum]:
        data = await self._api_request(
            "GET",
            self._url("/me/albums"),
            token,
            params={"limit": min(page_size, MAX_PAGE_SIZE), "offset": 0},
        )
        return PageResult(
            items=[
                map_saved_album(item)
                for item in data.get("items") or []
                if item and (item.get("album") or {}).get("id")
            ],
            has_more=data.get("next") is not None,
            total=data.get("total"),
        )

    async def stream_library(self, token: CancellationToken) -> AsyncIterator[LibraryPageEvent]:
        """Interleaved pagination: one playlists page and one albums page per round.

        Both pages of a round are fetched concurrently and the round is joined before the next
        one starts, so neither collection can starve the other on big libraries. Playlists get
        the fetch time as ``added_at`` (the endpoint doesn't return one).
        """
        fetched_at = utc_now()
        next_urls: dict[LibraryCollection, str | None] = {
            LibraryCollection.PLAYLISTS: self._url(f"/me/playlists?limit={MAX_PAGE_SIZE}"),
            LibraryCollection.ALBUMS: self._url(f"/me/albums?limit={MAX_PAGE_SIZE}"),
        }
        accumulated: dict[LibraryCollection, list[LibraryItem]] = {
            LibraryCollection.PLAYLISTS: [],
            LibraryCollection.ALBUMS: [],
        }

        while any(next_urls.values()):
            token.raise_if_cancelled()
            pending = [(collection, url) for collection, url in next_urls.items() if url]
            pages = await asyncio.gather(
                *(self._api_request("GET", url, token) for _, url in pending)
            )

            for (collection, _), data in zip(pending, pages, strict=True):
                raw_items = data.get("items") or []
                if collection is LibraryCollection.PLAYLISTS:
                    for raw in raw_items:
                        if raw and raw.get("id"):
                            playlist = map_playlist(raw)
                            playlist.added_at = fetched_at
                            accumulated[collection].append(playlist)
                else:
                    accumulated[collection].extend(
                        map_saved_album(raw)
                        for raw in raw_items
                        if raw and (raw.get("album") or {}).get("id")
                    )

                next_urls[collection] = data.get("next")
                yield LibraryPageEvent(
                    collection=collection,
                    items=list(accumulated[collection]),
                    is_complete=next_urls[collection] is None,
                )
