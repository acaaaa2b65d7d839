"""Spotify catalog lookups backed by Spotipy's client-credentials flow."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Iterable, Optional

import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOauthError

from tunequeue.config import SpotifyConfig
from tunequeue.integrations.contracts import CatalogItem, MetadataError, TrackRef
from tunequeue.logging import get_logger
from tunequeue.utils.file_utils import sanitize_name
from tunequeue.utils.spotify_url import parse_catalog_url

logger = get_logger(__name__)

_RETRY_STATUSES = frozenset({429, 500, 502, 503})


def _first_artist(track: dict[str, Any]) -> str:
    artists = track.get("artists") or []
    for artist in artists:
        if isinstance(artist, dict) and artist.get("name"):
            return str(artist["name"])
    return "Unknown"


def _track_ref(track: Any) -> Optional[TrackRef]:
    if not isinstance(track, dict) or not track.get("name"):
        return None
    return TrackRef(name=str(track["name"]), artist=_first_artist(track))


class SpotifyMetadataProvider:
    """Resolve Spotify URLs into catalog items with a flat track listing."""

    def __init__(
        self,
        config: SpotifyConfig,
        client: Optional[spotipy.Spotify] = None,
        rate_limit_seconds: float = 0.1,
        max_retries: int = 3,
    ) -> None:
        self._market = config.market
        self._rate_limit_seconds = rate_limit_seconds
        self._max_retries = max(1, max_retries)
        self._lock = threading.Lock()
        self._last_request_time = 0.0

        if client is not None:
            self._client = client
        else:
            if not config.configured:
                raise ValueError("Spotify client credentials are not configured")
            auth_manager = SpotifyClientCredentials(
                client_id=config.client_id,
                client_secret=config.client_secret,
            )
            self._client = spotipy.Spotify(auth_manager=auth_manager, retries=0)

    async def resolve(self, url: str) -> CatalogItem:
        return await asyncio.to_thread(self.resolve_sync, url)

    def resolve_sync(self, url: str) -> CatalogItem:
        ref = parse_catalog_url(url)
        if ref is None:
            raise MetadataError(f"Unsupported catalog URL: {url}")
        if ref.kind == "track":
            return self._resolve_track(ref.id)
        if ref.kind == "playlist":
            return self._resolve_playlist(ref.id)
        if ref.kind == "album":
            return self._resolve_album(ref.id)
        return self._resolve_artist(ref.id)

    def _resolve_track(self, track_id: str) -> CatalogItem:
        track = self._execute(self._client.track, track_id)
        ref = _track_ref(track)
        if ref is None:
            raise MetadataError(f"Track {track_id} has no usable metadata")
        name = f"{sanitize_name(ref.name)} - {sanitize_name(ref.artist)}"
        return CatalogItem(kind="track", name=name, tracks=(ref,))

    def _resolve_playlist(self, playlist_id: str) -> CatalogItem:
        playlist = self._execute(self._client.playlist, playlist_id, fields="name")
        page = self._execute(
            self._client.playlist_items, playlist_id, additional_types=("track",)
        )
        tracks = self._collect(page, lambda item: item.get("track") if isinstance(item, dict) else None)
        return CatalogItem(
            kind="playlist",
            name=sanitize_name(str((playlist or {}).get("name") or playlist_id)),
            tracks=tracks,
        )

    def _resolve_album(self, album_id: str) -> CatalogItem:
        album = self._execute(self._client.album, album_id, market=self._market)
        page = self._execute(self._client.album_tracks, album_id, market=self._market)
        tracks = self._collect(page, lambda item: item)
        return CatalogItem(
            kind="album",
            name=sanitize_name(str((album or {}).get("name") or album_id)),
            tracks=tracks,
        )

    def _resolve_artist(self, artist_id: str) -> CatalogItem:
        artist = self._execute(self._client.artist, artist_id)
        top = self._execute(self._client.artist_top_tracks, artist_id, country=self._market)
        tracks = tuple(
            ref for ref in (_track_ref(track) for track in (top or {}).get("tracks") or []) if ref
        )
        return CatalogItem(
            kind="artist",
            name=sanitize_name(str((artist or {}).get("name") or artist_id)),
            tracks=tracks,
        )

    def _collect(self, page: Any, extract) -> tuple[TrackRef, ...]:
        refs: list[TrackRef] = []
        while isinstance(page, dict):
            for ref in (_track_ref(extract(item)) for item in self._items(page)):
                if ref is not None:
                    refs.append(ref)
            if not page.get("next"):
                break
            page = self._execute(self._client.next, page)
        return tuple(refs)

    @staticmethod
    def _items(page: dict[str, Any]) -> Iterable[Any]:
        items = page.get("items")
        return items if isinstance(items, list) else ()

    def _respect_rate_limit(self) -> None:
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._rate_limit_seconds:
                time.sleep(self._rate_limit_seconds - elapsed)
            self._last_request_time = time.monotonic()

    def _execute(self, func, *args, **kwargs):
        backoff = 0.5
        for attempt in range(1, self._max_retries + 1):
            self._respect_rate_limit()
            try:
                return func(*args, **kwargs)
            except SpotifyException as exc:
                status = getattr(exc, "http_status", None)
                if status not in _RETRY_STATUSES or attempt == self._max_retries:
                    logger.error("Spotify API request failed with status %s", status)
                    raise MetadataError(
                        f"Spotify request failed: {exc.msg if hasattr(exc, 'msg') else exc}",
                        status_code=status,
                    ) from exc
                logger.warning("Retrying Spotify API request due to status %s", status)
            except SpotifyOauthError as exc:
                raise MetadataError(f"Spotify authentication failed: {exc}") from exc
            time.sleep(backoff)
            backoff *= 2
        raise MetadataError("Spotify request failed")  # pragma: no cover - loop always returns


__all__ = ["SpotifyMetadataProvider"]
