"""Recording collaborators shared by the test-suite."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from tunequeue.integrations.contracts import CatalogItem, FetchError, MetadataError, TrackRef
from tunequeue.orchestrator.bootstrap import QueueServices
from tunequeue.orchestrator.handlers import JobHandlerDeps, JobRunner
from tunequeue.store.base import StoreBackend
from tunequeue.utils.jsonx import try_parse_json_or_none

TRACK_URL = "https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC"
PLAYLIST_URL = "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M"
ALBUM_URL = "https://open.spotify.com/album/1DFixLWuPkv3KT3TnV35m3"


class ManualClock:
    """Epoch-millisecond clock advanced explicitly by tests."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.value = start

    def __call__(self) -> int:
        return self.value

    def advance(self, ms: int) -> int:
        self.value += ms
        return self.value


def track_item(name: str = "Song", artist: str = "Artist") -> CatalogItem:
    return CatalogItem(kind="track", name=f"{name} - {artist}", tracks=(TrackRef(name, artist),))


def collection_item(kind: str, name: str, *titles: str) -> CatalogItem:
    tracks = tuple(TrackRef(title, "Band") for title in titles)
    return CatalogItem(kind=kind, name=name, tracks=tracks)  # type: ignore[arg-type]


class StubMetadata:
    """Resolve URLs from a fixed mapping; values may be exceptions."""

    def __init__(self, items: dict[str, CatalogItem | Exception] | None = None) -> None:
        self.items = dict(items or {})
        self.calls: list[str] = []

    async def resolve(self, url: str) -> CatalogItem:
        self.calls.append(url)
        result = self.items.get(url)
        if result is None:
            raise MetadataError(f"unknown url {url}", status_code=404)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingFetcher:
    """Write an empty ``<query>.mp3`` per fetch unless the query should fail."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = set(failing or ())
        self.calls: list[tuple[str, Path]] = []

    async def fetch(self, query_text: str, destination: Path) -> Path:
        self.calls.append((query_text, destination))
        if query_text in self.failing:
            raise FetchError(f"no match for {query_text}", query=query_text)
        destination.mkdir(parents=True, exist_ok=True)
        (destination / f"{query_text}.mp3").write_bytes(b"ID3")
        return destination


def build_runner(
    services: QueueServices,
    downloads_root: Path,
    *,
    metadata: StubMetadata,
    fetcher: RecordingFetcher,
) -> JobRunner:
    return JobRunner(
        JobHandlerDeps(
            metadata=metadata,
            fetcher=fetcher,
            progress=services.progress,
            downloads_root=downloads_root,
        )
    )


async def drain(subscription: Any, *, timeout: float = 0.01) -> list[dict[str, Any]]:
    """Return every decoded message currently buffered on ``subscription``."""

    messages: list[dict[str, Any]] = []
    while True:
        raw = await subscription.get_message(timeout)
        if raw is None:
            return messages
        data = try_parse_json_or_none(raw)
        if isinstance(data, dict):
            messages.append(data)


async def list_raw(store: StoreBackend, key: str) -> list[str]:
    return await store.lrange(key, 0, -1)


async def settle(delay: float = 0.01) -> None:
    await asyncio.sleep(delay)
