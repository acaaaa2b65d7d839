"""Contracts shared by the job handlers and their external collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from tunequeue.core.errors import TransientJobError
from tunequeue.utils.spotify_url import CatalogKind


@dataclass(slots=True, frozen=True)
class TrackRef:
    """A track to fetch, identified by its title and primary artist."""

    name: str
    artist: str

    @property
    def label(self) -> str:
        return f"{self.name} - {self.artist}"

    @property
    def query(self) -> str:
        return f"{self.name} {self.artist}"


@dataclass(slots=True, frozen=True)
class CatalogItem:
    """Resolved catalog entry: its kind, display name and track listing."""

    kind: CatalogKind
    name: str
    tracks: tuple[TrackRef, ...] = ()


class MetadataError(TransientJobError):
    """Raised when catalog metadata could not be resolved."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, stop_reason="metadata_error")
        self.status_code = status_code


class FetchError(TransientJobError):
    """Raised when a track could not be fetched."""

    def __init__(self, message: str, *, query: str | None = None) -> None:
        super().__init__(message, stop_reason="fetch_error")
        self.query = query


class MetadataProvider(Protocol):
    async def resolve(self, url: str) -> CatalogItem:
        """Return the catalog entry behind ``url`` or raise :class:`MetadataError`."""


class TrackFetcher(Protocol):
    async def fetch(self, query_text: str, destination: Path) -> Path:
        """Fetch the best match for ``query_text`` into ``destination``.

        Returns the folder the audio file was written to and raises
        :class:`FetchError` when nothing could be fetched.
        """


__all__ = [
    "CatalogItem",
    "FetchError",
    "MetadataError",
    "MetadataProvider",
    "TrackFetcher",
    "TrackRef",
]
