"""Utilities for working with Spotify URLs and URIs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal
from urllib.parse import urlparse

CatalogKind = Literal["track", "playlist", "album", "artist"]

CATALOG_KINDS: Final[tuple[CatalogKind, ...]] = ("track", "playlist", "album", "artist")
_URI_PREFIX: Final[str] = "spotify:"


@dataclass(slots=True, frozen=True)
class CatalogRef:
    """Kind and identifier extracted from a catalog link."""

    kind: CatalogKind
    id: str


def _clean_identifier(raw: str) -> str | None:
    identifier = raw.split("?")[0].split("#")[0].strip()
    if not identifier or not identifier.isalnum():
        return None
    return identifier


def parse_catalog_url(url_or_uri: str | None) -> CatalogRef | None:
    """Extract the catalog kind and identifier from a Spotify link.

    Supports share URLs (``https://open.spotify.com/{kind}/{id}``, including
    the localised ``/intl-xx/`` prefix) and URIs (``spotify:{kind}:{id}``) for
    tracks, playlists, albums and artists. Query strings and fragments are
    ignored. Returns ``None`` when the input matches none of these shapes.
    """

    if not url_or_uri:
        return None
    candidate = url_or_uri.strip()
    if not candidate:
        return None

    if candidate.lower().startswith(_URI_PREFIX):
        parts = candidate.split(":")
        if len(parts) != 3:
            return None
        kind = parts[1].lower()
        if kind not in CATALOG_KINDS:
            return None
        identifier = _clean_identifier(parts[2])
        return CatalogRef(kind=kind, id=identifier) if identifier else None  # type: ignore[arg-type]

    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"}:
        return None

    segments = [segment for segment in parsed.path.split("/") if segment]
    if segments and segments[0].lower().startswith("intl-"):
        segments = segments[1:]
    for index, segment in enumerate(segments[:-1]):
        kind = segment.lower()
        if kind in CATALOG_KINDS:
            identifier = _clean_identifier(segments[index + 1])
            if identifier is None:
                return None
            return CatalogRef(kind=kind, id=identifier)  # type: ignore[arg-type]
    return None


__all__ = ["CATALOG_KINDS", "CatalogKind", "CatalogRef", "parse_catalog_url"]
