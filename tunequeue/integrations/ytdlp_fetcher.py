"""Audio fetcher that searches and downloads tracks with yt-dlp."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError, ExtractorError

from tunequeue.config import FetcherConfig
from tunequeue.integrations.contracts import FetchError
from tunequeue.logging import get_logger

logger = get_logger(__name__)

OUTPUT_TEMPLATE = "%(title)s.%(ext)s"


class YtDlpTrackFetcher:
    """Fetch the first search hit for a query and extract its audio track."""

    def __init__(
        self,
        config: FetcherConfig,
        *,
        downloader_factory: Callable[[dict[str, Any]], Any] = YoutubeDL,
    ) -> None:
        self._audio_format = config.audio_format
        self._search_prefix = config.search_prefix.rstrip(":")
        self._downloader_factory = downloader_factory

    def build_options(self, destination: Path) -> dict[str, Any]:
        return {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "noprogress": True,
            "format": "bestaudio/best",
            "outtmpl": str(destination / OUTPUT_TEMPLATE),
            "retries": 3,
            "fragment_retries": 3,
            "postprocessors": [
                {
                    "key": "FFmpegExtractAudio",
                    "preferredcodec": self._audio_format,
                    "preferredquality": "0",
                }
            ],
        }

    def search_url(self, query_text: str) -> str:
        return f"{self._search_prefix}:{query_text}"

    async def fetch(self, query_text: str, destination: Path) -> Path:
        return await asyncio.to_thread(self.fetch_sync, query_text, destination)

    def fetch_sync(self, query_text: str, destination: Path) -> Path:
        query = (query_text or "").strip()
        if not query:
            raise FetchError("Search query must not be empty", query=query_text)
        destination.mkdir(parents=True, exist_ok=True)
        options = self.build_options(destination)
        try:
            with self._downloader_factory(options) as downloader:
                info = downloader.extract_info(self.search_url(query), download=True)
        except (DownloadError, ExtractorError) as exc:
            logger.warning("yt-dlp could not fetch %r: %s", query, exc)
            raise FetchError(f"Failed to fetch '{query}': {exc}", query=query) from exc
        except OSError as exc:
            raise FetchError(f"Failed to write '{query}' to {destination}: {exc}", query=query) from exc

        entries = info.get("entries") if isinstance(info, dict) else None
        if entries is not None and not list(entries):
            raise FetchError(f"No results for '{query}'", query=query)
        if info is None:
            raise FetchError(f"No results for '{query}'", query=query)
        return destination


__all__ = ["OUTPUT_TEMPLATE", "YtDlpTrackFetcher"]
