"""Job sub-flows: fetch the tracks of a track, playlist, album or artist URL."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from tunequeue.core.errors import JobValidationError, TransientJobError
from tunequeue.integrations.contracts import (
    CatalogItem,
    MetadataError,
    MetadataProvider,
    TrackFetcher,
    TrackRef,
)
from tunequeue.logging import get_logger
from tunequeue.models import Job, JobStatus, ProgressEvent, ProgressType, percent
from tunequeue.orchestrator.progress import ProgressBus
from tunequeue.utils.file_utils import find_existing_track, sanitize_name
from tunequeue.utils.spotify_url import CatalogKind, parse_catalog_url

logger = get_logger(__name__)

TrackState = Literal["downloaded", "skipped", "failed"]


def truncate_error(message: str, limit: int = 512) -> str:
    text = message.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


@dataclass(slots=True, frozen=True)
class TrackOutcome:
    """Result of one track inside a job."""

    track: TrackRef
    state: TrackState
    error: str | None = None


@dataclass(slots=True, frozen=True)
class JobResult:
    """Terminal result of a successful sub-flow."""

    kind: CatalogKind
    payload: str
    folder: Path
    outcomes: tuple[TrackOutcome, ...] = ()

    def count(self, state: TrackState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state == state)


@dataclass(slots=True)
class JobHandlerDeps:
    """Collaborators shared by all sub-flows."""

    metadata: MetadataProvider
    fetcher: TrackFetcher
    progress: ProgressBus
    downloads_root: Path

    def collection_folder(self, kind: CatalogKind, name: str) -> Path:
        return self.downloads_root / kind / sanitize_name(name)


JobHandler = Callable[[Job, CatalogItem], Awaitable[JobResult]]


class _Reporter:
    def __init__(self, progress: ProgressBus, job: Job) -> None:
        self._progress = progress
        self._job_id = job.id

    async def __call__(
        self,
        event_type: ProgressType,
        message: str,
        *,
        total: int,
        current: int,
        current_track: str | None = None,
        error: str | None = None,
    ) -> None:
        await self._progress.publish(
            self._job_id,
            ProgressEvent(
                job_id=self._job_id,
                status=JobStatus.PROCESSING,
                type=event_type,
                message=message,
                progress=percent(current, total),
                total=total,
                current=current,
                current_track=current_track,
                error=error,
            ),
        )


def build_track_handler(deps: JobHandlerDeps) -> JobHandler:
    async def handler(job: Job, item: CatalogItem) -> JobResult:
        if not item.tracks:
            raise MetadataError(f"No track metadata for {job.url}")
        track = item.tracks[0]
        label = f"{sanitize_name(track.name)} - {sanitize_name(track.artist)}"
        folder = deps.collection_folder("track", item.name)
        folder.mkdir(parents=True, exist_ok=True)
        report = _Reporter(deps.progress, job)

        await report(
            ProgressType.DOWNLOADING,
            f"Downloading: {label}",
            total=1,
            current=0,
            current_track=label,
        )
        if find_existing_track(folder, sanitize_name(track.name)) is not None:
            await report(ProgressType.SKIPPED, f"Already on disk: {label}", total=1, current=1)
            outcome = TrackOutcome(track=track, state="skipped")
        else:
            await deps.fetcher.fetch(track.query, folder)
            await report(ProgressType.DOWNLOADED, f"Finished: {label}", total=1, current=1)
            outcome = TrackOutcome(track=track, state="downloaded")
        return JobResult(kind="track", payload=item.name, folder=folder, outcomes=(outcome,))

    return handler


def build_collection_handler(deps: JobHandlerDeps, kind: CatalogKind) -> JobHandler:
    """Return a handler fetching every track of a playlist, album or artist."""

    async def handler(job: Job, item: CatalogItem) -> JobResult:
        folder = deps.collection_folder(kind, item.name)
        folder.mkdir(parents=True, exist_ok=True)
        report = _Reporter(deps.progress, job)
        total = len(item.tracks)

        await report(
            ProgressType.INFO,
            f"Processing {kind}: {item.name} ({total} tracks)",
            total=total,
            current=0,
        )

        outcomes: list[TrackOutcome] = []
        for position, track in enumerate(item.tracks, start=1):
            outcome = await _fetch_one(deps, report, track, folder, position, total)
            outcomes.append(outcome)

        attempted = [outcome for outcome in outcomes if outcome.state != "skipped"]
        if attempted and all(outcome.state == "failed" for outcome in attempted):
            raise TransientJobError(
                f"All {len(attempted)} attempted tracks of {item.name} failed",
                stop_reason="all_tracks_failed",
            )
        return JobResult(kind=kind, payload=item.name, folder=folder, outcomes=tuple(outcomes))

    return handler


async def _fetch_one(
    deps: JobHandlerDeps,
    report: _Reporter,
    track: TrackRef,
    folder: Path,
    position: int,
    total: int,
) -> TrackOutcome:
    label = track.label
    counter = f"({position}/{total})"
    if find_existing_track(folder, sanitize_name(track.name)) is not None:
        await report(
            ProgressType.SKIPPED,
            f"Skip {counter}: {label} (already on disk)",
            total=total,
            current=position,
            current_track=label,
        )
        return TrackOutcome(track=track, state="skipped")

    await report(
        ProgressType.DOWNLOADING,
        f"Downloading {counter}: {label}",
        total=total,
        current=position - 1,
        current_track=label,
    )
    try:
        await deps.fetcher.fetch(track.query, folder)
    except Exception as exc:
        error = truncate_error(str(exc) or exc.__class__.__name__)
        logger.warning("Track %s failed: %s", label, error)
        await report(
            ProgressType.TRACK_FAILED,
            f"Failed {counter}: {label}",
            total=total,
            current=position,
            current_track=label,
            error=error,
        )
        return TrackOutcome(track=track, state="failed", error=error)

    await report(
        ProgressType.DOWNLOADED,
        f"Finished {counter}: {label}",
        total=total,
        current=position,
        current_track=label,
    )
    return TrackOutcome(track=track, state="downloaded")


def default_handlers(deps: JobHandlerDeps) -> dict[CatalogKind, JobHandler]:
    return {
        "track": build_track_handler(deps),
        "playlist": build_collection_handler(deps, "playlist"),
        "album": build_collection_handler(deps, "album"),
        "artist": build_collection_handler(deps, "artist"),
    }


class JobRunner:
    """Dispatch a claimed job to the sub-flow matching its URL shape."""

    def __init__(
        self,
        deps: JobHandlerDeps,
        handlers: Mapping[CatalogKind, JobHandler] | None = None,
    ) -> None:
        self._deps = deps
        self._handlers = dict(handlers) if handlers is not None else default_handlers(deps)

    @property
    def progress(self) -> ProgressBus:
        return self._deps.progress

    def kind_of(self, job: Job) -> CatalogKind | None:
        ref = parse_catalog_url(job.url)
        return ref.kind if ref is not None else None

    async def run(self, job: Job) -> JobResult:
        """Execute ``job``; raises a :class:`JobError` subclass or any sub-flow error."""

        kind = self.kind_of(job)
        handler = self._handlers.get(kind) if kind is not None else None
        if handler is None:
            raise JobValidationError(f"Unsupported URL: {job.url}")

        await self._deps.progress.publish(
            job.id,
            ProgressEvent(
                job_id=job.id,
                status=JobStatus.PROCESSING,
                type=ProgressType.STARTED,
                message="Starting download",
                total=1,
            ),
        )
        item = await self._deps.metadata.resolve(job.url)
        return await handler(job, item)


__all__ = [
    "JobHandler",
    "JobHandlerDeps",
    "JobResult",
    "JobRunner",
    "TrackOutcome",
    "build_collection_handler",
    "build_track_handler",
    "default_handlers",
    "truncate_error",
]
