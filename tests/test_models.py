from __future__ import annotations

import pytest

from tunequeue.core.errors import CorruptRecordError
from tunequeue.models import Job, JobStatus, ProgressEvent, ProgressType, percent


def test_new_job_starts_pending_with_zero_attempts() -> None:
    job = Job.new("https://open.spotify.com/track/abc", now=1_000)

    assert job.status is JobStatus.PENDING
    assert job.attempt == 0
    assert job.created_at == job.updated_at == 1_000
    assert len(job.id) == 32


def test_transition_refreshes_updated_at_only() -> None:
    job = Job.new("u", now=1_000)

    claimed = job.transition(JobStatus.PROCESSING, now=2_500)

    assert claimed.status is JobStatus.PROCESSING
    assert claimed.created_at == 1_000
    assert claimed.updated_at == 2_500
    assert claimed.age_ms(3_000) == 500
    assert job.status is JobStatus.PENDING


def test_job_record_uses_camel_case_keys() -> None:
    job = Job.new("u", now=10).transition(JobStatus.DONE, now=20, payload="Song - Artist")

    record = job.to_dict()

    assert record["createdAt"] == 10
    assert record["updatedAt"] == 20
    assert record["payload"] == "Song - Artist"
    assert Job.loads(job.dumps()) == job


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", "", '"text"'])
def test_loads_rejects_non_object_records(raw: str) -> None:
    with pytest.raises(CorruptRecordError) as excinfo:
        Job.loads(raw)

    assert excinfo.value.raw == raw


@pytest.mark.parametrize(
    "record",
    [
        {"url": "u"},
        {"id": "a", "url": "u", "status": "paused"},
        {"id": "a", "url": "u", "attempt": "many"},
        {"id": "", "url": "u"},
    ],
)
def test_from_dict_rejects_invalid_records(record: dict) -> None:
    with pytest.raises(CorruptRecordError):
        Job.from_dict(record)


def test_progress_event_payload_is_clamped() -> None:
    event = ProgressEvent(
        job_id="j1",
        status=JobStatus.PROCESSING,
        type=ProgressType.DOWNLOADING,
        message="Downloading",
        progress=140,
        total=2,
        current=1,
        current_track="Song - Artist",
    )

    data = event.to_dict()

    assert data["progress"] == 100
    assert data["jobId"] == "j1"
    assert data["currentTrack"] == "Song - Artist"
    assert "error" not in data
    assert not event.is_terminal


def test_percent_handles_empty_totals() -> None:
    assert percent(0, 0) == 0
    assert percent(1, 3) == 33
    assert percent(3, 3) == 100
