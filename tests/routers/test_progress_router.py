from __future__ import annotations

import asyncio
import json

from fastapi.testclient import TestClient

from tunequeue.orchestrator.bootstrap import QueueServices

from tests.support.stubs import TRACK_URL


def _frames(text: str) -> list[dict]:
    return [
        json.loads(chunk[len("data: ") :])
        for chunk in text.split("\n\n")
        if chunk.startswith("data: ")
    ]


def test_finished_job_streams_its_snapshot_and_closes(
    client: TestClient, services: QueueServices
) -> None:
    async def _finish() -> str:
        handle = await services.queue.enqueue(TRACK_URL)
        claimed = await services.queue.claim(await services.queue.peek_head())
        await services.queue.complete(claimed, payload="Song - Artist")
        return handle.id

    job_id = asyncio.run(_finish())

    response = client.get(f"/progress/{job_id}")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    frames = _frames(response.text)
    assert frames[0] == {"type": "connected", "jobId": job_id}
    assert frames[1]["type"] == "completed"
    assert frames[1]["status"] == "done"
    assert frames[1]["progress"] == 100


def test_failed_job_snapshot_carries_the_error(
    client: TestClient, services: QueueServices
) -> None:
    async def _fail() -> str:
        handle = await services.queue.enqueue(TRACK_URL)
        claimed = await services.queue.claim(await services.queue.peek_head())
        await services.queue.fail(claimed, error="no match")
        return handle.id

    job_id = asyncio.run(_fail())

    frames = _frames(client.get(f"/progress/{job_id}").text)

    assert frames[1]["status"] == "failed"
    assert frames[1]["error"] == "no match"


def test_store_outage_answers_with_polling_fallback(
    client: TestClient, services: QueueServices
) -> None:
    asyncio.run(services.store.close())

    response = client.get("/progress/abc")

    assert response.status_code == 503
    assert response.json() == {"fallback": "polling", "jobId": "abc"}
