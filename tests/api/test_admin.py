"""Admin repair endpoint: queues a course completion recompute."""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from app import worker
from app.services import progress_service as progress_module
from app.services.sample_catalog import SAMPLE_COURSE_ID, SAMPLE_LEARNER_ID
from app.services.task_queue import COURSE_COMPLETION_QUEUE, task_queue

_BODY = {"user_id": SAMPLE_LEARNER_ID, "course_id": SAMPLE_COURSE_ID}


def test_recompute_requires_admin(client: TestClient, token: str) -> None:
    resp = client.post(
        "/v1/admin/course-completion/recompute",
        json=_BODY,
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 403


def test_recompute_requires_auth(client: TestClient) -> None:
    resp = client.post("/v1/admin/course-completion/recompute", json=_BODY)
    assert resp.status_code == 401


def test_recompute_is_queued_and_worker_applies_it(
    client: TestClient, admin_token: str, auth_headers: dict
) -> None:
    client.post("/v1/lessons/checkpoint-quiz/complete", headers=auth_headers)
    client.post("/v1/lessons/welcome/complete", headers=auth_headers)

    resp = client.post(
        "/v1/admin/course-completion/recompute",
        json=_BODY,
        headers={"Authorization": f"Bearer {admin_token}"},
    )
    assert resp.status_code == 202
    assert resp.json()["queue"] == COURSE_COMPLETION_QUEUE
    assert asyncio.run(task_queue.queue_length(COURSE_COMPLETION_QUEUE)) == 1

    # Simulate drift: the stored percentage no longer matches the lessons
    asyncio.run(
        progress_module.enrollment_store.set_completion_percentage(
            SAMPLE_LEARNER_ID, SAMPLE_COURSE_ID, 0.0
        )
    )

    assert asyncio.run(worker.process_next(COURSE_COMPLETION_QUEUE)) is True

    enrollment = asyncio.run(
        progress_module.enrollment_store.get(SAMPLE_LEARNER_ID, SAMPLE_COURSE_ID)
    )
    assert enrollment.completion_percentage == 50.0
