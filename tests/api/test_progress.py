"""HTTP tests for heartbeat, lesson progress and manual completion."""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from app.models.enrollment import Enrollment
from app.services import progress_service as progress_module
from app.services.sample_catalog import SAMPLE_COURSE_ID, SAMPLE_LEARNER_ID
from app.services.task_queue import PLAYBACK_SESSIONS_QUEUE, task_queue
from tests.conftest import mint_token


def _beat(client: TestClient, headers: dict, position: float, duration: float = 120, lesson_id: str = "welcome"):
    return client.post(
        "/v1/progress/heartbeat",
        json={"lesson_id": lesson_id, "current_position": position, "reported_duration": duration},
        headers=headers,
    )


# ---- 401: unauthenticated ----


def test_heartbeat_rejects_missing_token(client: TestClient) -> None:
    resp = client.post(
        "/v1/progress/heartbeat",
        json={"lesson_id": "welcome", "current_position": 10, "reported_duration": 120},
    )
    assert resp.status_code == 401


def test_heartbeat_rejects_garbage_token(client: TestClient) -> None:
    resp = _beat(client, {"Authorization": "Bearer not-a-jwt"}, 10)
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


# ---- 200: heartbeat ----


def test_heartbeat_returns_progress(client: TestClient, auth_headers: dict) -> None:
    resp = _beat(client, auth_headers, 30)
    assert resp.status_code == 200
    assert resp.json() == {
        "watched_sec": 30.0,
        "last_position": 30.0,
        "completion_percentage": 25.0,
        "completed": False,
        "completed_at": None,
    }


def test_heartbeat_completes_lesson_at_threshold(client: TestClient, auth_headers: dict) -> None:
    _beat(client, auth_headers, 60)
    body = _beat(client, auth_headers, 110).json()
    assert body["completed"] is True
    assert body["completed_at"] is not None

    rewound = _beat(client, auth_headers, 5).json()
    assert rewound["watched_sec"] == 110
    assert rewound["completed"] is True
    assert rewound["completed_at"] == body["completed_at"]


def test_heartbeat_enqueues_playback_telemetry(client: TestClient, auth_headers: dict) -> None:
    client.post(
        "/v1/progress/heartbeat",
        json={
            "lesson_id": "welcome",
            "current_position": 12,
            "reported_duration": 120,
            "session_id": "sess-9",
        },
        headers=auth_headers,
    )
    task = task_queue._queues[PLAYBACK_SESSIONS_QUEUE][0]  # type: ignore[attr-defined]
    assert task.payload["lesson_id"] == "welcome"
    assert task.payload["session_id"] == "sess-9"
    assert task.payload["watch_time"] == 12


def test_progress_is_scoped_to_token_subject(client: TestClient, auth_headers: dict) -> None:
    progress_module.enrollment_store.add(  # type: ignore[attr-defined]
        Enrollment(user_id="someone-else", course_id=SAMPLE_COURSE_ID)
    )
    _beat(client, auth_headers, 50)
    other = {"Authorization": f"Bearer {mint_token('someone-else')}"}
    resp = client.get("/v1/lessons/welcome/progress", headers=other)
    assert resp.json()["watched_sec"] == 0


# ---- 400 / 404 ----


def test_negative_position_is_invalid(client: TestClient, auth_headers: dict) -> None:
    resp = _beat(client, auth_headers, -1)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_input"


def test_zero_duration_is_invalid(client: TestClient, auth_headers: dict) -> None:
    resp = _beat(client, auth_headers, 10, duration=0)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_input"


def test_malformed_body_is_invalid(client: TestClient, auth_headers: dict) -> None:
    resp = client.post(
        "/v1/progress/heartbeat",
        json={"lesson_id": "welcome", "current_position": "ten"},
        headers=auth_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_input"


def test_unknown_lesson_is_404(client: TestClient, auth_headers: dict) -> None:
    resp = _beat(client, auth_headers, 10, lesson_id="missing")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "lesson 'missing' not found", "code": "lesson_not_found"}


# ---- GET progress ----


def test_untouched_lesson_returns_zero_state(client: TestClient, auth_headers: dict) -> None:
    resp = client.get("/v1/lessons/variables/progress", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["completion_percentage"] == 0
    assert resp.json()["completed"] is False


def test_get_progress_unknown_lesson_is_404(client: TestClient, auth_headers: dict) -> None:
    resp = client.get("/v1/lessons/missing/progress", headers=auth_headers)
    assert resp.status_code == 404


# ---- manual completion ----


def test_complete_quiz_is_idempotent(client: TestClient, auth_headers: dict) -> None:
    first = client.post("/v1/lessons/checkpoint-quiz/complete", headers=auth_headers)
    second = client.post("/v1/lessons/checkpoint-quiz/complete", headers=auth_headers)
    assert first.status_code == 200
    assert first.json()["completed"] is True
    assert first.json()["completion_percentage"] == 100
    assert second.json()["completed_at"] == first.json()["completed_at"]


def test_complete_partly_watched_video_reports_watched_ratio(
    client: TestClient, auth_headers: dict
) -> None:
    _beat(client, auth_headers, 30)
    body = client.post("/v1/lessons/welcome/complete", headers=auth_headers).json()
    assert body["completed"] is True
    assert body["completion_percentage"] == 25


# ---- 403: not enrolled ----


def test_unenrolled_learner_gets_403_everywhere(client: TestClient) -> None:
    stranger = {"Authorization": f"Bearer {mint_token('stranger')}"}

    beat = _beat(client, stranger, 120)
    assert beat.status_code == 403
    assert beat.json() == {
        "detail": f"not enrolled in course {SAMPLE_COURSE_ID!r}",
        "code": "not_enrolled",
    }
    assert client.get("/v1/lessons/welcome/progress", headers=stranger).status_code == 403
    assert client.post("/v1/lessons/welcome/complete", headers=stranger).status_code == 403
    assert asyncio.run(progress_module.progress_store.get("stranger", "welcome")) is None


def test_suspended_enrollment_gets_403(client: TestClient) -> None:
    progress_module.enrollment_store.add(  # type: ignore[attr-defined]
        Enrollment(user_id="lapsed", course_id=SAMPLE_COURSE_ID, status="suspended")
    )
    headers = {"Authorization": f"Bearer {mint_token('lapsed')}"}
    assert _beat(client, headers, 10).status_code == 403


# ---- course completion status ----


def test_finishing_sample_course_completes_enrollment(
    client: TestClient, auth_headers: dict
) -> None:
    _beat(client, auth_headers, 120, duration=120, lesson_id="welcome")
    _beat(client, auth_headers, 600, duration=600, lesson_id="variables")
    _beat(client, auth_headers, 900, duration=900, lesson_id="control-flow")
    before = asyncio.run(
        progress_module.enrollment_store.get(SAMPLE_LEARNER_ID, SAMPLE_COURSE_ID)
    )
    assert before.status == "active"

    client.post("/v1/lessons/checkpoint-quiz/complete", headers=auth_headers)

    after = asyncio.run(
        progress_module.enrollment_store.get(SAMPLE_LEARNER_ID, SAMPLE_COURSE_ID)
    )
    assert after.status == "completed"
    assert after.completion_percentage == 100
    # a finished learner can keep watching
    assert _beat(client, auth_headers, 5, lesson_id="welcome").status_code == 200


# ---- batch ----


def _batch(client: TestClient, headers: dict, heartbeats: list[dict]):
    return client.post("/v1/progress/batch", json={"heartbeats": heartbeats}, headers=headers)


def test_batch_applies_items_in_order(client: TestClient, auth_headers: dict) -> None:
    resp = _batch(
        client,
        auth_headers,
        [
            {"lesson_id": "welcome", "current_position": 30, "reported_duration": 120},
            {"lesson_id": "welcome", "current_position": 60, "reported_duration": 120},
            {"lesson_id": "variables", "current_position": 45, "reported_duration": 600},
        ],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["updated"] == 3
    assert body["total"] == 3
    assert [r["progress"]["watched_sec"] for r in body["results"]] == [30, 60, 45]

    stored = client.get("/v1/lessons/welcome/progress", headers=auth_headers).json()
    assert stored["watched_sec"] == 60


def test_batch_isolates_failing_items(client: TestClient, auth_headers: dict) -> None:
    resp = _batch(
        client,
        auth_headers,
        [
            {"lesson_id": "missing", "current_position": 10, "reported_duration": 100},
            {"lesson_id": "welcome", "current_position": -5, "reported_duration": 120},
            {"lesson_id": "welcome", "current_position": 20, "reported_duration": 120},
        ],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["updated"] == 1
    assert body["total"] == 3
    assert [r["code"] for r in body["results"]] == ["lesson_not_found", "invalid_input", None]
    assert body["results"][2]["progress"]["watched_sec"] == 20


def test_batch_for_unenrolled_learner_updates_nothing(client: TestClient) -> None:
    stranger = {"Authorization": f"Bearer {mint_token('stranger')}"}
    resp = _batch(
        client,
        stranger,
        [{"lesson_id": "welcome", "current_position": 10, "reported_duration": 120}],
    )
    assert resp.status_code == 200
    assert resp.json()["updated"] == 0
    assert resp.json()["results"][0]["code"] == "not_enrolled"


def test_batch_rejects_empty_and_oversized_lists(client: TestClient, auth_headers: dict) -> None:
    assert _batch(client, auth_headers, []).status_code == 400
    item = {"lesson_id": "welcome", "current_position": 1, "reported_duration": 120}
    assert _batch(client, auth_headers, [item] * 51).status_code == 400


def test_batch_requires_auth(client: TestClient) -> None:
    item = {"lesson_id": "welcome", "current_position": 1, "reported_duration": 120}
    resp = client.post("/v1/progress/batch", json={"heartbeats": [item]})
    assert resp.status_code == 401
