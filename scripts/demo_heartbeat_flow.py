"""Demo: watch the sample course through heartbeats using FastAPI TestClient.

Run with:
    python scripts/demo_heartbeat_flow.py

Uses the in-memory stores (leave DATABASE_URL and REDIS_URL unset).
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app
from app.services import token_service
from app.services.sample_catalog import SAMPLE_COURSE_ID, SAMPLE_LEARNER_ID


def main() -> None:
    client = TestClient(app)
    headers = {
        "Authorization": f"Bearer {token_service.create_access_token(sub=SAMPLE_LEARNER_ID)}"
    }

    # ── Step 1: play the welcome video in 30s heartbeats ─────────────
    for position in (30, 60, 90, 110):
        r = client.post(
            "/v1/progress/heartbeat",
            json={"lesson_id": "welcome", "current_position": position, "reported_duration": 120},
            headers=headers,
        )
        body = r.json()
        print(
            f"1. heartbeat @{position:>3}s        → {r.status_code}  "
            f"watched={body['watched_sec']:.0f}s pct={body['completion_percentage']:.1f} "
            f"completed={body['completed']}"
        )

    # ── Step 2: rewind; credit stays where it was ───────────────────
    r = client.post(
        "/v1/progress/heartbeat",
        json={"lesson_id": "welcome", "current_position": 10, "reported_duration": 120},
        headers=headers,
    )
    print(f"2. rewind to 10s            → {r.status_code}  watched={r.json()['watched_sec']:.0f}s")

    # ── Step 3: mark the quiz complete ───────────────────────────────
    r = client.post("/v1/lessons/checkpoint-quiz/complete", headers=headers)
    print(f"3. complete quiz            → {r.status_code}  completed={r.json()['completed']}")

    # ── Step 4: course summary ───────────────────────────────────────
    r = client.get(f"/v1/courses/{SAMPLE_COURSE_ID}/progress", headers=headers)
    body = r.json()
    print(
        f"4. course progress          → {r.status_code}  "
        f"{body['lessons_completed']}/{body['lessons_total']} "
        f"({body['completion_percentage']:.1f}%)"
    )

    # ── Step 5: invalid heartbeat ────────────────────────────────────
    r = client.post(
        "/v1/progress/heartbeat",
        json={"lesson_id": "welcome", "current_position": -5, "reported_duration": 120},
        headers=headers,
    )
    print(f"5. negative position        → {r.status_code}  code={r.json()['code']}")


if __name__ == "__main__":
    main()
