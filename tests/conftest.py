from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from app.models.enrollment import Enrollment  # noqa: E402
from app.repos.enrollment_repo import InMemoryEnrollmentStore  # noqa: E402
from app.repos.lesson_repo import InMemoryLessonDirectory  # noqa: E402
from app.repos.progress_repo import InMemoryProgressStore  # noqa: E402
from app.services import progress_service as progress_module  # noqa: E402
from app.services import token_service  # noqa: E402
from app.services.cache import InMemoryCacheService, cache_service  # noqa: E402
from app.services.progress_service import ProgressService  # noqa: E402
from app.services.sample_catalog import SAMPLE_LEARNER_ID, seed_sample_course  # noqa: E402
from app.services.task_queue import task_queue  # noqa: E402
from app.services.telemetry import InMemoryTelemetrySink  # noqa: E402

FIXED_NOW = 1_760_000_000


@pytest.fixture(autouse=True)
def reset_progress_state() -> None:
    """Empty the shared in-memory stores and re-seed the sample course."""
    for store in (
        progress_module.lesson_directory,
        progress_module.progress_store,
        progress_module.enrollment_store,
    ):
        if hasattr(store, "clear"):
            store.clear()  # type: ignore[union-attr]
    if isinstance(progress_module.lesson_directory, InMemoryLessonDirectory):
        seed_sample_course(
            progress_module.lesson_directory,
            progress_module.enrollment_store,  # type: ignore[arg-type]
        )


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = SAMPLE_LEARNER_ID,
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


@pytest.fixture
def token() -> str:
    """Token for the seeded learner."""
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(username="test-admin", roles=["admin"])


@pytest.fixture
def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Service-level helpers: a ProgressService over fresh in-memory stores
# ---------------------------------------------------------------------------


class ServiceHarness:
    """Fresh stores plus a service wired to them, with a fixed clock."""

    def __init__(self, **overrides) -> None:
        self.lessons = InMemoryLessonDirectory()
        self.progress = overrides.pop("progress", None) or InMemoryProgressStore()
        self.enrollments = overrides.pop("enrollments", None) or InMemoryEnrollmentStore()
        self.telemetry = overrides.pop("telemetry", None) or InMemoryTelemetrySink()
        self.cache = InMemoryCacheService()
        self.now = FIXED_NOW
        self.service = ProgressService(
            lessons=self.lessons,
            progress=self.progress,
            enrollments=self.enrollments,
            telemetry=self.telemetry,
            cache=self.cache,
            clock=lambda: self.now,
            **overrides,
        )

    def enroll(self, user_id: str, course_id: str, status: str = "active") -> None:
        if asyncio.run(self.enrollments.get(user_id, course_id)) is None:
            self.enrollments.add(
                Enrollment(user_id=user_id, course_id=course_id, status=status)
            )


@pytest.fixture
def harness() -> ServiceHarness:
    return ServiceHarness()
