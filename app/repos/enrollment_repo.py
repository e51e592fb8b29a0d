from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from app.models.enrollment import Enrollment


class EnrollmentStore(Protocol):
    async def get(self, user_id: str, course_id: str) -> Enrollment | None: ...
    async def set_completion_percentage(
        self, user_id: str, course_id: str, value: float
    ) -> bool: ...
    async def touch(self, user_id: str, course_id: str, at: int) -> bool: ...
    async def mark_completed(self, user_id: str, course_id: str) -> bool: ...


class InMemoryEnrollmentStore:
    """Writers return False (and write nothing) when the learner has no
    enrollment for the course, matching an UPDATE that hits no rows.

    mark_completed only moves an active enrollment; it returns True on that
    transition alone, so callers can act on the first completion once.
    """

    def __init__(self) -> None:
        self._store: dict[tuple[str, str], Enrollment] = {}

    async def get(self, user_id: str, course_id: str) -> Enrollment | None:
        return self._store.get((user_id, course_id))

    async def set_completion_percentage(
        self, user_id: str, course_id: str, value: float
    ) -> bool:
        key = (user_id, course_id)
        existing = self._store.get(key)
        if existing is None:
            return False
        self._store[key] = replace(existing, completion_percentage=value)
        return True

    async def touch(self, user_id: str, course_id: str, at: int) -> bool:
        key = (user_id, course_id)
        existing = self._store.get(key)
        if existing is None:
            return False
        self._store[key] = replace(existing, last_accessed_at=at)
        return True

    async def mark_completed(self, user_id: str, course_id: str) -> bool:
        key = (user_id, course_id)
        existing = self._store.get(key)
        if existing is None or existing.status != "active":
            return False
        self._store[key] = replace(existing, status="completed")
        return True

    def add(self, enrollment: Enrollment) -> None:
        key = (enrollment.user_id, enrollment.course_id)
        if key in self._store:
            raise ValueError("enrollment already exists")
        self._store[key] = enrollment

    def clear(self) -> None:
        self._store.clear()
