from __future__ import annotations

from typing import Protocol

from app.models.lesson import Lesson


class LessonDirectory(Protocol):
    async def resolve_lesson(self, lesson_id: str) -> Lesson | None: ...
    async def list_lesson_ids_for_course(self, course_id: str) -> set[str]: ...


class InMemoryLessonDirectory:
    def __init__(self) -> None:
        self._by_id: dict[str, Lesson] = {}

    async def resolve_lesson(self, lesson_id: str) -> Lesson | None:
        return self._by_id.get(lesson_id)

    async def list_lesson_ids_for_course(self, course_id: str) -> set[str]:
        return {
            lesson.id for lesson in self._by_id.values() if lesson.course_id == course_id
        }

    def add(self, lesson: Lesson) -> None:
        if lesson.id in self._by_id:
            raise ValueError("lesson already exists")
        self._by_id[lesson.id] = lesson

    def clear(self) -> None:
        self._by_id.clear()
