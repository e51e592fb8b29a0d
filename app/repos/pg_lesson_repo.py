"""PostgreSQL implementation of LessonDirectory."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import TransientStoreError
from app.db.tables import CourseModuleRow, LessonRow
from app.models.lesson import Lesson


class PgLessonDirectory:
    """Satisfies the LessonDirectory Protocol by joining lessons to modules."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def resolve_lesson(self, lesson_id: str) -> Lesson | None:
        stmt = (
            select(LessonRow, CourseModuleRow.course_id)
            .join(CourseModuleRow, LessonRow.module_id == CourseModuleRow.id)
            .where(LessonRow.id == lesson_id)
        )
        try:
            async with self._sessions() as session:
                result = (await session.execute(stmt)).one_or_none()
        except DBAPIError as e:
            raise TransientStoreError("lesson lookup failed") from e
        if result is None:
            return None
        row, course_id = result
        return Lesson(
            id=row.id,
            course_id=course_id,
            type=row.type,
            duration_sec=row.duration_sec,
            media_id=row.media_id,
        )

    async def list_lesson_ids_for_course(self, course_id: str) -> set[str]:
        stmt = (
            select(LessonRow.id)
            .join(CourseModuleRow, LessonRow.module_id == CourseModuleRow.id)
            .where(CourseModuleRow.course_id == course_id)
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except DBAPIError as e:
            raise TransientStoreError("course lesson listing failed") from e
        return set(rows)
