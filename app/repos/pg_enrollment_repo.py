"""PostgreSQL implementation of EnrollmentStore."""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import TransientStoreError
from app.db.tables import EnrollmentRow
from app.models.enrollment import Enrollment


class PgEnrollmentStore:
    """Satisfies the EnrollmentStore Protocol using PostgreSQL.

    Writes are single-row UPDATEs in their own transaction; a learner with
    no enrollment row matches nothing and the call returns False.  The
    completed transition is guarded on status so only one caller wins it.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, user_id: str, course_id: str) -> Enrollment | None:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.user_id == user_id)
            .where(EnrollmentRow.course_id == course_id)
        )
        try:
            async with self._sessions() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except DBAPIError as e:
            raise TransientStoreError("enrollment read failed") from e
        if row is None:
            return None
        return Enrollment(
            user_id=row.user_id,
            course_id=row.course_id,
            status=row.status,
            enrolled_at=row.enrolled_at,
            completion_percentage=row.completion_percentage,
            last_accessed_at=row.last_accessed_at,
        )

    async def set_completion_percentage(
        self, user_id: str, course_id: str, value: float
    ) -> bool:
        return await self._update(user_id, course_id, completion_percentage=value)

    async def touch(self, user_id: str, course_id: str, at: int) -> bool:
        return await self._update(user_id, course_id, last_accessed_at=at)

    async def mark_completed(self, user_id: str, course_id: str) -> bool:
        return await self._update(
            user_id, course_id, EnrollmentRow.status == "active", status="completed"
        )

    async def _update(self, user_id: str, course_id: str, *conditions, **values) -> bool:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.user_id == user_id)
            .where(EnrollmentRow.course_id == course_id)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._sessions.begin() as session:
                result = await session.execute(stmt)
                return result.rowcount > 0
        except DBAPIError as e:
            raise TransientStoreError("enrollment write failed") from e
