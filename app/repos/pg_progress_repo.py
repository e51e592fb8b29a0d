"""PostgreSQL implementation of ProgressStore.

Each call runs in its own short transaction, so a successful upsert() is
committed before the caller moves on to telemetry or derived writes.

Compare-and-swap is expressed as conditional statements, and the row lock
serializes writers for the same (user_id, lesson_id):

  insert:  INSERT ... ON CONFLICT (user_id, lesson_id) DO NOTHING
  update:  UPDATE ... WHERE user_id = ? AND lesson_id = ? AND version = ?

A rowcount of 0 means another writer got there first.  Under READ
COMMITTED the losing UPDATE waits for the winner's commit, re-checks the
predicate, and matches nothing; the caller then re-reads and recomputes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import TransientStoreError, VersionConflictError
from app.db.tables import LessonProgressRow
from app.models.progress import ProgressRecord


class PgProgressStore:
    """Satisfies the ProgressStore Protocol using PostgreSQL."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, user_id: str, lesson_id: str) -> ProgressRecord | None:
        stmt = (
            select(LessonProgressRow)
            .where(LessonProgressRow.user_id == user_id)
            .where(LessonProgressRow.lesson_id == lesson_id)
        )
        try:
            async with self._sessions() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                return _row_to_record(row) if row is not None else None
        except DBAPIError as e:
            raise TransientStoreError("progress read failed") from e

    async def upsert(
        self, record: ProgressRecord, expected_version: int | None
    ) -> ProgressRecord:
        new_version = (expected_version or 0) + 1
        values = {
            "course_id": record.course_id,
            "watched_sec": record.watched_sec,
            "last_position": record.last_position,
            "completed": record.completed,
            "completed_at": record.completed_at,
            "duration_sec": record.duration_sec,
            "updated_at": record.updated_at,
            "version": new_version,
        }

        if expected_version is None:
            stmt = (
                pg_insert(LessonProgressRow)
                .values(user_id=record.user_id, lesson_id=record.lesson_id, **values)
                .on_conflict_do_nothing(index_elements=["user_id", "lesson_id"])
            )
        else:
            stmt = (
                update(LessonProgressRow)
                .where(LessonProgressRow.user_id == record.user_id)
                .where(LessonProgressRow.lesson_id == record.lesson_id)
                .where(LessonProgressRow.version == expected_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

        try:
            async with self._sessions.begin() as session:
                result = await session.execute(stmt)
                matched = result.rowcount
        except IntegrityError:
            # Catalog and progress disagree about the lesson: not retryable
            raise
        except DBAPIError as e:
            raise TransientStoreError("progress write failed") from e

        if matched == 0:
            raise VersionConflictError(record.user_id, record.lesson_id, expected_version)

        return replace(record, version=new_version)

    async def count_completed(self, user_id: str, lesson_ids: Iterable[str]) -> int:
        ids = list(set(lesson_ids))
        if not ids:
            return 0
        stmt = (
            select(func.count())
            .select_from(LessonProgressRow)
            .where(LessonProgressRow.user_id == user_id)
            .where(LessonProgressRow.lesson_id.in_(ids))
            .where(LessonProgressRow.completed.is_(True))
        )
        try:
            async with self._sessions() as session:
                return int((await session.execute(stmt)).scalar_one())
        except DBAPIError as e:
            raise TransientStoreError("completed lesson count failed") from e

    async def list_for_course(self, user_id: str, course_id: str) -> list[ProgressRecord]:
        stmt = (
            select(LessonProgressRow)
            .where(LessonProgressRow.user_id == user_id)
            .where(LessonProgressRow.course_id == course_id)
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [_row_to_record(r) for r in rows]
        except DBAPIError as e:
            raise TransientStoreError("course progress read failed") from e


def _row_to_record(row: LessonProgressRow) -> ProgressRecord:
    return ProgressRecord(
        user_id=row.user_id,
        lesson_id=row.lesson_id,
        course_id=row.course_id,
        watched_sec=row.watched_sec,
        last_position=row.last_position,
        completed=row.completed,
        completed_at=row.completed_at,
        duration_sec=row.duration_sec,
        updated_at=row.updated_at,
        version=row.version,
    )
