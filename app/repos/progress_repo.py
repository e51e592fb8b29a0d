from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol

from app.core.errors import VersionConflictError
from app.models.progress import ProgressRecord


class ProgressStore(Protocol):
    """Keyed store of ProgressRecords.

    upsert() is a compare-and-swap: with expected_version=None it only
    inserts (the key must be absent); otherwise it only updates when the
    stored version still equals expected_version.  Either way a lost race
    raises VersionConflictError and nothing is written.  On success the
    returned record carries the new version.
    """

    async def get(self, user_id: str, lesson_id: str) -> ProgressRecord | None: ...
    async def upsert(
        self, record: ProgressRecord, expected_version: int | None
    ) -> ProgressRecord: ...
    async def count_completed(self, user_id: str, lesson_ids: Iterable[str]) -> int: ...
    async def list_for_course(
        self, user_id: str, course_id: str
    ) -> list[ProgressRecord]: ...


class InMemoryProgressStore:
    """Dict-backed store for dev and tests.

    Each method body runs without awaiting, so on a single event loop the
    version check and the write cannot interleave with another coroutine.
    """

    def __init__(self) -> None:
        self._store: dict[tuple[str, str], ProgressRecord] = {}

    async def get(self, user_id: str, lesson_id: str) -> ProgressRecord | None:
        return self._store.get((user_id, lesson_id))

    async def upsert(
        self, record: ProgressRecord, expected_version: int | None
    ) -> ProgressRecord:
        key = (record.user_id, record.lesson_id)
        current = self._store.get(key)
        current_version = current.version if current is not None else None
        if current_version != expected_version:
            raise VersionConflictError(record.user_id, record.lesson_id, expected_version)

        stored = replace(record, version=(expected_version or 0) + 1)
        self._store[key] = stored
        return stored

    async def count_completed(self, user_id: str, lesson_ids: Iterable[str]) -> int:
        return sum(
            1
            for lesson_id in set(lesson_ids)
            if (r := self._store.get((user_id, lesson_id))) is not None and r.completed
        )

    async def list_for_course(self, user_id: str, course_id: str) -> list[ProgressRecord]:
        return [
            r
            for r in self._store.values()
            if r.user_id == user_id and r.course_id == course_id
        ]

    def clear(self) -> None:
        self._store.clear()
