from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """Durable watch state for one (user, lesson) pair.

    Invariants held by ProgressService, the only writer:
      - watched_sec never exceeds duration_sec and, for a stable duration,
        never decreases
      - completed goes False -> True once and stays True
      - completed_at is set on that transition and never changes again

    last_position is just where the player is now; a rewind lowers it.
    version increases by one on every write and drives compare-and-swap.
    """

    user_id: str
    lesson_id: str
    course_id: str
    watched_sec: float = 0.0
    last_position: float = 0.0
    completed: bool = False
    completed_at: int | None = None
    duration_sec: float | None = None
    updated_at: int | None = None
    version: int = 0

    @staticmethod
    def new(*, user_id: str, lesson_id: str, course_id: str) -> ProgressRecord:
        return ProgressRecord(user_id=user_id, lesson_id=lesson_id, course_id=course_id)

    @property
    def completion_percentage(self) -> float:
        if self.duration_sec:
            return min(100.0, 100.0 * self.watched_sec / self.duration_sec)
        return 100.0 if self.completed else 0.0


@dataclass(frozen=True, slots=True)
class ProgressView:
    """What callers see after a heartbeat, a manual completion or a read."""

    watched_sec: float
    last_position: float
    completion_percentage: float
    completed: bool
    completed_at: int | None = None

    @staticmethod
    def zero() -> ProgressView:
        return ProgressView(
            watched_sec=0.0,
            last_position=0.0,
            completion_percentage=0.0,
            completed=False,
        )

    @staticmethod
    def of(
        record: ProgressRecord, completion_percentage: float | None = None
    ) -> ProgressView:
        return ProgressView(
            watched_sec=record.watched_sec,
            last_position=record.last_position,
            completion_percentage=(
                record.completion_percentage
                if completion_percentage is None
                else completion_percentage
            ),
            completed=record.completed,
            completed_at=record.completed_at,
        )


@dataclass(frozen=True, slots=True)
class CourseProgress:
    """Per-course read model: one entry per lesson plus the aggregate.

    Lessons without a progress record appear with the zero state so the
    course player can render every row.
    """

    user_id: str
    course_id: str
    lessons_total: int
    lessons_completed: int
    completion_percentage: float
    lessons: tuple[LessonProgressEntry, ...] = ()


@dataclass(frozen=True, slots=True)
class LessonProgressEntry:
    lesson_id: str
    watched_sec: float = 0.0
    last_position: float = 0.0
    completed: bool = False
    completed_at: int | None = None
