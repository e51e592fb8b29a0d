from __future__ import annotations

from dataclasses import dataclass

# Statuses that let a learner record and read progress in the course.
ACCESS_STATUSES = frozenset({"active", "completed"})


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A learner's enrollment in a course.

    Owned by the enrollment/checkout flow; the progress engine only writes
    the derived completion_percentage, the last_accessed_at stamp and the
    one-way move from active to completed.
    """

    user_id: str
    course_id: str
    status: str = "active"  # active|completed|suspended|cancelled
    enrolled_at: int | None = None
    completion_percentage: float = 0.0
    last_accessed_at: int | None = None

    @property
    def grants_access(self) -> bool:
        return self.status in ACCESS_STATUSES
