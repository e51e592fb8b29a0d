"""Error taxonomy for progress tracking.

Callers (the HTTP layer, the worker) decide retry behaviour from the type:

  InvalidInputError    caller must fix the request          -> 400
  NotEnrolledError     no enrollment granting access        -> 403
  LessonNotFoundError  unknown lesson                       -> 404
  TransientStoreError  timeout/conflict, retry with backoff -> 503

VersionConflictError never leaves the service layer: it is the store's
signal that a compare-and-swap lost a race, and the service retries it.
"""

from __future__ import annotations


class ProgressError(Exception):
    """Base class for errors surfaced by the progress engine."""

    code = "progress_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidInputError(ProgressError, ValueError):
    code = "invalid_input"


class LessonNotFoundError(ProgressError, LookupError):
    code = "lesson_not_found"

    def __init__(self, lesson_id: str) -> None:
        self.lesson_id = lesson_id
        super().__init__(f"lesson {lesson_id!r} not found")


class NotEnrolledError(ProgressError):
    code = "not_enrolled"

    def __init__(self, course_id: str) -> None:
        self.course_id = course_id
        super().__init__(f"not enrolled in course {course_id!r}")


class TransientStoreError(ProgressError):
    code = "store_unavailable"


class VersionConflictError(Exception):
    """A conditional write found a different version than expected."""

    def __init__(self, user_id: str, lesson_id: str, expected: int | None) -> None:
        self.user_id = user_id
        self.lesson_id = lesson_id
        self.expected = expected
        super().__init__(
            f"progress ({user_id}, {lesson_id}) changed since version {expected}"
        )
