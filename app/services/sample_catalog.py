"""Sample course for development runs without a database.

Seeded into the in-memory directory at import so the demo script and a
fresh ``uvicorn app.main:app`` have something to watch.
"""

from __future__ import annotations

from app.models.enrollment import Enrollment
from app.models.lesson import Lesson
from app.repos.enrollment_repo import InMemoryEnrollmentStore
from app.repos.lesson_repo import InMemoryLessonDirectory

SAMPLE_COURSE_ID = "intro-to-python"
SAMPLE_LEARNER_ID = "learner-1"

SAMPLE_LESSONS = (
    Lesson(id="welcome", course_id=SAMPLE_COURSE_ID, duration_sec=120.0, media_id="vid-welcome"),
    Lesson(id="variables", course_id=SAMPLE_COURSE_ID, duration_sec=600.0, media_id="vid-variables"),
    Lesson(id="control-flow", course_id=SAMPLE_COURSE_ID, duration_sec=900.0, media_id="vid-control-flow"),
    Lesson(id="checkpoint-quiz", course_id=SAMPLE_COURSE_ID, type="quiz"),
)


def seed_sample_course(
    lessons: InMemoryLessonDirectory, enrollments: InMemoryEnrollmentStore
) -> None:
    for lesson in SAMPLE_LESSONS:
        lessons.add(lesson)
    enrollments.add(
        Enrollment(user_id=SAMPLE_LEARNER_ID, course_id=SAMPLE_COURSE_ID, enrolled_at=0)
    )
