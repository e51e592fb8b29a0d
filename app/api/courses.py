"""Course-level progress endpoints.

  POST /v1/courses/{course_id}/completion   recompute and store the percentage
  GET  /v1/courses/{course_id}/progress     per-lesson checklist (cached)
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.dependencies import get_progress_service, require_user
from app.models.principal import Principal
from app.models.progress import CourseProgress
from app.services.progress_service import ProgressService

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class CourseCompletionOut(BaseModel):
    course_id: str
    completion_percentage: float


class LessonProgressOut(BaseModel):
    lesson_id: str
    watched_sec: float
    last_position: float
    completed: bool
    completed_at: int | None = None


class CourseProgressOut(BaseModel):
    course_id: str
    lessons_total: int
    lessons_completed: int
    completion_percentage: float
    lessons: list[LessonProgressOut]

    @classmethod
    def from_summary(cls, summary: CourseProgress) -> CourseProgressOut:
        return cls(
            course_id=summary.course_id,
            lessons_total=summary.lessons_total,
            lessons_completed=summary.lessons_completed,
            completion_percentage=summary.completion_percentage,
            lessons=[
                LessonProgressOut(
                    lesson_id=e.lesson_id,
                    watched_sec=e.watched_sec,
                    last_position=e.last_position,
                    completed=e.completed,
                    completed_at=e.completed_at,
                )
                for e in summary.lessons
            ],
        )


@router.post("/{course_id}/completion", response_model=CourseCompletionOut)
async def recompute_completion(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[ProgressService, Depends(get_progress_service)],
) -> CourseCompletionOut:
    percentage = await service.recompute_course_completion(principal.user_id, course_id)
    return CourseCompletionOut(course_id=course_id, completion_percentage=percentage)


@router.get("/{course_id}/progress", response_model=CourseProgressOut)
async def get_course_progress(
    course_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[ProgressService, Depends(get_progress_service)],
) -> CourseProgressOut:
    summary = await service.get_course_progress(principal.user_id, course_id)
    return CourseProgressOut.from_summary(summary)
