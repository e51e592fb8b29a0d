from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api.dependencies import require_role
from app.models.principal import Principal
from app.services.task_queue import COURSE_COMPLETION_QUEUE, task_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class RecomputeIn(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    course_id: str = Field(min_length=1, max_length=64)


class TaskOut(BaseModel):
    task_id: str
    queue: str


@router.post(
    "/course-completion/recompute",
    response_model=TaskOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_course_completion_repair(
    body: RecomputeIn,
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> TaskOut:
    """Queue a recompute for a learner whose course percentage drifted.

    The worker runs it with trigger=repair; the response only confirms
    the task was accepted.
    """
    task = await task_queue.enqueue(
        COURSE_COMPLETION_QUEUE,
        {"user_id": body.user_id, "course_id": body.course_id},
    )
    logger.info(
        "Course completion repair queued by admin=%s user=%s course=%s task=%s",
        principal.user_id,
        body.user_id,
        body.course_id,
        task.id,
    )
    return TaskOut(task_id=task.id, queue=task.queue)
