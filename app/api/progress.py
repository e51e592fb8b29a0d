"""Lesson progress endpoints.

  POST /v1/progress/heartbeat              player heartbeat -> updated view
  POST /v1/progress/batch                  queued heartbeats (auto-save, page unload)
  GET  /v1/lessons/{lesson_id}/progress    current view (zero state if none)
  POST /v1/lessons/{lesson_id}/complete    manual completion, idempotent

The learner is always the token subject; a learner can only read or move
their own progress.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.dependencies import get_progress_service, require_user
from app.core.errors import ProgressError
from app.models.principal import Principal
from app.models.progress import ProgressView
from app.services.progress_service import ProgressService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["progress"])

MAX_BATCH_SIZE = 50


class HeartbeatIn(BaseModel):
    lesson_id: str = Field(min_length=1, max_length=64)
    current_position: float
    reported_duration: float
    session_id: str | None = Field(default=None, max_length=128)


class HeartbeatBatchIn(BaseModel):
    heartbeats: list[HeartbeatIn] = Field(min_length=1, max_length=MAX_BATCH_SIZE)


class ProgressOut(BaseModel):
    watched_sec: float
    last_position: float
    completion_percentage: float
    completed: bool
    completed_at: int | None = None

    @classmethod
    def from_view(cls, view: ProgressView) -> ProgressOut:
        return cls(
            watched_sec=view.watched_sec,
            last_position=view.last_position,
            completion_percentage=view.completion_percentage,
            completed=view.completed,
            completed_at=view.completed_at,
        )


@router.post("/v1/progress/heartbeat", response_model=ProgressOut)
async def post_heartbeat(
    body: HeartbeatIn,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[ProgressService, Depends(get_progress_service)],
) -> ProgressOut:
    view = await service.process_heartbeat(
        principal.user_id,
        body.lesson_id,
        body.current_position,
        body.reported_duration,
        session_id=body.session_id,
    )
    return ProgressOut.from_view(view)


@router.get("/v1/lessons/{lesson_id}/progress", response_model=ProgressOut)
async def get_lesson_progress(
    lesson_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[ProgressService, Depends(get_progress_service)],
) -> ProgressOut:
    view = await service.get_progress(principal.user_id, lesson_id)
    return ProgressOut.from_view(view)


@router.post("/v1/lessons/{lesson_id}/complete", response_model=ProgressOut)
async def complete_lesson(
    lesson_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[ProgressService, Depends(get_progress_service)],
) -> ProgressOut:
    view = await service.mark_complete(principal.user_id, lesson_id)
    return ProgressOut.from_view(view)


class HeartbeatResultOut(BaseModel):
    lesson_id: str
    progress: ProgressOut | None = None
    code: str | None = None


class HeartbeatBatchOut(BaseModel):
    updated: int
    total: int
    results: list[HeartbeatResultOut]


@router.post("/v1/progress/batch", response_model=HeartbeatBatchOut)
async def post_heartbeat_batch(
    body: HeartbeatBatchIn,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[ProgressService, Depends(get_progress_service)],
) -> HeartbeatBatchOut:
    """Apply heartbeats in order; one bad item does not sink the rest.

    Items run one after another so several beats for the same lesson land
    in the order the player recorded them.
    """
    results: list[HeartbeatResultOut] = []
    for item in body.heartbeats:
        try:
            view = await service.process_heartbeat(
                principal.user_id,
                item.lesson_id,
                item.current_position,
                item.reported_duration,
                session_id=item.session_id,
            )
        except ProgressError as exc:
            logger.info(
                "Batch heartbeat rejected user=%s lesson=%s code=%s",
                principal.user_id,
                item.lesson_id,
                exc.code,
            )
            results.append(HeartbeatResultOut(lesson_id=item.lesson_id, code=exc.code))
            continue
        results.append(
            HeartbeatResultOut(lesson_id=item.lesson_id, progress=ProgressOut.from_view(view))
        )

    updated = sum(1 for r in results if r.progress is not None)
    return HeartbeatBatchOut(updated=updated, total=len(results), results=results)
