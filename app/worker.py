"""Background worker process.

RUN:  python -m app.worker

Same image as the API, different command:
  api:    uvicorn app.main:app --host 0.0.0.0 --port 8000
  worker: python -m app.worker

The loop polls every registered queue round-robin, dequeues one task at a
time and dispatches it to the queue's handler.  A failing task is logged
and dropped; both queues tolerate at-most-once delivery.

  playback_sessions   emits each snapshot as a structured ``playback_session``
                      log record, which the log shipper forwards to the
                      analytics pipeline
  course_completion   recomputes one learner's course percentage
                      (admin-requested repair)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.services.progress_service import progress_service
from app.services.task_queue import (
    COURSE_COMPLETION_QUEUE,
    PLAYBACK_SESSIONS_QUEUE,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")
analytics_logger = logging.getLogger("analytics.playback")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(PLAYBACK_SESSIONS_QUEUE)
async def handle_playback_session(payload: dict) -> None:
    analytics_logger.info(
        "playback_session user=%s lesson=%s watch_time=%.1f completion=%.1f",
        payload["user_id"],
        payload["lesson_id"],
        payload["watch_time"],
        payload["completion_rate"],
        extra={
            "user_id": payload["user_id"],
            "lesson_id": payload["lesson_id"],
            "course_id": payload.get("course_id"),
            "session_id": payload.get("session_id"),
        },
    )


@register_handler(COURSE_COMPLETION_QUEUE)
async def handle_course_completion(payload: dict) -> None:
    percentage = await progress_service.recompute_course_completion(
        payload["user_id"], payload["course_id"], trigger="repair"
    )
    logger.info(
        "Repaired course completion user=%s course=%s percentage=%.1f",
        payload["user_id"],
        payload["course_id"],
        percentage,
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_next(queue_name: str, timeout: int = 1) -> bool:
    """Run at most one task from ``queue_name``.  False if the queue was empty."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.debug("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        # TODO: push failed tasks to a dead-letter list for inspection
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        processed = False
        for queue_name in queues:
            processed = await process_next(queue_name) or processed
        if not processed:
            # In-memory dequeue returns at once; avoid a hot loop in dev
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
