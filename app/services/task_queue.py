"""Background task queue on Redis lists.

Two kinds of work leave the request path:

  playback_sessions   analytics snapshots produced after each heartbeat.
                      Losing one costs a data point, never learner progress.
  course_completion   repair recomputes of a learner's course percentage,
                      requested by an administrator.

Producer (API):    LPUSH a JSON task onto ``tasks:<queue>``, return at once.
Consumer (worker): BRPOP from the same list, dispatch to a handler, loop.

HEAD-in, TAIL-out gives FIFO order.  Delivery is at-most-once: a worker
that dies mid-task loses that task.  Both queues tolerate that, since a
repair can be re-requested and analytics are best-effort by contract.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from app.core.metrics import QUEUE_DEPTH
from app.db.redis import redis_pool

PLAYBACK_SESSIONS_QUEUE = "playback_sessions"
COURSE_COMPLETION_QUEUE = "course_completion"


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:      unique identifier for tracking and logging
    queue:   which queue (and therefore which handler) it belongs to
    payload: JSON-serializable handler input
    """

    id: str
    queue: str
    payload: dict

    def to_json(self) -> str:
        return json.dumps({"id": self.id, "queue": self.queue, "payload": self.payload})

    @staticmethod
    def from_json(raw: str) -> Task:
        data = json.loads(raw)
        return Task(id=data["id"], queue=data["queue"], payload=data["payload"])


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-memory task queue for tests and single-process dev runs."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        pending = self._queues.setdefault(queue, [])
        pending.append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        pending = self._queues.get(queue, [])
        if not pending:
            return None
        task = pending.pop(0)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))

    def clear(self) -> None:
        self._queues.clear()


class RedisTaskQueue:
    """Redis-backed task queue using LPUSH/BRPOP."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        depth = await self._redis.lpush(f"{self._PREFIX}{queue}", task.to_json())
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # BRPOP blocks up to `timeout` seconds; None means the queue stayed empty
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, task_json = result
        return Task.from_json(task_json)

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
