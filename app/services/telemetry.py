"""Playback telemetry sinks.

The progress engine hands each post-heartbeat snapshot to a TelemetrySink.
Delivery is best-effort: ProgressService bounds the call with a timeout and
swallows any failure, so a sink may raise freely.

QueueTelemetrySink pushes the event onto the ``playback_sessions`` task
queue and lets the worker forward it to the analytics pipeline, which
keeps the request path to a single LPUSH.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from app.models.telemetry import PlaybackSession
from app.services.task_queue import PLAYBACK_SESSIONS_QUEUE, TaskQueue, task_queue


@runtime_checkable
class TelemetrySink(Protocol):
    async def record_playback_session(self, event: PlaybackSession) -> None: ...


class InMemoryTelemetrySink:
    """Collects events in a list; used by tests to inspect what was sent."""

    def __init__(self) -> None:
        self.events: list[PlaybackSession] = []

    async def record_playback_session(self, event: PlaybackSession) -> None:
        self.events.append(event)


class QueueTelemetrySink:
    def __init__(self, queue: TaskQueue, queue_name: str = PLAYBACK_SESSIONS_QUEUE) -> None:
        self._queue = queue
        self._queue_name = queue_name

    async def record_playback_session(self, event: PlaybackSession) -> None:
        await self._queue.enqueue(self._queue_name, event.to_payload())


telemetry_sink: TelemetrySink = QueueTelemetrySink(task_queue)
