from __future__ import annotations

from dataclasses import asdict, dataclass, field


@dataclass(frozen=True, slots=True)
class PlaybackSession:
    """Analytics snapshot emitted after each persisted heartbeat."""

    user_id: str
    lesson_id: str
    course_id: str
    watch_time: float
    completion_rate: float
    session_id: str | None = None
    media_id: str | None = None
    metadata: dict = field(default_factory=dict)

    def to_payload(self) -> dict:
        return asdict(self)
