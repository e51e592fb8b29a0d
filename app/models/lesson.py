from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Lesson:
    """A lesson as the lesson directory describes it.

    duration_sec is None for lesson types without a playback timeline
    (quizzes, assignments, reading acknowledgements).
    """

    id: str
    course_id: str
    type: str = "video"  # video|quiz|assignment|reading
    duration_sec: float | None = None
    media_id: str | None = None

    @property
    def is_timed(self) -> bool:
        return self.duration_sec is not None and self.duration_sec > 0
