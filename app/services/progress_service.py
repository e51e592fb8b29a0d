"""Progress tracking and completion engine.

A heartbeat is the player's periodic "I am at position P of a lesson that
is D seconds long".  From a stream of them this module keeps, per
(user, lesson):

  watched_sec     credited viewing time; only forward playback counts
  last_position   where the player is now (a rewind lowers it)
  completed       set once watched/duration reaches the threshold, never unset

and, per (user, course), the percentage of lessons completed.

Crediting a heartbeat
---------------------
  first heartbeat:      increment = min(P, D)
  P <= last_position:   increment = 0            (pause, replay, rewind)
  otherwise:            increment = min(P - last_position, D - watched)
                        floored at 0

Seeking forward therefore credits the skipped span, but the total is capped
at the reported duration so watched_sec can never exceed the lesson.  A
later heartbeat reporting a shorter duration clamps the credit down to it;
with a stable duration the credit only ever grows.

Concurrency
-----------
Two heartbeats for the same key can race (two tabs, client retries).  Every
write is a read-modify-compare-and-swap on ProgressRecord.version; a lost
race re-reads and recomputes, so both heartbeats' effects survive.  After
``max_retries`` lost races the call fails with TransientStoreError and the
client retries later; the computation is idempotent under replay.

Side effects
------------
Heartbeats, reads and manual completion require an enrollment in the
lesson's course that is active or completed.

Once the record is persisted:
  - telemetry is awaited inline but bounded by ``telemetry_timeout``; the
    queue sink is a single LPUSH, and failures or timeouts are counted and
    dropped
  - the enrollment's last_accessed_at is touched
  - on a completion transition the course percentage is recomputed
  - the cached course summary is invalidated
None of these can undo or fail the persisted heartbeat.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Callable
from dataclasses import asdict, replace
from datetime import UTC, datetime

from app.core.config import DEFAULT_COMPLETION_THRESHOLD, SETTINGS, Settings
from app.core.errors import (
    InvalidInputError,
    LessonNotFoundError,
    NotEnrolledError,
    TransientStoreError,
    VersionConflictError,
)
from app.core.metrics import (
    COURSE_COMPLETION_RECOMPUTES,
    COURSE_COMPLETIONS,
    HEARTBEATS_PROCESSED,
    LESSON_COMPLETIONS,
    PROGRESS_UPSERT_CONFLICTS,
    TELEMETRY_FAILURES,
)
from app.db.engine import async_session_factory
from app.models.lesson import Lesson
from app.models.progress import (
    CourseProgress,
    LessonProgressEntry,
    ProgressRecord,
    ProgressView,
)
from app.models.telemetry import PlaybackSession
from app.repos.enrollment_repo import EnrollmentStore, InMemoryEnrollmentStore
from app.repos.lesson_repo import InMemoryLessonDirectory, LessonDirectory
from app.repos.pg_enrollment_repo import PgEnrollmentStore
from app.repos.pg_lesson_repo import PgLessonDirectory
from app.repos.pg_progress_repo import PgProgressStore
from app.repos.progress_repo import InMemoryProgressStore, ProgressStore
from app.services.cache import CacheService, cache_service, course_progress_key
from app.services.sample_catalog import seed_sample_course
from app.services.telemetry import TelemetrySink, telemetry_sink

logger = logging.getLogger(__name__)

Clock = Callable[[], int]
Mutation = Callable[[ProgressRecord | None], ProgressRecord | None]


def utc_now() -> int:
    return int(datetime.now(UTC).timestamp())


def validate_heartbeat(current_position: float, reported_duration: float) -> None:
    """Raise InvalidInputError unless both values are usable numbers."""
    for name, value in (
        ("current_position", current_position),
        ("reported_duration", reported_duration),
    ):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidInputError(f"{name} must be a number")
        if not math.isfinite(value):
            raise InvalidInputError(f"{name} must be finite")
    if current_position < 0:
        raise InvalidInputError("current_position must be >= 0")
    if reported_duration <= 0:
        raise InvalidInputError("reported_duration must be > 0")


def forward_increment(
    record: ProgressRecord | None, current_position: float, duration: float
) -> float:
    """Viewing time a heartbeat adds on top of what is already credited."""
    if record is None:
        return min(current_position, duration)
    if current_position <= record.last_position:
        return 0.0
    return max(
        0.0,
        min(current_position - record.last_position, duration - record.watched_sec),
    )


def completion_percentage(watched_sec: float, duration: float) -> float:
    return min(100.0, 100.0 * watched_sec / duration)


class ProgressService:
    """Owns every write to progress records and course completion.

    Collaborators are injected so the API can hand in Postgres-backed
    stores and tests can hand in the in-memory ones.
    """

    def __init__(
        self,
        *,
        lessons: LessonDirectory,
        progress: ProgressStore,
        enrollments: EnrollmentStore,
        telemetry: TelemetrySink,
        cache: CacheService | None = None,
        completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD,
        pin_lesson_duration: bool = False,
        max_retries: int = 5,
        telemetry_timeout: float = 0.5,
        cache_ttl: int = 300,
        clock: Clock = utc_now,
    ) -> None:
        self._lessons = lessons
        self._progress = progress
        self._enrollments = enrollments
        self._telemetry = telemetry
        self._cache = cache
        self._threshold = completion_threshold
        self._pin_lesson_duration = pin_lesson_duration
        self._max_retries = max_retries
        self._telemetry_timeout = telemetry_timeout
        self._cache_ttl = cache_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, **collaborators) -> ProgressService:
        return cls(
            completion_threshold=settings.completion_threshold,
            pin_lesson_duration=settings.pin_lesson_duration,
            max_retries=settings.progress_upsert_max_retries,
            telemetry_timeout=settings.telemetry_timeout_seconds,
            cache_ttl=settings.progress_cache_ttl,
            **collaborators,
        )

    # ------------------------------------------------------------------
    # Lesson progress
    # ------------------------------------------------------------------

    async def process_heartbeat(
        self,
        user_id: str,
        lesson_id: str,
        current_position: float,
        reported_duration: float,
        session_id: str | None = None,
    ) -> ProgressView:
        try:
            validate_heartbeat(current_position, reported_duration)
        except InvalidInputError:
            HEARTBEATS_PROCESSED.labels(outcome="invalid").inc()
            raise

        try:
            lesson = await self._resolve(lesson_id)
        except LessonNotFoundError:
            HEARTBEATS_PROCESSED.labels(outcome="not_found").inc()
            raise

        try:
            await self._require_enrollment(user_id, lesson.course_id)
        except NotEnrolledError:
            HEARTBEATS_PROCESSED.labels(outcome="not_enrolled").inc()
            raise

        duration = self._effective_duration(lesson, reported_duration)
        position = float(current_position)
        now = self._clock()

        def advance(existing: ProgressRecord | None) -> ProgressRecord:
            base = existing or ProgressRecord.new(
                user_id=user_id, lesson_id=lesson.id, course_id=lesson.course_id
            )
            increment = forward_increment(existing, position, duration)
            watched = min(base.watched_sec + increment, duration)
            completed = (
                base.completed or completion_percentage(watched, duration) >= self._threshold
            )
            if base.completed:
                completed_at = base.completed_at
            else:
                completed_at = now if completed else None
            return replace(
                base,
                watched_sec=watched,
                last_position=position,
                completed=completed,
                completed_at=completed_at,
                duration_sec=duration,
                updated_at=now,
            )

        try:
            previous, stored = await self._apply(user_id, lesson.id, advance)
        except TransientStoreError:
            HEARTBEATS_PROCESSED.labels(outcome="store_error").inc()
            raise

        HEARTBEATS_PROCESSED.labels(outcome=_heartbeat_outcome(previous, position)).inc()
        logger.debug(
            "Heartbeat user=%s lesson=%s position=%.1f watched=%.1f/%.1f",
            user_id,
            lesson.id,
            position,
            stored.watched_sec,
            duration,
        )
        view = ProgressView.of(stored, completion_percentage(stored.watched_sec, duration))

        await self._emit_playback(
            PlaybackSession(
                user_id=user_id,
                lesson_id=lesson.id,
                course_id=lesson.course_id,
                watch_time=stored.watched_sec,
                completion_rate=view.completion_percentage,
                session_id=session_id,
                media_id=lesson.media_id,
                metadata={
                    "duration": duration,
                    "reported_duration": float(reported_duration),
                    "current_position": position,
                    "is_completed": stored.completed,
                },
            )
        )
        await self._touch_enrollment(user_id, lesson.course_id, now)

        if _became_complete(previous, stored):
            LESSON_COMPLETIONS.labels(source="heartbeat").inc()
            logger.info(
                "Lesson completed by playback user=%s lesson=%s watched=%.1f/%.1f",
                user_id,
                lesson.id,
                stored.watched_sec,
                duration,
            )
            await self._recompute_after_completion(user_id, lesson.course_id)
        else:
            await self._invalidate(user_id, lesson.course_id)

        return view

    async def get_progress(self, user_id: str, lesson_id: str) -> ProgressView:
        lesson = await self._resolve(lesson_id)
        await self._require_enrollment(user_id, lesson.course_id)
        record = await self._progress.get(user_id, lesson.id)
        if record is None:
            return ProgressView.zero()
        return ProgressView.of(record)

    async def mark_complete(self, user_id: str, lesson_id: str) -> ProgressView:
        """Complete a lesson without playback (quizzes, readings, overrides).

        Idempotent: an already completed lesson is returned unchanged.
        Watched time is left as it was, so a half-watched video comes back
        ``completed=True`` with its watched ratio as completion_percentage;
        the percentage reports viewing, ``completed`` reports status.
        """
        lesson = await self._resolve(lesson_id)
        await self._require_enrollment(user_id, lesson.course_id)
        now = self._clock()

        def complete(existing: ProgressRecord | None) -> ProgressRecord | None:
            if existing is not None and existing.completed:
                return None
            base = existing or ProgressRecord.new(
                user_id=user_id, lesson_id=lesson.id, course_id=lesson.course_id
            )
            return replace(base, completed=True, completed_at=now, updated_at=now)

        previous, stored = await self._apply(user_id, lesson.id, complete)

        if _became_complete(previous, stored):
            LESSON_COMPLETIONS.labels(source="manual").inc()
            logger.info("Lesson marked complete user=%s lesson=%s", user_id, lesson.id)
            await self._touch_enrollment(user_id, lesson.course_id, now)
            await self._recompute_after_completion(user_id, lesson.course_id)

        return ProgressView.of(stored)

    # ------------------------------------------------------------------
    # Course completion
    # ------------------------------------------------------------------

    async def recompute_course_completion(
        self, user_id: str, course_id: str, *, trigger: str = "request"
    ) -> float:
        """Set the enrollment's percentage to 100 * completed / total lessons.

        A course with no lessons is 0 and nothing is written.  A learner
        without an enrollment gets the value computed but not stored.  At
        100% an active enrollment moves to ``completed``; that status is
        never reverted, even if lessons are added to the course later.
        """
        lesson_ids = await self._lessons.list_lesson_ids_for_course(course_id)
        if not lesson_ids:
            return 0.0

        completed = await self._progress.count_completed(user_id, lesson_ids)
        percentage = 100.0 * completed / len(lesson_ids)

        if not await self._enrollments.set_completion_percentage(
            user_id, course_id, percentage
        ):
            logger.debug(
                "No enrollment to update user=%s course=%s", user_id, course_id
            )
        elif completed == len(lesson_ids) and await self._enrollments.mark_completed(
            user_id, course_id
        ):
            COURSE_COMPLETIONS.inc()
            logger.info("Course completed user=%s course=%s", user_id, course_id)

        COURSE_COMPLETION_RECOMPUTES.labels(trigger=trigger).inc()
        logger.info(
            "Course completion user=%s course=%s %d/%d (%.1f%%) trigger=%s",
            user_id,
            course_id,
            completed,
            len(lesson_ids),
            percentage,
            trigger,
        )
        await self._invalidate(user_id, course_id)
        return percentage

    async def get_course_progress(self, user_id: str, course_id: str) -> CourseProgress:
        key = course_progress_key(user_id, course_id)
        cached = await self._cache_get(key)
        if cached is not None:
            return _course_progress_from_json(cached)

        lesson_ids = await self._lessons.list_lesson_ids_for_course(course_id)
        records = {
            r.lesson_id: r
            for r in await self._progress.list_for_course(user_id, course_id)
            if r.lesson_id in lesson_ids
        }
        entries = tuple(
            LessonProgressEntry(
                lesson_id=lesson_id,
                watched_sec=r.watched_sec,
                last_position=r.last_position,
                completed=r.completed,
                completed_at=r.completed_at,
            )
            if (r := records.get(lesson_id)) is not None
            else LessonProgressEntry(lesson_id=lesson_id)
            for lesson_id in sorted(lesson_ids)
        )
        completed = sum(1 for e in entries if e.completed)
        summary = CourseProgress(
            user_id=user_id,
            course_id=course_id,
            lessons_total=len(entries),
            lessons_completed=completed,
            completion_percentage=(
                100.0 * completed / len(entries) if entries else 0.0
            ),
            lessons=entries,
        )
        await self._cache_set(key, json.dumps(asdict(summary)))
        return summary

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _resolve(self, lesson_id: str) -> Lesson:
        lesson = await self._lessons.resolve_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        return lesson

    async def _require_enrollment(self, user_id: str, course_id: str) -> None:
        enrollment = await self._enrollments.get(user_id, course_id)
        if enrollment is None or not enrollment.grants_access:
            raise NotEnrolledError(course_id)

    def _effective_duration(self, lesson: Lesson, reported_duration: float) -> float:
        if self._pin_lesson_duration and lesson.is_timed:
            return float(lesson.duration_sec)
        return float(reported_duration)

    async def _apply(
        self, user_id: str, lesson_id: str, mutate: Mutation
    ) -> tuple[ProgressRecord | None, ProgressRecord]:
        """Read, mutate and compare-and-swap until the write lands.

        ``mutate`` returning None means there is nothing to write; the
        existing record is returned as stored.
        """
        for attempt in range(1, self._max_retries + 1):
            existing = await self._progress.get(user_id, lesson_id)
            updated = mutate(existing)
            if updated is None:
                return existing, existing
            try:
                stored = await self._progress.upsert(
                    updated, existing.version if existing is not None else None
                )
            except VersionConflictError:
                PROGRESS_UPSERT_CONFLICTS.inc()
                logger.debug(
                    "Progress write conflict user=%s lesson=%s attempt=%d",
                    user_id,
                    lesson_id,
                    attempt,
                )
                continue
            return existing, stored

        logger.warning(
            "Progress write gave up after %d conflicts user=%s lesson=%s",
            self._max_retries,
            user_id,
            lesson_id,
        )
        raise TransientStoreError("progress record is busy, retry later")

    async def _emit_playback(self, event: PlaybackSession) -> None:
        # Bounded, not fire-and-forget: the response waits at most the timeout.
        try:
            await asyncio.wait_for(
                self._telemetry.record_playback_session(event),
                timeout=self._telemetry_timeout,
            )
        except Exception:
            TELEMETRY_FAILURES.inc()
            logger.warning(
                "Dropped playback telemetry user=%s lesson=%s",
                event.user_id,
                event.lesson_id,
                exc_info=True,
            )

    async def _touch_enrollment(self, user_id: str, course_id: str, now: int) -> None:
        try:
            await self._enrollments.touch(user_id, course_id, now)
        except TransientStoreError:
            logger.warning(
                "Could not update last access user=%s course=%s",
                user_id,
                course_id,
                exc_info=True,
            )

    async def _recompute_after_completion(self, user_id: str, course_id: str) -> None:
        # The lesson is already persisted as completed; a failed recompute
        # is repaired by the next completion or an admin-triggered repair.
        try:
            await self.recompute_course_completion(user_id, course_id, trigger="completion")
        except TransientStoreError:
            logger.warning(
                "Course completion recompute failed user=%s course=%s",
                user_id,
                course_id,
                exc_info=True,
            )
            await self._invalidate(user_id, course_id)

    async def _invalidate(self, user_id: str, course_id: str) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.delete(course_progress_key(user_id, course_id))
        except Exception:
            logger.warning("Cache invalidation failed", exc_info=True)

    async def _cache_get(self, key: str) -> str | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(key)
        except Exception:
            logger.warning("Cache read failed key=%s", key, exc_info=True)
            return None

    async def _cache_set(self, key: str, value: str) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, value, self._cache_ttl)
        except Exception:
            logger.warning("Cache write failed key=%s", key, exc_info=True)


def _heartbeat_outcome(previous: ProgressRecord | None, position: float) -> str:
    if previous is None or position > previous.last_position:
        return "advanced"
    if position == previous.last_position:
        return "stalled"
    return "rewound"


def _became_complete(previous: ProgressRecord | None, stored: ProgressRecord) -> bool:
    return stored.completed and not (previous is not None and previous.completed)


def _course_progress_from_json(raw: str) -> CourseProgress:
    data = json.loads(raw)
    lessons = tuple(LessonProgressEntry(**entry) for entry in data.pop("lessons"))
    return CourseProgress(**data, lessons=lessons)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if async_session_factory is not None:
    lesson_directory: LessonDirectory = PgLessonDirectory(async_session_factory)
    progress_store: ProgressStore = PgProgressStore(async_session_factory)
    enrollment_store: EnrollmentStore = PgEnrollmentStore(async_session_factory)
else:
    lesson_directory = InMemoryLessonDirectory()
    progress_store = InMemoryProgressStore()
    enrollment_store = InMemoryEnrollmentStore()
    seed_sample_course(lesson_directory, enrollment_store)

progress_service = ProgressService.from_settings(
    SETTINGS,
    lessons=lesson_directory,
    progress=progress_store,
    enrollments=enrollment_store,
    telemetry=telemetry_sink,
    cache=cache_service,
)
