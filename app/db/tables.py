"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

Catalog tables (courses, course_modules, lessons) and enrollments are
owned by other services; they are declared here so the lesson directory
and enrollment repos can read and update them, and so Alembic can build a
self-contained schema for local development.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

# --- Catalog (read-only from this service) ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="draft"
    )  # draft|published|retired


class CourseModuleRow(Base):
    __tablename__ = "course_modules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("courses.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)


class LessonRow(Base):
    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    module_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("course_modules.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="video"
    )  # video|quiz|assignment|reading
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_sec: Mapped[float | None] = mapped_column(Float, nullable=True)
    media_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


# --- Enrollment (owned by checkout; we write the derived fields) ---


class EnrollmentRow(Base):
    __tablename__ = "enrollments"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("courses.id"), primary_key=True
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active"
    )  # active|completed|suspended|cancelled
    enrolled_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completion_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    last_accessed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)


# --- Lesson progress (source of truth for completion) ---


class LessonProgressRow(Base):
    """One row per (user, lesson).

    ``version`` is the optimistic-concurrency token: every UPDATE is
    conditional on the version the writer read, so two concurrent
    heartbeats for the same key cannot both apply to the same snapshot.
    """

    __tablename__ = "lesson_progress"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    lesson_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("lessons.id"), primary_key=True
    )
    course_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("courses.id"), nullable=False
    )
    watched_sec: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_position: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_sec: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("ix_lesson_progress_user_course", "user_id", "course_id"),
    )
