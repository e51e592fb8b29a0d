"""create progress tables

Revision ID: 3b1e9c0d2a47
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1e9c0d2a47"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
    )
    op.create_table(
        "course_modules",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("course_id", sa.String(length=64), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
    )
    op.create_index("ix_course_modules_course_id", "course_modules", ["course_id"])

    op.create_table(
        "lessons",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("module_id", sa.String(length=64), sa.ForeignKey("course_modules.id"), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="video"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_sec", sa.Float(), nullable=True),
        sa.Column("media_id", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_lessons_module_id", "lessons", ["module_id"])

    op.create_table(
        "enrollments",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("course_id", sa.String(length=64), sa.ForeignKey("courses.id"), primary_key=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("enrolled_at", sa.Integer(), nullable=True),
        sa.Column("completion_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.Integer(), nullable=True),
    )

    op.create_table(
        "lesson_progress",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("lesson_id", sa.String(length=64), sa.ForeignKey("lessons.id"), primary_key=True),
        sa.Column("course_id", sa.String(length=64), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("watched_sec", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_position", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("duration_sec", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index(
        "ix_lesson_progress_user_course", "lesson_progress", ["user_id", "course_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_lesson_progress_user_course", table_name="lesson_progress")
    op.drop_table("lesson_progress")
    op.drop_table("enrollments")
    op.drop_index("ix_lessons_module_id", table_name="lessons")
    op.drop_table("lessons")
    op.drop_index("ix_course_modules_course_id", table_name="course_modules")
    op.drop_table("course_modules")
    op.drop_table("courses")
