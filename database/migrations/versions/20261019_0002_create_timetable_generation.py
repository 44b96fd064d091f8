"""create schedule entries, generation runs and locks

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


run_state_enum = sa.Enum(
    "pending",
    "locking",
    "allocating",
    "dry_run_reporting",
    "persisting",
    "notifying",
    "completed",
    "failed",
    "cancelled",
    name="generation_run_state",
)
notification_type_enum = sa.Enum("timetable", "system", name="notification_type")


def upgrade() -> None:
    op.create_table(
        "schedule_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("timetable_id", sa.String(length=36), nullable=False),
        sa.Column("class_period_id", sa.String(length=36), nullable=False),
        sa.Column("teaching_assignment_id", sa.String(length=36), nullable=False),
        sa.Column("class_section_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("day", sa.String(length=20), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "timetable_id",
            "class_period_id",
            "class_section_id",
            name="uq_schedule_entries_section_slot",
        ),
        sa.UniqueConstraint(
            "timetable_id",
            "class_period_id",
            "teacher_id",
            name="uq_schedule_entries_teacher_slot",
        ),
    )
    op.create_index("ix_schedule_entries_school_id", "schedule_entries", ["school_id"], unique=False)
    op.create_index("ix_schedule_entries_timetable_id", "schedule_entries", ["timetable_id"], unique=False)

    op.create_table(
        "timetable_generation_runs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("timetable_id", sa.String(length=36), nullable=False),
        sa.Column("dry_run", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_periods_per_teacher_per_day", sa.Integer(), nullable=False),
        sa.Column("state", run_state_enum, nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("retryable", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("failure_reason", sa.String(length=500), nullable=True),
        sa.Column("cancel_requested", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("summary", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_timetable_generation_runs_timetable_id",
        "timetable_generation_runs",
        ["timetable_id"],
        unique=False,
    )
    op.create_index("ix_timetable_generation_runs_state", "timetable_generation_runs", ["state"], unique=False)

    op.create_table(
        "timetable_generation_locks",
        sa.Column("timetable_id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("owner_token", sa.String(length=36), nullable=False),
        sa.Column("run_id", sa.String(length=36), nullable=True),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type_enum, nullable=False, server_default="system"),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_school_id", "activity_logs", ["school_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_activity_logs_school_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("timetable_generation_locks")
    op.drop_index("ix_timetable_generation_runs_state", table_name="timetable_generation_runs")
    op.drop_index("ix_timetable_generation_runs_timetable_id", table_name="timetable_generation_runs")
    op.drop_table("timetable_generation_runs")
    op.drop_index("ix_schedule_entries_timetable_id", table_name="schedule_entries")
    op.drop_index("ix_schedule_entries_school_id", table_name="schedule_entries")
    op.drop_table("schedule_entries")
    notification_type_enum.drop(op.get_bind(), checkfirst=True)
    run_state_enum.drop(op.get_bind(), checkfirst=True)
