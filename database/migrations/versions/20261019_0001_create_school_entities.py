"""create school entities used by timetable generation

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "scheduler", "teacher", "student", name="user_role")
timetable_status_enum = sa.Enum("draft", "published", name="timetable_status")


def upgrade() -> None:
    op.create_table(
        "schools",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_school_id", "users", ["school_id"], unique=False)

    op.create_table(
        "class_periods",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("day", sa.String(length=20), nullable=False),
        sa.Column("ordinal", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("is_break", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_class_periods_school_id", "class_periods", ["school_id"], unique=False)

    op.create_table(
        "class_sections",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_class_sections_school_id", "class_sections", ["school_id"], unique=False)

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
    )
    op.create_index("ix_subjects_school_id", "subjects", ["school_id"], unique=False)

    op.create_table(
        "teaching_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("class_section_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "teacher_id",
            "class_section_id",
            "subject_id",
            name="uq_teaching_assignments_identity",
        ),
    )
    op.create_index("ix_teaching_assignments_school_id", "teaching_assignments", ["school_id"], unique=False)
    op.create_index("ix_teaching_assignments_teacher_id", "teaching_assignments", ["teacher_id"], unique=False)
    op.create_index(
        "ix_teaching_assignments_class_section_id",
        "teaching_assignments",
        ["class_section_id"],
        unique=False,
    )

    op.create_table(
        "timetables",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("term_id", sa.String(length=36), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("status", timetable_status_enum, nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_timetables_school_id", "timetables", ["school_id"], unique=False)
    op.create_index("ix_timetables_term_id", "timetables", ["term_id"], unique=False)

    op.create_table(
        "timetable_sections",
        sa.Column("timetable_id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_section_id", sa.String(length=36), primary_key=True, nullable=False),
    )


def downgrade() -> None:
    op.drop_table("timetable_sections")
    op.drop_index("ix_timetables_term_id", table_name="timetables")
    op.drop_index("ix_timetables_school_id", table_name="timetables")
    op.drop_table("timetables")
    op.drop_index("ix_teaching_assignments_class_section_id", table_name="teaching_assignments")
    op.drop_index("ix_teaching_assignments_teacher_id", table_name="teaching_assignments")
    op.drop_index("ix_teaching_assignments_school_id", table_name="teaching_assignments")
    op.drop_table("teaching_assignments")
    op.drop_index("ix_subjects_school_id", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_class_sections_school_id", table_name="class_sections")
    op.drop_table("class_sections")
    op.drop_index("ix_class_periods_school_id", table_name="class_periods")
    op.drop_table("class_periods")
    op.drop_index("ix_users_school_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("schools")
    timetable_status_enum.drop(op.get_bind(), checkfirst=True)
    user_role_enum.drop(op.get_bind(), checkfirst=True)
