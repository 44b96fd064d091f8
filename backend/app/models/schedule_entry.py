import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ScheduleEntry(Base):
    __tablename__ = "schedule_entries"
    __table_args__ = (
        UniqueConstraint(
            "timetable_id",
            "class_period_id",
            "class_section_id",
            name="uq_schedule_entries_section_slot",
        ),
        UniqueConstraint(
            "timetable_id",
            "class_period_id",
            "teacher_id",
            name="uq_schedule_entries_teacher_slot",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    timetable_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    class_period_id: Mapped[str] = mapped_column(String(36), nullable=False)
    teaching_assignment_id: Mapped[str] = mapped_column(String(36), nullable=False)
    # Denormalised from the teaching assignment so the constraints above can be enforced.
    class_section_id: Mapped[str] = mapped_column(String(36), nullable=False)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False)
    day: Mapped[str] = mapped_column(String(20), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
