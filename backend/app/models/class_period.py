import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.schemas.calendar import parse_time_to_minutes


def _derive_duration_minutes(context) -> int | None:
    params = context.get_current_parameters()
    start_time, end_time = params.get("start_time"), params.get("end_time")
    if not start_time or not end_time:
        return None
    return parse_time_to_minutes(end_time) - parse_time_to_minutes(start_time)


class ClassPeriod(Base):
    __tablename__ = "class_periods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[str] = mapped_column(String(20), nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True, default=_derive_duration_minutes)
    is_break: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
