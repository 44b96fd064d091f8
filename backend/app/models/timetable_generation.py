from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class GenerationRunState(str, Enum):
    pending = "pending"
    locking = "locking"
    allocating = "allocating"
    dry_run_reporting = "dry_run_reporting"
    persisting = "persisting"
    notifying = "notifying"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_RUN_STATES = frozenset(
    {GenerationRunState.completed, GenerationRunState.failed, GenerationRunState.cancelled}
)

# Cancellation is checked before persisting starts; later requests cannot take effect.
CANCELLABLE_RUN_STATES = frozenset(
    {GenerationRunState.pending, GenerationRunState.locking, GenerationRunState.allocating}
)


class TimetableGenerationRun(Base):
    __tablename__ = "timetable_generation_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timetable_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_periods_per_teacher_per_day: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[GenerationRunState] = mapped_column(
        SAEnum(GenerationRunState, name="generation_run_state"),
        nullable=False,
        default=GenerationRunState.pending,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    retryable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    summary: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class TimetableGenerationLock(Base):
    """Lease held by the run currently generating a timetable.

    One row per timetable; a lease past ``expires_at`` may be taken over.
    """

    __tablename__ = "timetable_generation_locks"

    timetable_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_token: Mapped[str] = mapped_column(String(36), nullable=False)
    run_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
