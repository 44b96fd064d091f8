from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.timetable_generation import GenerationRunState
from app.services.allocator import GapReason


class GenerateTimetableRequest(BaseModel):
    dry_run: bool = False
    max_periods_per_teacher_per_day: int | None = Field(default=None, ge=1, le=24)


class ProposedEntryOut(BaseModel):
    timetable_id: str
    school_id: str
    class_period_id: str
    teaching_assignment_id: str
    class_section_id: str
    teacher_id: str
    day: str
    start_time: str
    end_time: str


class GapOut(BaseModel):
    day: str
    period_id: str
    class_section_id: str
    reason: GapReason


class DryRunReport(BaseModel):
    timetable_id: str
    dry_run: bool = True
    proposed_entries: list[ProposedEntryOut] = Field(default_factory=list)
    gaps: list[GapOut] = Field(default_factory=list)
    filled_count: int = 0
    gap_count: int = 0
    skipped_count: int = 0


class GenerationRunOut(BaseModel):
    id: str
    timetable_id: str
    dry_run: bool
    max_periods_per_teacher_per_day: int
    state: GenerationRunState
    attempts: int
    retryable: bool
    failure_reason: str | None = None
    cancel_requested: bool
    summary: dict = Field(default_factory=dict)
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScheduleEntryOut(BaseModel):
    id: str
    timetable_id: str
    class_period_id: str
    teaching_assignment_id: str
    class_section_id: str
    teacher_id: str
    day: str
    start_time: str
    end_time: str

    model_config = {"from_attributes": True}
