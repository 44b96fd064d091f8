"""Greedy randomized teacher allocation.

The allocator walks every (day, period, class section) slot front-to-back and
picks one eligible, non-conflicting teaching assignment per slot. Decisions
depend on the busy/daily-load state accumulated earlier in the same run, so a
single allocation pass is strictly sequential.

Nothing here touches the database: inputs are plain value objects and the
random source is injected, which keeps runs reproducible under a fixed seed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from enum import Enum
import random

from app.core.exceptions import SchedulerError
from app.services.busy_tracker import BusyTracker
from app.services.eligibility import AssignmentRef, EligibilityCatalog
from app.services.period_calendar import PeriodRef


class GapReason(str, Enum):
    no_eligible_assignment = "no_eligible_assignment"
    teachers_busy = "teachers_busy"
    daily_limit_reached = "daily_limit_reached"


@dataclass(frozen=True)
class ProposedEntry:
    timetable_id: str
    school_id: str
    class_period_id: str
    teaching_assignment_id: str
    class_section_id: str
    teacher_id: str
    day: str
    start_time: str
    end_time: str

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ExistingEntry:
    class_period_id: str
    class_section_id: str
    teacher_id: str
    day: str


@dataclass(frozen=True)
class AllocationGap:
    day: str
    period_id: str
    class_section_id: str
    reason: GapReason

    def as_dict(self) -> dict:
        return {
            "day": self.day,
            "period_id": self.period_id,
            "class_section_id": self.class_section_id,
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class TraceNote:
    day: str
    period_id: str
    class_section_id: str
    message: str


@dataclass
class AllocationResult:
    entries: list[ProposedEntry] = field(default_factory=list)
    gaps: list[AllocationGap] = field(default_factory=list)
    notes: list[TraceNote] = field(default_factory=list)

    @property
    def filled_count(self) -> int:
        return len(self.entries)

    @property
    def gap_count(self) -> int:
        return len(self.gaps)

    @property
    def skipped_count(self) -> int:
        return len(self.notes)


class Allocator:
    def __init__(
        self,
        *,
        timetable_id: str,
        school_id: str,
        catalog: EligibilityCatalog,
        max_periods_per_teacher_per_day: int,
        rng: random.Random | None = None,
        busy_tracker: BusyTracker | None = None,
    ) -> None:
        if max_periods_per_teacher_per_day < 1:
            raise SchedulerError(
                "max_periods_per_teacher_per_day must be at least 1",
                details={"max_periods_per_teacher_per_day": max_periods_per_teacher_per_day},
            )
        self.timetable_id = timetable_id
        self.school_id = school_id
        self.catalog = catalog
        self.max_periods_per_teacher_per_day = max_periods_per_teacher_per_day
        self.random = rng if rng is not None else random.Random()
        self.busy = busy_tracker if busy_tracker is not None else BusyTracker()
        self._filled: set[tuple[str, str]] = set()

    def allocate(
        self,
        periods_by_day: Mapping[str, Sequence[PeriodRef]],
        class_section_ids: Iterable[str],
        existing_entries: Iterable[ExistingEntry] = (),
    ) -> AllocationResult:
        """Fill every open slot of ``periods_by_day`` for the given sections.

        ``periods_by_day`` must already be in calendar order with breaks
        removed. Existing entries are treated as filled slots and count
        against their teacher's busy periods and daily load.
        """
        for entry in existing_entries:
            self._filled.add((entry.class_period_id, entry.class_section_id))
            self.busy.record(entry.teacher_id, entry.class_period_id, entry.day)

        section_ids = sorted(set(class_section_ids))
        result = AllocationResult()
        for day, periods in periods_by_day.items():
            self._allocate_day(day, periods, section_ids, result)
        return result

    def _allocate_day(
        self,
        day: str,
        periods: Sequence[PeriodRef],
        section_ids: Sequence[str],
        result: AllocationResult,
    ) -> None:
        for period in periods:
            if period.is_break:
                continue
            for section_id in section_ids:
                if (period.id, section_id) in self._filled:
                    result.notes.append(
                        TraceNote(
                            day=day,
                            period_id=period.id,
                            class_section_id=section_id,
                            message="skipped - already assigned",
                        )
                    )
                    continue

                eligible = self.catalog.eligible_assignments(section_id)
                candidates = self._available(eligible, period, day)
                if not candidates:
                    result.gaps.append(
                        AllocationGap(
                            day=day,
                            period_id=period.id,
                            class_section_id=section_id,
                            reason=self._gap_reason(eligible, period),
                        )
                    )
                    continue

                choice = self.random.choice(candidates)
                result.entries.append(
                    ProposedEntry(
                        timetable_id=self.timetable_id,
                        school_id=self.school_id,
                        class_period_id=period.id,
                        teaching_assignment_id=choice.id,
                        class_section_id=section_id,
                        teacher_id=choice.teacher_id,
                        day=day,
                        start_time=period.start_time,
                        end_time=period.end_time,
                    )
                )
                self._filled.add((period.id, section_id))
                self.busy.mark_busy(choice.teacher_id, period.id)
                self.busy.increment_daily(choice.teacher_id, day)

    def _available(self, eligible: Iterable[AssignmentRef], period: PeriodRef, day: str) -> list[AssignmentRef]:
        # Sorted so a seeded random source picks the same assignment every time.
        return sorted(
            (
                item
                for item in eligible
                if not self.busy.is_busy(item.teacher_id, period.id)
                and self.busy.daily_count(item.teacher_id, day) < self.max_periods_per_teacher_per_day
            ),
            key=lambda item: item.id,
        )

    def _gap_reason(self, eligible: frozenset[AssignmentRef], period: PeriodRef) -> GapReason:
        if not eligible:
            return GapReason.no_eligible_assignment
        if all(self.busy.is_busy(item.teacher_id, period.id) for item in eligible):
            return GapReason.teachers_busy
        return GapReason.daily_limit_reached
