import random
from collections import Counter

import pytest

from app.core.exceptions import SchedulerError
from app.services.allocator import Allocator, ExistingEntry, GapReason
from app.services.busy_tracker import BusyTracker
from app.services.eligibility import AssignmentRef, EligibilityCatalog
from app.services.period_calendar import PeriodRef


def make_periods(days, per_day, *, breaks=()):
    grid = {}
    for day in days:
        grid[day] = [
            PeriodRef(
                id=f"{day[:3].lower()}-p{ordinal}",
                day=day,
                ordinal=ordinal,
                start_time=f"{8 + ordinal:02d}:00",
                end_time=f"{8 + ordinal:02d}:45",
                is_break=ordinal in breaks,
            )
            for ordinal in range(1, per_day + 1)
        ]
    return grid


def assignment(assignment_id, teacher_id, section_id, subject_id="math"):
    return AssignmentRef(id=assignment_id, teacher_id=teacher_id, class_section_id=section_id, subject_id=subject_id)


def build_allocator(catalog, limit, seed=7):
    return Allocator(
        timetable_id="tt-1",
        school_id="school-1",
        catalog=catalog,
        max_periods_per_teacher_per_day=limit,
        rng=random.Random(seed),
        busy_tracker=BusyTracker(),
    )


def test_daily_cap_leaves_gaps_and_resets_each_day():
    periods = make_periods(["Monday", "Tuesday"], 2)
    catalog = EligibilityCatalog([assignment("a1", "t1", "s1")])

    result = build_allocator(catalog, limit=1).allocate(periods, ["s1"])

    assert [(entry.day, entry.class_period_id) for entry in result.entries] == [
        ("Monday", "mon-p1"),
        ("Tuesday", "tue-p1"),
    ]
    assert [(gap.day, gap.period_id, gap.reason) for gap in result.gaps] == [
        ("Monday", "mon-p2", GapReason.daily_limit_reached),
        ("Tuesday", "tue-p2", GapReason.daily_limit_reached),
    ]
    assert result.filled_count == 2
    assert result.gap_count == 2


def test_two_teachers_fill_every_period_without_exceeding_cap():
    periods = make_periods(["Monday"], 3)
    catalog = EligibilityCatalog([assignment("a1", "t1", "s1"), assignment("a2", "t2", "s1")])

    result = build_allocator(catalog, limit=3).allocate(periods, ["s1"])

    assert result.filled_count == 3
    assert result.gap_count == 0
    per_teacher = Counter(entry.teacher_id for entry in result.entries)
    assert set(per_teacher) <= {"t1", "t2"}
    assert all(count <= 3 for count in per_teacher.values())


def test_empty_catalog_turns_every_slot_into_a_gap():
    periods = make_periods(["Monday", "Wednesday"], 3)
    catalog = EligibilityCatalog([assignment("a1", "t1", "s1")])

    result = build_allocator(catalog, limit=5).allocate(periods, ["s1", "s2"])

    s2_gaps = [gap for gap in result.gaps if gap.class_section_id == "s2"]
    assert len(s2_gaps) == 6
    assert {gap.reason for gap in s2_gaps} == {GapReason.no_eligible_assignment}
    assert not [entry for entry in result.entries if entry.class_section_id == "s2"]


def test_shared_teacher_is_never_double_booked():
    periods = make_periods(["Monday"], 2)
    catalog = EligibilityCatalog([assignment("a1", "t1", "s1"), assignment("a2", "t1", "s2")])

    result = build_allocator(catalog, limit=5).allocate(periods, ["s1", "s2"])

    # s1 sorts first and takes the only teacher in every period.
    assert [entry.class_section_id for entry in result.entries] == ["s1", "s1"]
    assert [gap.reason for gap in result.gaps] == [GapReason.teachers_busy, GapReason.teachers_busy]


def test_existing_entries_are_skipped_and_count_toward_daily_load():
    periods = make_periods(["Monday"], 3)
    catalog = EligibilityCatalog([assignment("a1", "t1", "s1")])
    existing = [ExistingEntry(class_period_id="mon-p1", class_section_id="s1", teacher_id="t1", day="Monday")]

    result = build_allocator(catalog, limit=2).allocate(periods, ["s1"], existing)

    assert [note.period_id for note in result.notes] == ["mon-p1"]
    assert result.notes[0].message == "skipped - already assigned"
    assert [entry.class_period_id for entry in result.entries] == ["mon-p2"]
    assert [(gap.period_id, gap.reason) for gap in result.gaps] == [("mon-p3", GapReason.daily_limit_reached)]


def test_break_periods_are_never_assigned():
    periods = make_periods(["Monday"], 3, breaks=(2,))
    catalog = EligibilityCatalog([assignment("a1", "t1", "s1")])

    result = build_allocator(catalog, limit=5).allocate(periods, ["s1"])

    assert "mon-p2" not in {entry.class_period_id for entry in result.entries}
    assert "mon-p2" not in {gap.period_id for gap in result.gaps}


def test_entries_copy_period_times():
    periods = make_periods(["Friday"], 1)
    catalog = EligibilityCatalog([assignment("a1", "t1", "s1")])

    entry = build_allocator(catalog, limit=1).allocate(periods, ["s1"]).entries[0]

    assert (entry.start_time, entry.end_time) == ("09:00", "09:45")
    assert entry.teaching_assignment_id == "a1"
    assert entry.timetable_id == "tt-1"
    assert entry.school_id == "school-1"


def test_same_seed_reproduces_the_same_allocation():
    periods = make_periods(["Monday", "Tuesday"], 4)
    catalog = EligibilityCatalog(
        [assignment(f"a{i}", f"t{i}", section) for i in range(1, 5) for section in ("s1", "s2")]
    )

    first = build_allocator(catalog, limit=3, seed=42).allocate(periods, ["s1", "s2"])
    second = build_allocator(catalog, limit=3, seed=42).allocate(periods, ["s2", "s1"])

    assert first.entries == second.entries
    assert first.gaps == second.gaps


@pytest.mark.parametrize("seed", range(25))
def test_invariants_hold_across_seeds(seed):
    periods = make_periods(["Monday", "Tuesday", "Wednesday"], 6, breaks=(4,))
    sections = ["s1", "s2", "s3", "s4"]
    assignments = []
    for index, section in enumerate(sections):
        for teacher in ("t1", "t2", "t3", f"t-own-{index}"):
            assignments.append(assignment(f"{section}-{teacher}", teacher, section))
    limit = 3

    result = build_allocator(EligibilityCatalog(assignments), limit=limit, seed=seed).allocate(periods, sections)

    teacher_slots = Counter((entry.class_period_id, entry.teacher_id) for entry in result.entries)
    assert max(teacher_slots.values()) == 1
    section_slots = Counter((entry.class_period_id, entry.class_section_id) for entry in result.entries)
    assert max(section_slots.values()) == 1
    daily = Counter((entry.teacher_id, entry.day) for entry in result.entries)
    assert max(daily.values()) <= limit
    assert result.filled_count + result.gap_count == 3 * 5 * len(sections)


def test_rejects_non_positive_daily_limit():
    with pytest.raises(SchedulerError) as exc_info:
        build_allocator(EligibilityCatalog([]), limit=0)
    assert exc_info.value.status_code == 400
    assert exc_info.value.details == {"max_periods_per_teacher_per_day": 0}
