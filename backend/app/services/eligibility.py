from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.teaching_assignment import TeachingAssignment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentRef:
    id: str
    teacher_id: str
    class_section_id: str
    subject_id: str


class EligibilityCatalog:
    """Read-only lookup of the teacher/subject pairs allowed to teach a section."""

    def __init__(self, assignments: Iterable[AssignmentRef]) -> None:
        grouped: dict[str, set[AssignmentRef]] = defaultdict(set)
        for assignment in assignments:
            grouped[assignment.class_section_id].add(assignment)
        self._by_section: dict[str, frozenset[AssignmentRef]] = {
            section_id: frozenset(items) for section_id, items in grouped.items()
        }

    @classmethod
    def load(cls, db: Session, *, school_id: str, class_section_ids: Iterable[str]) -> "EligibilityCatalog":
        section_ids = list(dict.fromkeys(class_section_ids))
        if not section_ids:
            return cls(())
        rows = db.execute(
            select(TeachingAssignment).where(
                TeachingAssignment.school_id == school_id,
                TeachingAssignment.class_section_id.in_(section_ids),
            )
        ).scalars()
        catalog = cls(
            AssignmentRef(
                id=row.id,
                teacher_id=row.teacher_id,
                class_section_id=row.class_section_id,
                subject_id=row.subject_id,
            )
            for row in rows
        )
        logger.debug(
            "Loaded %d teaching assignment(s) for %d section(s) in school %s",
            catalog.assignment_count,
            len(section_ids),
            school_id,
        )
        return catalog

    @property
    def assignment_count(self) -> int:
        return sum(len(items) for items in self._by_section.values())

    def eligible_assignments(self, class_section_id: str) -> frozenset[AssignmentRef]:
        return self._by_section.get(class_section_id, frozenset())
