from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.class_period import ClassPeriod
from app.schemas.calendar import day_sort_key, parse_time_to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeriodRef:
    id: str
    day: str
    ordinal: int
    start_time: str
    end_time: str
    is_break: bool = False
    name: str = ""

    @property
    def duration_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time) - parse_time_to_minutes(self.start_time)


def period_ref_from_model(period: ClassPeriod) -> PeriodRef:
    return PeriodRef(
        id=period.id,
        day=period.day,
        ordinal=period.ordinal,
        start_time=period.start_time,
        end_time=period.end_time,
        is_break=bool(period.is_break),
        name=period.name,
    )


class PeriodCalendar:
    """School periods grouped by day, each day ordered front-to-back."""

    def __init__(self, periods: Iterable[PeriodRef]) -> None:
        grouped: dict[str, list[PeriodRef]] = defaultdict(list)
        for period in periods:
            grouped[period.day].append(period)
        self._by_day: dict[str, tuple[PeriodRef, ...]] = {
            day: tuple(sorted(grouped[day], key=lambda item: (item.ordinal, item.start_time, item.id)))
            for day in sorted(grouped, key=day_sort_key)
        }

    @classmethod
    def load(cls, db: Session, *, school_id: str) -> "PeriodCalendar":
        rows = db.execute(select(ClassPeriod).where(ClassPeriod.school_id == school_id)).scalars()
        calendar = cls(period_ref_from_model(row) for row in rows)
        logger.debug(
            "Loaded %d period(s) over %d day(s) for school %s",
            calendar.period_count,
            len(calendar.days),
            school_id,
        )
        return calendar

    @property
    def days(self) -> list[str]:
        return list(self._by_day)

    @property
    def period_count(self) -> int:
        return sum(len(items) for items in self._by_day.values())

    def periods_grouped_by_day(self) -> dict[str, list[PeriodRef]]:
        return {day: list(items) for day, items in self._by_day.items()}

    def teaching_periods_by_day(self) -> dict[str, list[PeriodRef]]:
        result: dict[str, list[PeriodRef]] = {}
        for day, items in self._by_day.items():
            teaching = [item for item in items if not item.is_break]
            if teaching:
                result[day] = teaching
        return result
