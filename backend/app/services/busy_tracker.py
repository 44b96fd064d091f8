from __future__ import annotations

from collections import defaultdict


class BusyTracker:
    """Per-run teacher occupancy and daily load. Never persisted or shared between runs."""

    def __init__(self) -> None:
        self._busy: set[tuple[str, str]] = set()
        self._daily: dict[tuple[str, str], int] = defaultdict(int)

    def is_busy(self, teacher_id: str, period_id: str) -> bool:
        return (teacher_id, period_id) in self._busy

    def mark_busy(self, teacher_id: str, period_id: str) -> None:
        self._busy.add((teacher_id, period_id))

    def daily_count(self, teacher_id: str, day: str) -> int:
        return self._daily.get((teacher_id, day), 0)

    def increment_daily(self, teacher_id: str, day: str) -> int:
        key = (teacher_id, day)
        self._daily[key] += 1
        return self._daily[key]

    def record(self, teacher_id: str, period_id: str, day: str) -> None:
        self.mark_busy(teacher_id, period_id)
        self.increment_daily(teacher_id, day)
