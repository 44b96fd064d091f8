from __future__ import annotations

import re

DAY_VALUES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def day_sort_key(day: str) -> tuple[int, str]:
    # Unknown day labels sort after the week, alphabetically.
    try:
        return DAY_VALUES.index(day), day
    except ValueError:
        return len(DAY_VALUES), day
