"""
Minute-of-day windows shared by roster availability and the scheduler grid.

Two containment rules exist on purpose:
- `contains_instant`: start inclusive, end exclusive. A grid cell at 17:00
  belongs to the shift starting at 17:00, not the one ending there.
- `contains_interval`: both ends inclusive. A booking ending at 22:00 fits a
  shift ending at 22:00.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Union

from flightops.errors import InvalidFormat, InvalidWindow

MINUTES_PER_DAY = 24 * 60

TimeLike = Union[str, time, int]


@dataclass(frozen=True)
class MinutesWindow:
    start_min: int
    end_min: int

    def contains_instant(self, minute: int) -> bool:
        return self.start_min <= minute < self.end_min

    def contains_interval(self, start_min: int, end_min: int) -> bool:
        return self.start_min <= start_min and self.end_min >= end_min

    @property
    def duration(self) -> int:
        return self.end_min - self.start_min

    def __str__(self) -> str:
        return f"{format_minutes(self.start_min)}-{format_minutes(self.end_min)}"


def parse_time_to_minutes(value: TimeLike, *, field: str = "time") -> int:
    """
    Parse "HH:MM" or "HH:MM:SS" (or a `datetime.time`) into minutes 0-1439.

    Seconds are validated but dropped.
    """
    if isinstance(value, bool):
        raise InvalidFormat.for_field(field, f"not a time of day: {value!r}")
    if isinstance(value, int):
        if 0 <= value < MINUTES_PER_DAY:
            return value
        raise InvalidFormat.for_field(field, f"minute of day out of range: {value}")
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise InvalidFormat.for_field(field, f"not a time of day: {value!r}")

    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isascii() and p.isdigit() for p in parts):
        raise InvalidFormat.for_field(field, f"expected HH:MM or HH:MM:SS, got {value!r}")

    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    if not 0 <= hour <= 23:
        raise InvalidFormat.for_field(field, f"hour out of range in {value!r}")
    if not 0 <= minute <= 59:
        raise InvalidFormat.for_field(field, f"minute out of range in {value!r}")
    if not 0 <= second <= 59:
        raise InvalidFormat.for_field(field, f"second out of range in {value!r}")
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def window_from(start: TimeLike, end: TimeLike) -> MinutesWindow:
    start_min = parse_time_to_minutes(start, field="start_time")
    end_min = parse_time_to_minutes(end, field="end_time")
    # Overnight shifts are not modelled; end must fall later on the same day.
    if end_min <= start_min:
        raise InvalidWindow.for_field(
            "end_time",
            f"end time {format_minutes(end_min)} must be after start time {format_minutes(start_min)}",
        )
    return MinutesWindow(start_min=start_min, end_min=end_min)


def contains_instant(window: MinutesWindow, minute: int) -> bool:
    return window.contains_instant(minute)


def contains_interval(window: MinutesWindow, start_min: int, end_min: int) -> bool:
    return window.contains_interval(start_min, end_min)
