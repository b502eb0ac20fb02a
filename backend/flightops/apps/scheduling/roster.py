"""
Roster availability: which instructors are rostered on for a proposed slot.

Pure functions over rule records. A record may be an ORM `RosterRule`, a
pydantic schema or a plain dict; only the attributes below are read:
instructor_id, day_of_week, start_time, end_time, effective_from,
effective_until, is_active, voided_at.

Weekdays follow the scheduler convention 0 = Sunday .. 6 = Saturday.
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set

from flightops.errors import InvalidFormat, InvalidWindow

from .intervals import MinutesWindow, TimeLike, parse_time_to_minutes, window_from


class Liveness(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    VOIDED = "voided"


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def rule_liveness(rule: Any) -> Liveness:
    if _get_value(rule, "voided_at") is not None:
        return Liveness.VOIDED
    if not _get_value(rule, "is_active"):
        return Liveness.INACTIVE
    return Liveness.ACTIVE


def scheduler_weekday(on: date) -> int:
    return on.isoweekday() % 7


def rule_applies_on(rule: Any, on: date) -> bool:
    if _get_value(rule, "day_of_week") != scheduler_weekday(on):
        return False
    effective_from = _get_value(rule, "effective_from")
    effective_until = _get_value(rule, "effective_until")
    if effective_from is not None and on < effective_from:
        return False
    if effective_until is not None and on > effective_until:
        return False
    return True


def rule_window(rule: Any) -> Optional[MinutesWindow]:
    """Window of a stored rule, or None when the stored times do not form one."""
    try:
        return window_from(_get_value(rule, "start_time"), _get_value(rule, "end_time"))
    except (InvalidFormat, InvalidWindow):
        return None


def _live_rules(rules: Iterable[Any], on: Optional[date]) -> List[Any]:
    live = []
    for rule in rules:
        if rule_liveness(rule) is not Liveness.ACTIVE:
            continue
        if on is not None and not rule_applies_on(rule, on):
            continue
        live.append(rule)
    return live


def rostered_instructors_for(
    rules: Iterable[Any],
    on: date,
    start: TimeLike,
    end: TimeLike,
) -> Set[str]:
    """
    Instructor ids with at least one live rule on `on` that fully contains
    the proposed [start, end] time of day.

    A proposal whose end is not after its start (for example a booking that
    runs past local midnight) is contained by no rule.
    """
    start_min = parse_time_to_minutes(start, field="start_time")
    end_min = parse_time_to_minutes(end, field="end_time")
    if end_min <= start_min:
        return set()

    eligible: Set[str] = set()
    for rule in _live_rules(rules, on):
        window = rule_window(rule)
        if window is not None and window.contains_interval(start_min, end_min):
            eligible.add(str(_get_value(rule, "instructor_id")))
    return eligible


def instructor_availability_map(
    rules: Iterable[Any],
    on: Optional[date] = None,
) -> Dict[str, List[MinutesWindow]]:
    """Live windows per instructor, sorted by start, for point-in-time grid checks."""
    availability: Dict[str, List[MinutesWindow]] = {}
    for rule in _live_rules(rules, on):
        window = rule_window(rule)
        if window is None:
            continue
        availability.setdefault(str(_get_value(rule, "instructor_id")), []).append(window)
    for windows in availability.values():
        windows.sort(key=lambda w: (w.start_min, w.end_min))
    return availability


def is_available_at(availability: Dict[str, List[MinutesWindow]], instructor_id: str, minute: int) -> bool:
    return any(w.contains_instant(minute) for w in availability.get(str(instructor_id), ()))
