"""
Resource conflict detection for bookings.

Two bookings conflict when neither is cancelled, they share the aircraft or a
non-null instructor, and their half-open intervals overlap:

    existing.start_time < proposed.end_time AND existing.end_time > proposed.start_time

Back-to-back bookings (one ends exactly when the next starts) never conflict.
This check is advisory; the write path re-runs it on the write session and
the database exclusion constraints have the final word.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from flightops.errors import InvalidWindow, ResourceConflict

from .timezone import as_utc


def _get_value(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _status_value(booking: Any) -> Optional[str]:
    status = _get_value(booking, "status")
    return getattr(status, "value", status)


@dataclass(frozen=True)
class ConflictResult:
    aircraft_conflict: bool = False
    instructor_conflict: bool = False
    conflicting_booking_ids: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.aircraft_conflict or self.instructor_conflict


@dataclass(frozen=True)
class UnavailableResources:
    aircraft_ids: FrozenSet[str] = field(default_factory=frozenset)
    instructor_ids: FrozenSet[str] = field(default_factory=frozenset)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return as_utc(a_start) < as_utc(b_end) and as_utc(a_end) > as_utc(b_start)


def is_blocking(booking: Any) -> bool:
    """Cancelled bookings (either marker) never hold a resource."""
    return _get_value(booking, "cancelled_at") is None and _status_value(booking) != "cancelled"


def _check_window(start_time: datetime, end_time: datetime) -> None:
    if as_utc(end_time) <= as_utc(start_time):
        raise InvalidWindow.for_field("end_time", "end_time must be after start_time")


def overlapping_bookings(
    existing: Iterable[Any],
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: Optional[str] = None,
) -> List[Any]:
    _check_window(start_time, end_time)
    found = []
    for booking in existing:
        if not is_blocking(booking):
            continue
        if exclude_booking_id is not None and str(_get_value(booking, "id")) == str(exclude_booking_id):
            continue
        if intervals_overlap(_get_value(booking, "start_time"), _get_value(booking, "end_time"), start_time, end_time):
            found.append(booking)
    return found


def find_conflicts(
    proposed: Any,
    existing: Iterable[Any],
    exclude_booking_id: Optional[str] = None,
) -> ConflictResult:
    """
    Compare a proposed booking against existing ones.

    When `exclude_booking_id` is not given, the proposed booking's own id (if
    it has one) is excluded so an edited booking never conflicts with itself.
    """
    if exclude_booking_id is None:
        exclude_booking_id = _get_value(proposed, "id")

    aircraft_id = _get_value(proposed, "aircraft_id")
    instructor_id = _get_value(proposed, "instructor_id")

    aircraft_conflict = False
    instructor_conflict = False
    conflicting: List[str] = []
    for booking in overlapping_bookings(
        existing,
        _get_value(proposed, "start_time"),
        _get_value(proposed, "end_time"),
        exclude_booking_id,
    ):
        hit = False
        if aircraft_id is not None and _get_value(booking, "aircraft_id") == aircraft_id:
            aircraft_conflict = hit = True
        if instructor_id is not None and _get_value(booking, "instructor_id") == instructor_id:
            instructor_conflict = hit = True
        if hit:
            conflicting.append(str(_get_value(booking, "id")))

    return ConflictResult(
        aircraft_conflict=aircraft_conflict,
        instructor_conflict=instructor_conflict,
        conflicting_booking_ids=tuple(conflicting),
    )


def ensure_no_conflict(
    proposed: Any,
    existing: Iterable[Any],
    exclude_booking_id: Optional[str] = None,
) -> None:
    result = find_conflicts(proposed, existing, exclude_booking_id)
    if result:
        raise ResourceConflict(
            aircraft_conflict=result.aircraft_conflict,
            instructor_conflict=result.instructor_conflict,
        )


def unavailable_resource_ids(
    existing: Iterable[Any],
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: Optional[str] = None,
) -> UnavailableResources:
    aircraft_ids = set()
    instructor_ids = set()
    for booking in overlapping_bookings(existing, start_time, end_time, exclude_booking_id):
        if _get_value(booking, "aircraft_id"):
            aircraft_ids.add(str(_get_value(booking, "aircraft_id")))
        if _get_value(booking, "instructor_id"):
            instructor_ids.add(str(_get_value(booking, "instructor_id")))
    return UnavailableResources(aircraft_ids=frozenset(aircraft_ids), instructor_ids=frozenset(instructor_ids))


def first_conflict_within(candidates: Sequence[Any]) -> Optional[Tuple[int, int, ConflictResult]]:
    """First pair (i, j), i < j, of batch candidates that conflict with each other."""
    for j in range(1, len(candidates)):
        for i in range(j):
            result = find_conflicts(candidates[j], [candidates[i]], exclude_booking_id="")
            if result:
                return i, j, result
    return None
