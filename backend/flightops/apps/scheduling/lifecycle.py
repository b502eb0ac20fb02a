"""
Booking lifecycle: the closed set of booking statuses and how they map onto
the five stages shown on the booking progress tracker.

    unconfirmed -> confirmed -> briefing -> checkout -> flying -> checkin -> complete -> debrief

`cancelled` can be entered from any other status and is absorbing; it sits
outside the progress stages. Which moves are legal, and what must be
captured on each, lives in the workflow registry
(`flightops.apps.workflow.registry`).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from flightops.errors import TransitionError, UnknownStatus


class BookingStatus(str, enum.Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    BRIEFING = "briefing"
    CHECKOUT = "checkout"
    FLYING = "flying"
    CHECKIN = "checkin"
    COMPLETE = "complete"
    DEBRIEF = "debrief"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Stage:
    id: str
    label: str


BOOKING_STAGES: Tuple[Stage, ...] = (
    Stage("briefing", "Briefing"),
    Stage("checkout", "Check-out"),
    Stage("flying", "Flying"),
    Stage("checkin", "Check-in"),
    Stage("debrief", "Debrief"),
)

STAGE_IDS: Tuple[str, ...] = tuple(stage.id for stage in BOOKING_STAGES)

STATUS_TO_STAGE_ID: Dict[BookingStatus, Optional[str]] = {
    BookingStatus.UNCONFIRMED: "briefing",
    BookingStatus.CONFIRMED: "briefing",
    BookingStatus.BRIEFING: "briefing",
    BookingStatus.CHECKOUT: "checkout",
    BookingStatus.FLYING: "flying",
    BookingStatus.CHECKIN: "checkin",
    BookingStatus.COMPLETE: "debrief",
    BookingStatus.DEBRIEF: "debrief",
    BookingStatus.CANCELLED: None,
}

# Import-time exhaustiveness check: a new BookingStatus without a stage fails here.
_unmapped = set(BookingStatus) - set(STATUS_TO_STAGE_ID)
if _unmapped:
    raise RuntimeError(f"Booking statuses without a stage mapping: {sorted(s.value for s in _unmapped)}")

ORDERED_STATUSES: Tuple[BookingStatus, ...] = (
    BookingStatus.UNCONFIRMED,
    BookingStatus.CONFIRMED,
    BookingStatus.BRIEFING,
    BookingStatus.CHECKOUT,
    BookingStatus.FLYING,
    BookingStatus.CHECKIN,
    BookingStatus.COMPLETE,
    BookingStatus.DEBRIEF,
)


def parse_status(value: Any) -> BookingStatus:
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(str(value).strip().lower())
    except ValueError:
        raise UnknownStatus(
            f"Unknown booking status {value!r}",
            detail=[{"field": "status", "reason": f"{value!r} is not a declared booking status"}],
        )


def stage_for_status(value: Any) -> Optional[str]:
    """
    Stage id for a status. Returns None only for `cancelled`; anything outside
    the declared statuses raises UnknownStatus.
    """
    return STATUS_TO_STAGE_ID[parse_status(value)]


@dataclass(frozen=True)
class BookingProgress:
    status: BookingStatus
    active_stage_id: Optional[str]
    completed_stage_ids: Tuple[str, ...]

    @property
    def cancelled(self) -> bool:
        return self.status is BookingStatus.CANCELLED


def booking_progress(value: Any) -> BookingProgress:
    status = parse_status(value)
    active = STATUS_TO_STAGE_ID[status]
    if active is None:
        return BookingProgress(status=status, active_stage_id=None, completed_stage_ids=())
    return BookingProgress(
        status=status,
        active_stage_id=active,
        completed_stage_ids=STAGE_IDS[: STAGE_IDS.index(active)],
    )


def declared_stages() -> List[Dict[str, str]]:
    return [{"id": stage.id, "label": stage.label} for stage in BOOKING_STAGES]


# ---------------------------------------------------------------------------
# FLIGHT TIME
# ---------------------------------------------------------------------------

METER_PAIRS = {
    "hobbs": ("hobbs_start", "hobbs_end"),
    "tacho": ("tach_start", "tach_end"),
    "airswitch": ("airswitch_start", "airswitch_end"),
}

FLIGHT_TIME_FIELDS = {
    "hobbs": "flight_time_hobbs",
    "tacho": "flight_time_tach",
    "airswitch": "flight_time_airswitch",
}

_TENTH = Decimal("0.1")


def _reading(readings: Any, key: str) -> Optional[Decimal]:
    value = readings.get(key) if isinstance(readings, dict) else getattr(readings, key, None)
    if value is None:
        return None
    return Decimal(str(value))


def compute_flight_times(readings: Any) -> Dict[str, Optional[Decimal]]:
    """
    Meter deltas in tenths of an hour for each meter with both readings.

    Returns flight_time_hobbs / flight_time_tach / flight_time_airswitch;
    a meter missing either reading yields None.
    """
    times: Dict[str, Optional[Decimal]] = {}
    issues = []
    for basis, (start_key, end_key) in METER_PAIRS.items():
        start = _reading(readings, start_key)
        end = _reading(readings, end_key)
        if start is None or end is None:
            times[FLIGHT_TIME_FIELDS[basis]] = None
            continue
        if end < start:
            issues.append({"field": end_key, "reason": f"{end_key} must not be less than {start_key}"})
            continue
        times[FLIGHT_TIME_FIELDS[basis]] = (end - start).quantize(_TENTH, rounding=ROUND_HALF_UP)
    if issues:
        raise TransitionError(code="missing_requirements", detail=issues)
    return times


def billing_hours_for(basis: str, flight_times: Dict[str, Optional[Decimal]]) -> Optional[Decimal]:
    field = FLIGHT_TIME_FIELDS.get(basis)
    if field is None:
        raise TransitionError(
            code="missing_requirements",
            detail=[{"field": "billing_basis", "reason": "billing_basis must be one of hobbs, tacho, airswitch"}],
        )
    return flight_times.get(field)
