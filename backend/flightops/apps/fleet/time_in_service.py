"""
Aircraft total time in service (TTIS).

TTIS is persisted on the aircraft and only ever moved by deltas: check-in
approval adds the flight's applied delta, and a later correction adds the
difference between the corrected and the previously applied delta. Which
meter feeds the delta, and any reduction applied to it, is the aircraft's
`total_time_method`.
"""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Any, Optional

from flightops.errors import TransitionError


class TotalTimeMethod(str, enum.Enum):
    HOBBS = "hobbs"
    TACHO = "tacho"
    AIRSWITCH = "airswitch"
    HOBBS_LESS_5 = "hobbs less 5%"
    HOBBS_LESS_10 = "hobbs less 10%"
    TACHO_LESS_5 = "tacho less 5%"
    TACHO_LESS_10 = "tacho less 10%"


# method -> (meter, multiplier). Airswitch aircraft log TTIS off the hobbs.
_METHOD_RULES = {
    TotalTimeMethod.HOBBS: ("hobbs", Decimal("1")),
    TotalTimeMethod.TACHO: ("tacho", Decimal("1")),
    TotalTimeMethod.AIRSWITCH: ("hobbs", Decimal("1")),
    TotalTimeMethod.HOBBS_LESS_5: ("hobbs", Decimal("0.95")),
    TotalTimeMethod.HOBBS_LESS_10: ("hobbs", Decimal("0.90")),
    TotalTimeMethod.TACHO_LESS_5: ("tacho", Decimal("0.95")),
    TotalTimeMethod.TACHO_LESS_10: ("tacho", Decimal("0.90")),
}


def parse_method(value: Any) -> TotalTimeMethod:
    if isinstance(value, TotalTimeMethod):
        return value
    try:
        return TotalTimeMethod(str(value))
    except ValueError:
        raise TransitionError(
            code="missing_requirements",
            detail=[{"field": "total_time_method", "reason": f"aircraft total_time_method {value!r} is not set or unknown"}],
        )


def meter_delta(start: Any, end: Any) -> Optional[Decimal]:
    """Raw end - start for one meter; None when either reading is missing."""
    if start is None or end is None:
        return None
    return Decimal(str(end)) - Decimal(str(start))


def applied_aircraft_delta(
    method: Any,
    hobbs_delta: Optional[Decimal],
    tach_delta: Optional[Decimal],
) -> Decimal:
    method = parse_method(method)
    meter, multiplier = _METHOD_RULES[method]
    delta = hobbs_delta if meter == "hobbs" else tach_delta
    field = "hobbs_end" if meter == "hobbs" else "tach_end"
    if delta is None:
        raise TransitionError(
            code="missing_requirements",
            detail=[{"field": field, "reason": f"{meter} delta is required for total_time_method={method.value}"}],
        )
    applied = delta * multiplier
    if applied < 0:
        raise TransitionError(
            code="missing_requirements",
            detail=[{"field": field, "reason": "applied aircraft delta must be non-negative"}],
        )
    return applied
