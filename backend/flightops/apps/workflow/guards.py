from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]

# (start field, end field) per meter a booking can record.
_METERS = (
    ("hobbs_start", "hobbs_end"),
    ("tach_start", "tach_end"),
    ("airswitch_start", "airswitch_end"),
)


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _reading(obj: Any, key: str) -> Optional[Decimal]:
    value = _get_value(obj, key)
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def guard_checkout_readings(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if _reading(after_obj, "hobbs_start") is None and _reading(after_obj, "tach_start") is None:
        return [{"field": "hobbs_start", "reason": "hobbs or tach start reading required at check-out"}]
    return []


def guard_checkin_readings(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    complete_pairs = 0
    for start_key, end_key in _METERS:
        start = _reading(after_obj, start_key)
        end = _reading(after_obj, end_key)
        if start is None:
            continue
        if end is None:
            missing.append({"field": end_key, "reason": f"{end_key} required at check-in"})
        elif end < start:
            missing.append({"field": end_key, "reason": f"{end_key} must not be less than {start_key}"})
        else:
            complete_pairs += 1
    if not missing and complete_pairs == 0:
        missing.append({"field": "hobbs_end", "reason": "at least one start/end meter pair required at check-in"})
    return missing


def guard_checkin_approved(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "checkin_approved_at"):
        missing.append({"field": "checkin_approved_at", "reason": "check-in approval required"})
    if not _get_value(after_obj, "checkin_approved_by"):
        missing.append({"field": "checkin_approved_by", "reason": "check-in approver required"})
    return missing
