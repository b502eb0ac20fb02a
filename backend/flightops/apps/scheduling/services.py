"""
Scheduling write path.

Booking writes run in this order:
    roster check -> advisory conflict check -> lock aircraft/instructor rows
    -> re-check on the write session -> insert/update -> flush

On PostgreSQL the `bookings` exclusion constraints reject anything that slips
past the in-app checks; that rejection (SQLSTATE 23P01) is reported as
ResourceConflict and never retried here.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flightops.apps.audit import services as audit_services
from flightops.apps.finance import models as finance_models
from flightops.apps.finance import schemas as finance_schemas
from flightops.apps.finance import services as finance_services
from flightops.apps.fleet import models as fleet_models
from flightops.apps.fleet.time_in_service import applied_aircraft_delta, meter_delta, parse_method
from flightops.apps.workflow import apply_transition
from flightops.errors import (
    DomainError,
    Forbidden,
    InstructorNotRostered,
    InvalidWindow,
    NotFound,
    ResourceConflict,
    TransitionError,
)
from flightops.security import ActorContext

from . import models, schemas
from .conflicts import (
    UnavailableResources,
    ensure_no_conflict,
    first_conflict_within,
    unavailable_resource_ids,
)
from .intervals import window_from
from .lifecycle import (
    METER_PAIRS,
    BookingStatus,
    billing_hours_for,
    compute_flight_times,
    parse_status,
)
from .roster import rostered_instructors_for, scheduler_weekday
from .timezone import as_utc, local_date_and_hhmm, school_timezone

logger = logging.getLogger(__name__)

EXCLUSION_VIOLATION = "23P01"

CREATABLE_STATUSES = (BookingStatus.UNCONFIRMED, BookingStatus.CONFIRMED, BookingStatus.BRIEFING)

_SCHEDULING_FIELDS = ("aircraft_id", "instructor_id", "start_time", "end_time")
_READING_FIELDS = tuple(key for pair in METER_PAIRS.values() for key in pair)
_MEMBER_EDITABLE_FIELDS = {"start_time", "end_time", "aircraft_id", "purpose", "remarks", "notes"}

# Frozen once check-in is approved.
_APPROVAL_LOCKED_FIELDS = set(_READING_FIELDS) | {
    "aircraft_id",
    "instructor_id",
    "user_id",
    "start_time",
    "end_time",
    "status",
    "checked_out_aircraft_id",
    "checked_out_instructor_id",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def booking_batch_limit() -> int:
    try:
        return int(os.getenv("BOOKING_BATCH_LIMIT", "50"))
    except ValueError:
        return 50


def _check_instants(start_time: datetime, end_time: datetime) -> None:
    if as_utc(end_time) <= as_utc(start_time):
        raise InvalidWindow.for_field("end_time", "end_time must be after start_time")


def _minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# ROSTER RULES
# ---------------------------------------------------------------------------


def list_roster_rules(
    db: Session,
    *,
    tenant_id: str,
    on: Optional[date] = None,
    day_of_week: Optional[int] = None,
    instructor_id: Optional[str] = None,
) -> List[models.RosterRule]:
    query = db.query(models.RosterRule).filter(
        models.RosterRule.tenant_id == tenant_id,
        models.RosterRule.voided_at.is_(None),
        models.RosterRule.is_active.is_(True),
    )
    if on is not None:
        query = query.filter(
            models.RosterRule.day_of_week == scheduler_weekday(on),
            models.RosterRule.effective_from <= on,
            or_(models.RosterRule.effective_until.is_(None), models.RosterRule.effective_until >= on),
        )
    if day_of_week is not None:
        query = query.filter(models.RosterRule.day_of_week == day_of_week)
    if instructor_id:
        query = query.filter(models.RosterRule.instructor_id == instructor_id)
    return query.order_by(models.RosterRule.start_time.asc()).all()


def _get_instructor(db: Session, *, tenant_id: str, instructor_id: str) -> models.Instructor:
    instructor = (
        db.query(models.Instructor)
        .filter(
            models.Instructor.tenant_id == tenant_id,
            models.Instructor.id == instructor_id,
            models.Instructor.voided_at.is_(None),
        )
        .first()
    )
    if not instructor:
        raise NotFound.for_field("instructor_id", "Instructor not found.")
    return instructor


def _get_rule(db: Session, *, tenant_id: str, rule_id: str) -> models.RosterRule:
    rule = (
        db.query(models.RosterRule)
        .filter(models.RosterRule.tenant_id == tenant_id, models.RosterRule.id == rule_id)
        .first()
    )
    if not rule:
        raise NotFound.for_field("rule_id", "Roster rule not found.")
    return rule


def _check_effective_range(effective_from: Optional[date], effective_until: Optional[date]) -> None:
    if effective_from is not None and effective_until is not None and effective_until < effective_from:
        raise InvalidWindow.for_field("effective_until", "effective_until must not be before effective_from")


def create_roster_rules(
    db: Session,
    *,
    actor: ActorContext,
    payload: schemas.RosterRuleCreate,
) -> List[models.RosterRule]:
    """One rule per requested weekday, all sharing the same window and date range."""
    _get_instructor(db, tenant_id=actor.tenant_id, instructor_id=payload.instructor_id)
    window = window_from(payload.start_time, payload.end_time)
    _check_effective_range(payload.effective_from, payload.effective_until)

    rules = []
    for day in payload.requested_days():
        rule = models.RosterRule(
            tenant_id=actor.tenant_id,
            instructor_id=payload.instructor_id,
            day_of_week=day,
            start_time=_minutes_to_time(window.start_min),
            end_time=_minutes_to_time(window.end_min),
            effective_from=payload.effective_from,
            effective_until=payload.effective_until,
            is_active=payload.is_active,
            notes=payload.notes,
        )
        db.add(rule)
        rules.append(rule)
    db.flush()

    logger.info(
        "Roster rules created",
        extra={
            "tenant_id": actor.tenant_id,
            "instructor_id": payload.instructor_id,
            "days": [rule.day_of_week for rule in rules],
            "window": str(window),
        },
    )
    return rules


def update_roster_rule(
    db: Session,
    *,
    actor: ActorContext,
    rule_id: str,
    payload: schemas.RosterRuleUpdate,
) -> models.RosterRule:
    rule = _get_rule(db, tenant_id=actor.tenant_id, rule_id=rule_id)
    if rule.voided_at is not None:
        raise NotFound.for_field("rule_id", "Roster rule not found.")

    data = payload.model_dump(exclude_unset=True)
    start = data.pop("start_time", None) or rule.start_time
    end = data.pop("end_time", None) or rule.end_time
    window = window_from(start, end)
    _check_effective_range(
        data.get("effective_from", rule.effective_from),
        data.get("effective_until", rule.effective_until),
    )

    for key, value in data.items():
        if value is None and key in ("day_of_week", "effective_from", "is_active"):
            continue
        setattr(rule, key, value)
    rule.start_time = _minutes_to_time(window.start_min)
    rule.end_time = _minutes_to_time(window.end_min)
    db.flush()
    return rule


def void_roster_rule(db: Session, *, actor: ActorContext, rule_id: str) -> models.RosterRule:
    rule = _get_rule(db, tenant_id=actor.tenant_id, rule_id=rule_id)
    if rule.voided_at is None:
        rule.voided_at = _utcnow()
        rule.is_active = False
        db.flush()
        logger.info(
            "Roster rule voided",
            extra={"tenant_id": actor.tenant_id, "rule_id": rule.id, "instructor_id": rule.instructor_id},
        )
    return rule


# ---------------------------------------------------------------------------
# AVAILABILITY
# ---------------------------------------------------------------------------


def rostered_instructor_ids(
    db: Session,
    *,
    tenant_id: str,
    start_time: datetime,
    end_time: datetime,
) -> Set[str]:
    """
    Instructors whose roster covers the booking window in school-local time.

    A window that crosses local midnight is covered by no rule.
    """
    _check_instants(start_time, end_time)
    tz = school_timezone()
    start_date, start_hhmm = local_date_and_hhmm(start_time, tz)
    end_date, end_hhmm = local_date_and_hhmm(end_time, tz, ceil=True)
    if start_date != end_date:
        return set()
    rules = list_roster_rules(db, tenant_id=tenant_id, on=start_date)
    return rostered_instructors_for(rules, start_date, start_hhmm, end_hhmm)


def ensure_instructor_rostered(
    db: Session,
    *,
    tenant_id: str,
    instructor_id: str,
    start_time: datetime,
    end_time: datetime,
) -> None:
    if str(instructor_id) not in rostered_instructor_ids(
        db, tenant_id=tenant_id, start_time=start_time, end_time=end_time
    ):
        raise InstructorNotRostered.for_field(
            "instructor_id", "Instructor is not rostered on for the selected time"
        )


def _overlapping_query(
    db: Session,
    *,
    tenant_id: str,
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: Optional[str] = None,
):
    query = db.query(models.Booking).filter(
        models.Booking.tenant_id == tenant_id,
        models.Booking.cancelled_at.is_(None),
        models.Booking.status != BookingStatus.CANCELLED.value,
        models.Booking.start_time < as_utc(end_time),
        models.Booking.end_time > as_utc(start_time),
    )
    if exclude_booking_id:
        query = query.filter(models.Booking.id != exclude_booking_id)
    return query


def unavailable_resources(
    db: Session,
    *,
    tenant_id: str,
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: Optional[str] = None,
) -> UnavailableResources:
    _check_instants(start_time, end_time)
    rows = _overlapping_query(
        db,
        tenant_id=tenant_id,
        start_time=start_time,
        end_time=end_time,
        exclude_booking_id=exclude_booking_id,
    ).all()
    return unavailable_resource_ids(rows, start_time, end_time, exclude_booking_id)


def _ensure_no_store_conflict(db: Session, *, tenant_id: str, candidate: Dict[str, Any]) -> None:
    query = _overlapping_query(
        db,
        tenant_id=tenant_id,
        start_time=candidate["start_time"],
        end_time=candidate["end_time"],
        exclude_booking_id=candidate.get("id"),
    )
    resource_filters = [models.Booking.aircraft_id == candidate["aircraft_id"]]
    if candidate.get("instructor_id"):
        resource_filters.append(models.Booking.instructor_id == candidate["instructor_id"])
    existing = query.filter(or_(*resource_filters)).all()
    ensure_no_conflict(candidate, existing)


def _lock_resources(
    db: Session,
    *,
    tenant_id: str,
    aircraft_ids: Iterable[str],
    instructor_ids: Iterable[str],
) -> None:
    """SELECT ... FOR UPDATE on the booked resources, in id order (no-op on SQLite)."""
    aircraft_ids = sorted(set(aircraft_ids))
    if aircraft_ids:
        found = (
            db.query(fleet_models.Aircraft.id)
            .filter(fleet_models.Aircraft.tenant_id == tenant_id, fleet_models.Aircraft.id.in_(aircraft_ids))
            .order_by(fleet_models.Aircraft.id)
            .with_for_update()
            .all()
        )
        if len(found) != len(aircraft_ids):
            raise NotFound.for_field("aircraft_id", "Aircraft not found.")

    instructor_ids = sorted(set(i for i in instructor_ids if i))
    if instructor_ids:
        found = (
            db.query(models.Instructor.id)
            .filter(
                models.Instructor.tenant_id == tenant_id,
                models.Instructor.id.in_(instructor_ids),
                models.Instructor.voided_at.is_(None),
            )
            .order_by(models.Instructor.id)
            .with_for_update()
            .all()
        )
        if len(found) != len(instructor_ids):
            raise NotFound.for_field("instructor_id", "Instructor not found.")


def is_exclusion_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == EXCLUSION_VIOLATION


def _conflict_from_integrity_error(exc: IntegrityError) -> ResourceConflict:
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    constraint = (getattr(diag, "constraint_name", None) or str(orig or "")).lower()
    aircraft = "aircraft" in constraint
    instructor = "instructor" in constraint
    if not (aircraft or instructor):
        return ResourceConflict(detail=[{"field": "start_time", "reason": "overlaps an existing booking"}])
    return ResourceConflict(aircraft_conflict=aircraft, instructor_conflict=instructor)


def _flush_or_conflict(db: Session, *, tenant_id: str, booking_ids: Sequence[str] = ()) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if is_exclusion_violation(exc):
            logger.warning(
                "Booking write rejected by exclusion constraint",
                extra={"tenant_id": tenant_id, "booking_ids": list(booking_ids)},
            )
            raise _conflict_from_integrity_error(exc) from exc
        raise


# ---------------------------------------------------------------------------
# BOOKINGS
# ---------------------------------------------------------------------------


def get_booking(db: Session, *, tenant_id: str, booking_id: str, for_update: bool = False) -> models.Booking:
    query = db.query(models.Booking).filter(
        models.Booking.tenant_id == tenant_id,
        models.Booking.id == booking_id,
    )
    if for_update:
        query = query.with_for_update()
    booking = query.first()
    if not booking:
        raise NotFound.for_field("booking_id", "Booking not found.")
    return booking


def ensure_can_access(actor: ActorContext, booking: models.Booking) -> None:
    if not actor.is_staff and booking.user_id != actor.user_id:
        raise NotFound.for_field("booking_id", "Booking not found.")


def _candidate_from_payload(actor: ActorContext, payload: schemas.BookingCreate) -> Dict[str, Any]:
    _check_instants(payload.start_time, payload.end_time)
    if actor.is_staff:
        user_id = payload.user_id
        status = payload.status or BookingStatus.UNCONFIRMED
    else:
        user_id = actor.user_id
        status = BookingStatus.UNCONFIRMED
    if status not in CREATABLE_STATUSES:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": "new bookings start unconfirmed, confirmed or in briefing"}],
        )
    return {
        "aircraft_id": payload.aircraft_id,
        "instructor_id": payload.instructor_id,
        "user_id": user_id,
        "start_time": as_utc(payload.start_time),
        "end_time": as_utc(payload.end_time),
        "status": status.value,
        "booking_type": payload.booking_type.value,
        "purpose": payload.purpose,
        "remarks": payload.remarks,
        "notes": payload.notes,
    }


def _prefix_fields(exc: DomainError, index: int) -> DomainError:
    for issue in exc.detail:
        issue["field"] = f"bookings[{index}].{issue.get('field', '')}"
    return exc


def _insert_bookings(
    db: Session,
    *,
    actor: ActorContext,
    candidates: List[Dict[str, Any]],
    batch: bool = False,
) -> List[models.Booking]:
    tenant_id = actor.tenant_id

    # Every candidate is roster-checked before anything is written.
    for index, candidate in enumerate(candidates):
        if not candidate["instructor_id"]:
            continue
        try:
            ensure_instructor_rostered(
                db,
                tenant_id=tenant_id,
                instructor_id=candidate["instructor_id"],
                start_time=candidate["start_time"],
                end_time=candidate["end_time"],
            )
        except InstructorNotRostered as exc:
            logger.warning(
                "Booking rejected: instructor not rostered",
                extra={"tenant_id": tenant_id, "instructor_id": candidate["instructor_id"], "index": index},
            )
            raise _prefix_fields(exc, index) if batch else exc

    clash = first_conflict_within(candidates)
    if clash is not None:
        i, j, result = clash
        logger.warning(
            "Booking batch rejected: candidates overlap",
            extra={"tenant_id": tenant_id, "first_index": i, "second_index": j},
        )
        raise _prefix_fields(
            ResourceConflict(
                aircraft_conflict=result.aircraft_conflict,
                instructor_conflict=result.instructor_conflict,
            ),
            j,
        )

    def _check_store() -> None:
        for index, candidate in enumerate(candidates):
            try:
                _ensure_no_store_conflict(db, tenant_id=tenant_id, candidate=candidate)
            except ResourceConflict as exc:
                logger.warning(
                    "Booking rejected: resource conflict",
                    extra={
                        "tenant_id": tenant_id,
                        "aircraft_id": candidate["aircraft_id"],
                        "instructor_id": candidate["instructor_id"],
                        "aircraft_conflict": exc.aircraft_conflict,
                        "instructor_conflict": exc.instructor_conflict,
                    },
                )
                raise _prefix_fields(exc, index) if batch else exc

    # Advisory pass, then the same check again while holding the resource locks.
    _check_store()
    _lock_resources(
        db,
        tenant_id=tenant_id,
        aircraft_ids=[c["aircraft_id"] for c in candidates],
        instructor_ids=[c["instructor_id"] for c in candidates],
    )
    _check_store()

    bookings = [models.Booking(tenant_id=tenant_id, **candidate) for candidate in candidates]
    db.add_all(bookings)
    _flush_or_conflict(db, tenant_id=tenant_id)

    for booking in bookings:
        audit_services.log_event(
            db,
            tenant_id=tenant_id,
            actor_user_id=actor.user_id,
            entity_type="booking",
            entity_id=str(booking.id),
            action="create",
            after={key: _json_value(value) for key, value in _scheduling_snapshot(booking).items()},
            metadata={"module": "scheduling", "batch": batch},
        )
    return bookings


def _scheduling_snapshot(booking: models.Booking) -> Dict[str, Any]:
    return {
        "aircraft_id": booking.aircraft_id,
        "instructor_id": booking.instructor_id,
        "user_id": booking.user_id,
        "start_time": booking.start_time,
        "end_time": booking.end_time,
        "status": booking.status,
    }


def create_booking(
    db: Session,
    *,
    actor: ActorContext,
    payload: schemas.BookingCreate,
) -> models.Booking:
    candidate = _candidate_from_payload(actor, payload)
    return _insert_bookings(db, actor=actor, candidates=[candidate])[0]


def create_bookings_batch(
    db: Session,
    *,
    actor: ActorContext,
    payloads: Sequence[schemas.BookingCreate],
) -> List[models.Booking]:
    """All-or-nothing: any rejected candidate fails the whole batch."""
    limit = booking_batch_limit()
    if not payloads or len(payloads) > limit:
        raise DomainError(
            f"A batch must contain between 1 and {limit} bookings.",
            code="invalid_batch",
            detail=[{"field": "bookings", "reason": f"between 1 and {limit} bookings required"}],
        )

    candidates = []
    for index, payload in enumerate(payloads):
        try:
            candidates.append(_candidate_from_payload(actor, payload))
        except DomainError as exc:
            raise _prefix_fields(exc, index)

    bookings = _insert_bookings(db, actor=actor, candidates=candidates, batch=True)
    logger.info(
        "Booking batch created",
        extra={"tenant_id": actor.tenant_id, "count": len(bookings), "booking_ids": [b.id for b in bookings]},
    )
    return bookings


def _readings_snapshot(booking: models.Booking) -> Dict[str, Any]:
    snapshot = {key: _json_value(getattr(booking, key)) for key in _READING_FIELDS}
    snapshot["checkin_approved_at"] = _json_value(booking.checkin_approved_at)
    snapshot["checkin_approved_by"] = booking.checkin_approved_by
    return snapshot


def _apply_status(
    db: Session,
    *,
    actor: ActorContext,
    booking: models.Booking,
    to_status: Any,
    cancellation: Optional[schemas.BookingCancel] = None,
) -> None:
    from_status = parse_status(booking.status)
    to_status = parse_status(to_status)

    apply_transition(
        db,
        actor_user_id=actor.user_id,
        tenant_id=actor.tenant_id,
        entity_type="booking",
        entity_id=str(booking.id),
        from_state=from_status.value,
        to_state=to_status.value,
        before_obj={"status": from_status.value},
        after_obj={"status": to_status.value, **_readings_snapshot(booking)},
    )

    if to_status is BookingStatus.CHECKIN:
        for key, value in compute_flight_times(booking).items():
            setattr(booking, key, value)
    if to_status is BookingStatus.CANCELLED:
        booking.cancelled_at = _utcnow()
        booking.cancelled_by = actor.user_id
        if cancellation is not None:
            booking.cancellation_reason = cancellation.reason
            booking.cancellation_category_id = cancellation.cancellation_category_id
            booking.cancelled_notes = cancellation.notes
    booking.status = to_status.value


def _ensure_not_approved(booking: models.Booking, fields: Iterable[str]) -> None:
    if booking.checkin_approved_at is None:
        return
    locked = sorted(set(fields) & _APPROVAL_LOCKED_FIELDS)
    if locked:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": key, "reason": "booking check-in is approved and immutable"} for key in locked],
        )


def update_booking(
    db: Session,
    *,
    actor: ActorContext,
    booking_id: str,
    payload: schemas.BookingUpdate,
) -> models.Booking:
    booking = get_booking(db, tenant_id=actor.tenant_id, booking_id=booking_id, for_update=True)
    ensure_can_access(actor, booking)
    if booking.is_cancelled:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": "cancelled bookings cannot be edited"}],
        )

    data = payload.model_dump(exclude_unset=True)
    if not actor.is_staff:
        forbidden = sorted(set(data) - _MEMBER_EDITABLE_FIELDS)
        if forbidden:
            raise Forbidden(
                "Members can only change the time, aircraft and notes of their bookings.",
                code="forbidden_fields",
                detail=[{"field": key, "reason": "staff only"} for key in forbidden],
            )
    _ensure_not_approved(booking, data)

    to_status = data.pop("status", None)
    if any(key in data for key in _SCHEDULING_FIELDS):
        if data.get("aircraft_id", booking.aircraft_id) is None:
            raise DomainError(
                "A booking needs an aircraft.",
                code="missing_aircraft",
                detail=[{"field": "aircraft_id", "reason": "aircraft required"}],
            )
        candidate = {
            "id": booking.id,
            "aircraft_id": data.get("aircraft_id", booking.aircraft_id),
            "instructor_id": data.get("instructor_id", booking.instructor_id),
            "start_time": as_utc(data.get("start_time") or booking.start_time),
            "end_time": as_utc(data.get("end_time") or booking.end_time),
        }
        _check_instants(candidate["start_time"], candidate["end_time"])
        if candidate["instructor_id"]:
            ensure_instructor_rostered(
                db,
                tenant_id=actor.tenant_id,
                instructor_id=candidate["instructor_id"],
                start_time=candidate["start_time"],
                end_time=candidate["end_time"],
            )
        _ensure_no_store_conflict(db, tenant_id=actor.tenant_id, candidate=candidate)
        _lock_resources(
            db,
            tenant_id=actor.tenant_id,
            aircraft_ids=[candidate["aircraft_id"]],
            instructor_ids=[candidate["instructor_id"]],
        )
        _ensure_no_store_conflict(db, tenant_id=actor.tenant_id, candidate=candidate)
        data.update({key: candidate[key] for key in _SCHEDULING_FIELDS})

    for key, value in data.items():
        if isinstance(value, (BookingStatus, models.BookingType)):
            value = value.value
        setattr(booking, key, value)

    if to_status is not None and parse_status(to_status) is not parse_status(booking.status):
        _apply_status(db, actor=actor, booking=booking, to_status=to_status)

    _flush_or_conflict(db, tenant_id=actor.tenant_id, booking_ids=[booking.id])
    return booking


def cancel_booking(
    db: Session,
    *,
    actor: ActorContext,
    booking_id: str,
    payload: schemas.BookingCancel,
) -> models.Booking:
    if not actor.is_staff:
        raise Forbidden.for_field("booking_id", "Only staff can cancel bookings.")
    booking = get_booking(db, tenant_id=actor.tenant_id, booking_id=booking_id, for_update=True)
    _apply_status(db, actor=actor, booking=booking, to_status=BookingStatus.CANCELLED, cancellation=payload)
    db.flush()
    logger.info(
        "Booking cancelled",
        extra={"tenant_id": actor.tenant_id, "booking_id": booking.id, "reason": payload.reason},
    )
    return booking


def transition_booking(
    db: Session,
    *,
    actor: ActorContext,
    booking_id: str,
    payload: schemas.BookingTransition,
) -> models.Booking:
    booking = get_booking(db, tenant_id=actor.tenant_id, booking_id=booking_id, for_update=True)
    readings = payload.model_dump(exclude={"to_status"}, exclude_none=True)
    _ensure_not_approved(booking, readings)
    for key, value in readings.items():
        setattr(booking, key, value)

    _apply_status(db, actor=actor, booking=booking, to_status=payload.to_status)
    db.flush()
    return booking


# ---------------------------------------------------------------------------
# CHECK-IN APPROVAL / AIRCRAFT TIME IN SERVICE
# ---------------------------------------------------------------------------


def _lock_aircraft(db: Session, *, tenant_id: str, aircraft_id: str) -> fleet_models.Aircraft:
    aircraft = (
        db.query(fleet_models.Aircraft)
        .filter(fleet_models.Aircraft.tenant_id == tenant_id, fleet_models.Aircraft.id == aircraft_id)
        .with_for_update()
        .first()
    )
    if not aircraft:
        raise NotFound.for_field("checked_out_aircraft_id", "Aircraft not found.")
    return aircraft


def _log_time_in_service(
    db: Session,
    *,
    actor: ActorContext,
    aircraft: fleet_models.Aircraft,
    booking: models.Booking,
    action: str,
    before: Decimal,
    after: Decimal,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=actor.tenant_id,
        actor_user_id=actor.user_id,
        entity_type="aircraft",
        entity_id=str(aircraft.id),
        action=action,
        before={"total_time_in_service": _json_value(before)},
        after={"total_time_in_service": _json_value(after)},
        metadata={"module": "scheduling", "booking_id": str(booking.id)},
        critical=True,
    )


def approve_checkin(
    db: Session,
    *,
    actor: ActorContext,
    booking_id: str,
    payload: schemas.CheckinApproval,
) -> schemas.CheckinApprovalResult:
    """
    Approve a flight's check-in: bill it and close the booking, atomically.

    Creates a pending invoice for the booking's member, records the billed
    hours and moves the booking to `complete`. Nothing is committed here; the
    caller commits or rolls back the whole unit.
    """
    booking = get_booking(db, tenant_id=actor.tenant_id, booking_id=booking_id, for_update=True)

    if booking.booking_type != models.BookingType.FLIGHT.value:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "booking_type", "reason": "only flight bookings can be checked in"}],
        )
    if booking.is_cancelled:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": "cancelled bookings cannot be checked in"}],
        )
    if booking.checkin_approved_at is not None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "checkin_approved_at", "reason": "check-in already approved"}],
        )
    status = parse_status(booking.status)
    if status not in (BookingStatus.FLYING, BookingStatus.CHECKIN):
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": f"cannot approve check-in from {status.value}"}],
        )

    missing = []
    if not booking.user_id:
        missing.append({"field": "user_id", "reason": "booking has no member to invoice"})
    if not payload.items:
        missing.append({"field": "items", "reason": "at least one invoice item required"})
    if missing:
        raise TransitionError(code="missing_requirements", detail=missing)

    values = payload.model_dump(
        include=set(_READING_FIELDS) | {"dual_time", "solo_time", "checked_out_aircraft_id", "checked_out_instructor_id"},
        exclude_none=True,
    )
    for key, value in values.items():
        setattr(booking, key, value)

    if status is BookingStatus.FLYING:
        _apply_status(db, actor=actor, booking=booking, to_status=BookingStatus.CHECKIN)
    else:
        for key, value in compute_flight_times(booking).items():
            setattr(booking, key, value)

    basis = payload.billing_basis.value
    billing_hours = payload.billing_hours
    if billing_hours is None:
        billing_hours = billing_hours_for(basis, {
            "flight_time_hobbs": booking.flight_time_hobbs,
            "flight_time_tach": booking.flight_time_tach,
            "flight_time_airswitch": booking.flight_time_airswitch,
        })
    if billing_hours is None or Decimal(str(billing_hours)) <= 0:
        raise TransitionError(
            code="missing_requirements",
            detail=[{"field": "billing_hours", "reason": "billing hours must be greater than zero"}],
        )

    aircraft_id = booking.checked_out_aircraft_id or booking.aircraft_id
    aircraft = _lock_aircraft(db, tenant_id=actor.tenant_id, aircraft_id=aircraft_id)
    method = parse_method(aircraft.total_time_method)
    applied_delta = applied_aircraft_delta(
        method,
        meter_delta(booking.hobbs_start, booking.hobbs_end),
        meter_delta(booking.tach_start, booking.tach_end),
    )
    total_hours_start = Decimal(str(aircraft.total_time_in_service or 0))
    total_hours_end = total_hours_start + applied_delta

    invoice = finance_services.create_invoice(
        db,
        actor=actor,
        payload=finance_schemas.InvoiceCreate(
            user_id=booking.user_id,
            booking_id=booking.id,
            status=finance_models.InvoiceStatusEnum.PENDING,
            due_date=payload.due_date,
            reference=payload.reference,
            notes=payload.notes,
            tax_rate=payload.tax_rate,
            items=payload.items,
        ),
    )

    booking.billing_basis = basis
    booking.billing_hours = billing_hours
    booking.flight_time = billing_hours
    booking.checked_out_aircraft_id = aircraft_id
    booking.total_hours_start = total_hours_start
    booking.total_hours_end = total_hours_end
    booking.applied_aircraft_delta = applied_delta
    booking.applied_total_time_method = method.value
    booking.checkin_invoice_id = invoice.id
    booking.checkin_approved_at = _utcnow()
    booking.checkin_approved_by = actor.user_id
    aircraft.total_time_in_service = total_hours_end
    _log_time_in_service(
        db,
        actor=actor,
        aircraft=aircraft,
        booking=booking,
        action="checkin_approved",
        before=total_hours_start,
        after=total_hours_end,
    )
    _apply_status(db, actor=actor, booking=booking, to_status=BookingStatus.COMPLETE)
    db.flush()

    logger.info(
        "Booking check-in approved",
        extra={
            "tenant_id": actor.tenant_id,
            "booking_id": booking.id,
            "invoice_id": invoice.id,
            "billing_basis": basis,
            "billing_hours": str(billing_hours),
            "aircraft_id": aircraft_id,
            "applied_aircraft_delta": str(applied_delta),
        },
    )
    return schemas.CheckinApprovalResult(
        booking_id=booking.id,
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        billing_hours=billing_hours,
        applied_aircraft_delta=applied_delta,
        total_hours_start=total_hours_start,
        total_hours_end=total_hours_end,
    )


def correct_checkin(
    db: Session,
    *,
    actor: ActorContext,
    booking_id: str,
    payload: schemas.CheckinCorrection,
) -> schemas.CheckinCorrectionResult:
    """
    Correct the end readings of an approved check-in.

    The aircraft's TTIS moves by the difference between the corrected and the
    previously applied delta, using the total time method snapshotted at
    approval. Billing and the check-in invoice stay as approved.
    """
    booking = get_booking(db, tenant_id=actor.tenant_id, booking_id=booking_id, for_update=True)

    if booking.booking_type != models.BookingType.FLIGHT.value:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "booking_type", "reason": "only flight bookings can be corrected"}],
        )
    if booking.is_cancelled:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": "cancelled bookings cannot be corrected"}],
        )
    if booking.checkin_approved_at is None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "checkin_approved_at", "reason": "only an approved check-in can be corrected"}],
        )
    missing = []
    if not booking.checked_out_aircraft_id:
        missing.append({"field": "checked_out_aircraft_id", "reason": "booking has no checked-out aircraft"})
    if booking.applied_aircraft_delta is None:
        missing.append({"field": "applied_aircraft_delta", "reason": "no applied aircraft delta to correct"})
    if not booking.applied_total_time_method:
        missing.append({"field": "applied_total_time_method", "reason": "no total time method snapshot"})
    if missing:
        raise TransitionError(code="missing_requirements", detail=missing)

    aircraft = _lock_aircraft(db, tenant_id=actor.tenant_id, aircraft_id=booking.checked_out_aircraft_id)

    ends = payload.model_dump(include={"hobbs_end", "tach_end", "airswitch_end"}, exclude_unset=True)
    readings = {key: getattr(booking, key) for key in _READING_FIELDS}
    readings.update(ends)
    flight_times = compute_flight_times(readings)

    old_applied = Decimal(str(booking.applied_aircraft_delta))
    new_applied = applied_aircraft_delta(
        booking.applied_total_time_method,
        meter_delta(readings["hobbs_start"], readings["hobbs_end"]),
        meter_delta(readings["tach_start"], readings["tach_end"]),
    )
    correction = new_applied - old_applied
    ttis_before = Decimal(str(aircraft.total_time_in_service or 0))
    ttis_after = ttis_before + correction
    if ttis_after < 0:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "correction_delta", "reason": "correction would make aircraft time in service negative"}],
        )

    for key, value in ends.items():
        setattr(booking, key, value)
    for key, value in flight_times.items():
        setattr(booking, key, value)
    booking.applied_aircraft_delta = new_applied
    booking.correction_delta = correction
    booking.total_hours_end = Decimal(str(booking.total_hours_end or 0)) + correction
    booking.corrected_at = _utcnow()
    booking.corrected_by = actor.user_id
    booking.correction_reason = payload.correction_reason.strip()
    aircraft.total_time_in_service = ttis_after

    _log_time_in_service(
        db,
        actor=actor,
        aircraft=aircraft,
        booking=booking,
        action="checkin_corrected",
        before=ttis_before,
        after=ttis_after,
    )
    db.flush()

    logger.info(
        "Booking check-in corrected",
        extra={
            "tenant_id": actor.tenant_id,
            "booking_id": booking.id,
            "aircraft_id": aircraft.id,
            "correction_delta": str(correction),
        },
    )
    return schemas.CheckinCorrectionResult(
        booking_id=booking.id,
        old_applied_delta=old_applied,
        new_applied_delta=new_applied,
        correction_delta=correction,
        aircraft_total_time_in_service=ttis_after,
    )
