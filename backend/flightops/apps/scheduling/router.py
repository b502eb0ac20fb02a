# backend/flightops/apps/scheduling/router.py

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...database import get_db, get_read_db
from ...security import ActorContext, get_current_actor, require_staff
from . import lifecycle, schemas, services

router = APIRouter(
    prefix="",
    tags=["scheduling"],
    # Every scheduling route needs a caller context
    dependencies=[Depends(get_current_actor)],
)

# ---------------------------------------------------------------------------
# ROSTER RULES
# ---------------------------------------------------------------------------


@router.get("/roster-rules", response_model=List[schemas.RosterRuleRead])
def list_roster_rules(
    on: Optional[date] = None,
    day_of_week: Optional[int] = None,
    instructor_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    actor: ActorContext = Depends(get_current_actor),
):
    return services.list_roster_rules(
        db,
        tenant_id=actor.tenant_id,
        on=on,
        day_of_week=day_of_week,
        instructor_id=instructor_id,
    )


@router.post(
    "/roster-rules",
    response_model=List[schemas.RosterRuleRead],
    status_code=status.HTTP_201_CREATED,
)
def create_roster_rules(
    payload: schemas.RosterRuleCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    rules = services.create_roster_rules(db, actor=actor, payload=payload)
    db.commit()
    for rule in rules:
        db.refresh(rule)
    return rules


@router.patch("/roster-rules/{rule_id}", response_model=schemas.RosterRuleRead)
def update_roster_rule(
    rule_id: str,
    payload: schemas.RosterRuleUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    rule = services.update_roster_rule(db, actor=actor, rule_id=rule_id, payload=payload)
    db.commit()
    db.refresh(rule)
    return rule


@router.delete("/roster-rules/{rule_id}", response_model=schemas.RosterRuleRead)
def void_roster_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    rule = services.void_roster_rule(db, actor=actor, rule_id=rule_id)
    db.commit()
    db.refresh(rule)
    return rule


# ---------------------------------------------------------------------------
# AVAILABILITY
# ---------------------------------------------------------------------------


@router.get("/bookings/overlaps", response_model=schemas.OverlapsRead)
def booking_overlaps(
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    actor: ActorContext = Depends(get_current_actor),
):
    unavailable = services.unavailable_resources(
        db,
        tenant_id=actor.tenant_id,
        start_time=start_time,
        end_time=end_time,
        exclude_booking_id=exclude_booking_id,
    )
    return schemas.OverlapsRead(
        unavailable_aircraft_ids=sorted(unavailable.aircraft_ids),
        unavailable_instructor_ids=sorted(unavailable.instructor_ids),
    )


@router.get("/bookings/rostered-instructors", response_model=schemas.RosteredInstructorsRead)
def rostered_instructors(
    start_time: datetime,
    end_time: datetime,
    db: Session = Depends(get_read_db),
    actor: ActorContext = Depends(get_current_actor),
):
    ids = services.rostered_instructor_ids(
        db,
        tenant_id=actor.tenant_id,
        start_time=start_time,
        end_time=end_time,
    )
    return schemas.RosteredInstructorsRead(instructor_ids=sorted(ids))


@router.get("/bookings/stages", response_model=List[schemas.StageRead])
def booking_stages():
    return lifecycle.declared_stages()


# ---------------------------------------------------------------------------
# BOOKINGS
# ---------------------------------------------------------------------------


@router.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    booking = services.create_booking(db, actor=actor, payload=payload)
    db.commit()
    db.refresh(booking)
    return booking


@router.post(
    "/bookings/batch",
    response_model=List[schemas.BookingRead],
    status_code=status.HTTP_201_CREATED,
)
def create_bookings_batch(
    payload: schemas.BookingBatchCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    bookings = services.create_bookings_batch(db, actor=actor, payloads=payload.bookings)
    db.commit()
    for booking in bookings:
        db.refresh(booking)
    return bookings


@router.get("/bookings/{booking_id}", response_model=schemas.BookingDetailRead)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    booking = services.get_booking(db, tenant_id=actor.tenant_id, booking_id=booking_id)
    services.ensure_can_access(actor, booking)
    # A status outside the declared set is a data defect; surface it as UnknownStatus.
    lifecycle.parse_status(booking.status)
    return booking


@router.patch("/bookings/{booking_id}", response_model=schemas.BookingRead)
def update_booking(
    booking_id: str,
    payload: schemas.BookingUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    booking = services.update_booking(db, actor=actor, booking_id=booking_id, payload=payload)
    db.commit()
    db.refresh(booking)
    return booking


@router.post("/bookings/{booking_id}/cancel", response_model=schemas.BookingRead)
def cancel_booking(
    booking_id: str,
    payload: schemas.BookingCancel,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    booking = services.cancel_booking(db, actor=actor, booking_id=booking_id, payload=payload)
    db.commit()
    db.refresh(booking)
    return booking


@router.post("/bookings/{booking_id}/transition", response_model=schemas.BookingRead)
def transition_booking(
    booking_id: str,
    payload: schemas.BookingTransition,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    booking = services.transition_booking(db, actor=actor, booking_id=booking_id, payload=payload)
    db.commit()
    db.refresh(booking)
    return booking


@router.post(
    "/bookings/{booking_id}/checkin/approve",
    response_model=schemas.CheckinApprovalResult,
)
def approve_checkin(
    booking_id: str,
    payload: schemas.CheckinApproval,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    result = services.approve_checkin(db, actor=actor, booking_id=booking_id, payload=payload)
    db.commit()
    return result


@router.post(
    "/bookings/{booking_id}/checkin/correct",
    response_model=schemas.CheckinCorrectionResult,
)
def correct_checkin(
    booking_id: str,
    payload: schemas.CheckinCorrection,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    result = services.correct_checkin(db, actor=actor, booking_id=booking_id, payload=payload)
    db.commit()
    return result
