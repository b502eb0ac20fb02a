"""
Scheduling data models: instructors, weekly roster rules and bookings.

Soft delete everywhere: roster rules are voided (`voided_at`), bookings are
cancelled (`cancelled_at` + status), never removed. On PostgreSQL the
`bookings` table also carries two exclusion constraints (see the initial
alembic revision) so no two live bookings can share an aircraft or an
instructor over overlapping time.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7
from .lifecycle import BookingStatus, booking_progress
from .roster import Liveness, rule_liveness


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_list(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class BookingType(str, enum.Enum):
    FLIGHT = "flight"
    GROUNDWORK = "groundwork"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class BillingBasis(str, enum.Enum):
    HOBBS = "hobbs"
    TACHO = "tacho"
    AIRSWITCH = "airswitch"


class Instructor(Base):
    __tablename__ = "instructors"
    __table_args__ = (Index("ix_instructors_tenant_active", "tenant_id", "is_active"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.id


class RosterRule(Base):
    """
    Recurring weekly window in which an instructor can be booked.

    day_of_week: 0 = Sunday .. 6 = Saturday (school-local calendar).
    """

    __tablename__ = "roster_rules"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_roster_rules_day_of_week"),
        CheckConstraint("end_time > start_time", name="ck_roster_rules_window"),
        CheckConstraint(
            "effective_until IS NULL OR effective_until >= effective_from",
            name="ck_roster_rules_effective_range",
        ),
        Index("ix_roster_rules_tenant_day", "tenant_id", "day_of_week", "is_active"),
        Index("ix_roster_rules_instructor", "tenant_id", "instructor_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    instructor_id = Column(String(36), ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False)

    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    effective_from = Column(Date, nullable=False)
    effective_until = Column(Date, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    instructor = relationship("Instructor", lazy="joined")

    @property
    def liveness(self) -> Liveness:
        return rule_liveness(self)

    def __repr__(self) -> str:
        return (
            f"<RosterRule id={self.id} instructor={self.instructor_id} "
            f"dow={self.day_of_week} {self.start_time}-{self.end_time}>"
        )


class Booking(Base):
    """
    Reservation of an aircraft (and optionally an instructor) for [start_time, end_time).

    Check-out/check-in data lives on the booking itself: meter readings,
    derived flight times and the billing basis used when check-in is approved.
    Once `checkin_approved_at` is set those fields are frozen.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        CheckConstraint(_in_list("status", [s.value for s in BookingStatus]), name="ck_bookings_status"),
        CheckConstraint(_in_list("booking_type", [t.value for t in BookingType]), name="ck_bookings_type"),
        Index("ix_bookings_tenant_window", "tenant_id", "start_time", "end_time"),
        Index("ix_bookings_aircraft_window", "aircraft_id", "start_time"),
        Index("ix_bookings_instructor_window", "instructor_id", "start_time"),
        Index("ix_bookings_user", "tenant_id", "user_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    tenant_id = Column(String(36), nullable=False, index=True)

    aircraft_id = Column(String(36), ForeignKey("aircraft.id", ondelete="RESTRICT"), nullable=False)
    instructor_id = Column(String(36), ForeignKey("instructors.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(36), nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    # Plain string + check constraint: an unexpected value loads and surfaces as UnknownStatus.
    status = Column(String(32), nullable=False, default=BookingStatus.UNCONFIRMED.value)
    booking_type = Column(String(32), nullable=False, default=BookingType.FLIGHT.value)

    purpose = Column(String(1000), nullable=True)
    remarks = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Cancellation (terminal soft state)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    cancellation_category_id = Column(String(36), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_notes = Column(Text, nullable=True)

    # Check-out
    checked_out_aircraft_id = Column(String(36), ForeignKey("aircraft.id", ondelete="SET NULL"), nullable=True)
    checked_out_instructor_id = Column(String(36), ForeignKey("instructors.id", ondelete="SET NULL"), nullable=True)
    eta = Column(DateTime(timezone=True), nullable=True)
    fuel_on_board = Column(Integer, nullable=True)
    route = Column(String(500), nullable=True)
    passengers = Column(String(500), nullable=True)

    # Meter readings
    hobbs_start = Column(Numeric(10, 2), nullable=True)
    hobbs_end = Column(Numeric(10, 2), nullable=True)
    tach_start = Column(Numeric(10, 2), nullable=True)
    tach_end = Column(Numeric(10, 2), nullable=True)
    airswitch_start = Column(Numeric(10, 2), nullable=True)
    airswitch_end = Column(Numeric(10, 2), nullable=True)

    # Derived at check-in
    flight_time_hobbs = Column(Numeric(8, 1), nullable=True)
    flight_time_tach = Column(Numeric(8, 1), nullable=True)
    flight_time_airswitch = Column(Numeric(8, 1), nullable=True)
    flight_time = Column(Numeric(8, 1), nullable=True)
    dual_time = Column(Numeric(8, 1), nullable=True)
    solo_time = Column(Numeric(8, 1), nullable=True)

    # Check-in approval (financially critical)
    billing_basis = Column(String(16), nullable=True)
    billing_hours = Column(Numeric(8, 1), nullable=True)
    checkin_invoice_id = Column(String(36), nullable=True)
    checkin_approved_at = Column(DateTime(timezone=True), nullable=True)
    checkin_approved_by = Column(String(36), nullable=True)

    # Aircraft TTIS applied at approval, and the latest correction of it
    total_hours_start = Column(Numeric(12, 4), nullable=True)
    total_hours_end = Column(Numeric(12, 4), nullable=True)
    applied_aircraft_delta = Column(Numeric(12, 4), nullable=True)
    applied_total_time_method = Column(String(32), nullable=True)
    correction_delta = Column(Numeric(12, 4), nullable=True)
    corrected_at = Column(DateTime(timezone=True), nullable=True)
    corrected_by = Column(String(36), nullable=True)
    correction_reason = Column(String(1000), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    aircraft = relationship("Aircraft", foreign_keys=[aircraft_id], lazy="select")
    instructor = relationship("Instructor", foreign_keys=[instructor_id], lazy="select")

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None or self.status == BookingStatus.CANCELLED.value

    @property
    def progress(self):
        return booking_progress(self.status)

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} aircraft={self.aircraft_id} instructor={self.instructor_id} "
            f"{self.start_time}-{self.end_time} status={self.status}>"
        )
