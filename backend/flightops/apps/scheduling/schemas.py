from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from flightops.apps.finance.schemas import InvoiceItemCreate

from .lifecycle import BookingStatus
from .models import BillingBasis, BookingType

# ---------------------------------------------------------------------------
# ROSTER RULES
# ---------------------------------------------------------------------------


class RosterRuleCreate(BaseModel):
    instructor_id: str
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    days_of_week: Optional[List[int]] = None
    # "HH:MM" or "HH:MM:SS", school-local wall clock.
    start_time: str
    end_time: str
    effective_from: date
    effective_until: Optional[date] = None
    is_active: bool = True
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _requires_a_day(self):
        if self.day_of_week is None and not self.days_of_week:
            raise ValueError("day_of_week or days_of_week is required")
        for day in self.days_of_week or []:
            if day < 0 or day > 6:
                raise ValueError("days_of_week entries must be between 0 and 6")
        return self

    def requested_days(self) -> List[int]:
        days = list(self.days_of_week or [])
        if self.day_of_week is not None:
            days.append(self.day_of_week)
        return sorted(set(days))


class RosterRuleUpdate(BaseModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    effective_from: Optional[date] = None
    effective_until: Optional[date] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class RosterRuleRead(BaseModel):
    id: str
    instructor_id: str
    day_of_week: int
    start_time: time
    end_time: time
    effective_from: date
    effective_until: Optional[date] = None
    is_active: bool
    voided_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# BOOKINGS
# ---------------------------------------------------------------------------


class BookingCreate(BaseModel):
    aircraft_id: str
    instructor_id: Optional[str] = None
    user_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: Optional[BookingStatus] = None
    booking_type: BookingType = BookingType.FLIGHT
    purpose: Optional[str] = Field(default=None, max_length=1000)
    remarks: Optional[str] = None
    notes: Optional[str] = None


class BookingBatchCreate(BaseModel):
    bookings: List[BookingCreate] = Field(..., min_length=1)


class MeterReadings(BaseModel):
    hobbs_start: Optional[Decimal] = None
    hobbs_end: Optional[Decimal] = None
    tach_start: Optional[Decimal] = None
    tach_end: Optional[Decimal] = None
    airswitch_start: Optional[Decimal] = None
    airswitch_end: Optional[Decimal] = None


class BookingUpdate(MeterReadings):
    aircraft_id: Optional[str] = None
    instructor_id: Optional[str] = None
    user_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[BookingStatus] = None
    booking_type: Optional[BookingType] = None
    purpose: Optional[str] = Field(default=None, max_length=1000)
    remarks: Optional[str] = None
    notes: Optional[str] = None

    checked_out_aircraft_id: Optional[str] = None
    checked_out_instructor_id: Optional[str] = None
    eta: Optional[datetime] = None
    fuel_on_board: Optional[int] = Field(default=None, ge=0)
    route: Optional[str] = None
    passengers: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    cancellation_category_id: Optional[str] = None
    notes: Optional[str] = None


class BookingTransition(MeterReadings):
    to_status: BookingStatus


class CheckinApproval(MeterReadings):
    billing_basis: BillingBasis
    # Defaults to the flight time of the billing basis meter.
    billing_hours: Optional[Decimal] = None
    dual_time: Optional[Decimal] = None
    solo_time: Optional[Decimal] = None
    checked_out_aircraft_id: Optional[str] = None
    checked_out_instructor_id: Optional[str] = None

    items: List[InvoiceItemCreate] = Field(default_factory=list)
    tax_rate: Decimal = Decimal("0")
    due_date: Optional[date] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class CheckinCorrection(BaseModel):
    """Corrected end readings of an approved check-in; omitted meters keep their reading."""

    hobbs_end: Optional[Decimal] = Field(default=None, ge=0)
    tach_end: Optional[Decimal] = Field(default=None, ge=0)
    airswitch_end: Optional[Decimal] = Field(default=None, ge=0)
    correction_reason: str = Field(..., min_length=3, max_length=1000)

    @model_validator(mode="after")
    def _reason_not_blank(self):
        if not self.correction_reason.strip():
            raise ValueError("correction_reason is required")
        return self


class StageRead(BaseModel):
    id: str
    label: str


class BookingProgressRead(BaseModel):
    active_stage_id: Optional[str] = None
    completed_stage_ids: List[str] = Field(default_factory=list)
    cancelled: bool = False

    class Config:
        from_attributes = True


class BookingRead(BaseModel):
    id: str
    tenant_id: str
    aircraft_id: str
    instructor_id: Optional[str] = None
    user_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    booking_type: BookingType
    purpose: Optional[str] = None
    remarks: Optional[str] = None
    notes: Optional[str] = None

    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    checked_out_aircraft_id: Optional[str] = None
    checked_out_instructor_id: Optional[str] = None
    eta: Optional[datetime] = None
    fuel_on_board: Optional[int] = None
    route: Optional[str] = None
    passengers: Optional[str] = None

    hobbs_start: Optional[Decimal] = None
    hobbs_end: Optional[Decimal] = None
    tach_start: Optional[Decimal] = None
    tach_end: Optional[Decimal] = None
    airswitch_start: Optional[Decimal] = None
    airswitch_end: Optional[Decimal] = None
    flight_time_hobbs: Optional[Decimal] = None
    flight_time_tach: Optional[Decimal] = None
    flight_time_airswitch: Optional[Decimal] = None
    flight_time: Optional[Decimal] = None
    dual_time: Optional[Decimal] = None
    solo_time: Optional[Decimal] = None

    billing_basis: Optional[BillingBasis] = None
    billing_hours: Optional[Decimal] = None
    checkin_invoice_id: Optional[str] = None
    checkin_approved_at: Optional[datetime] = None
    checkin_approved_by: Optional[str] = None

    total_hours_start: Optional[Decimal] = None
    total_hours_end: Optional[Decimal] = None
    applied_aircraft_delta: Optional[Decimal] = None
    applied_total_time_method: Optional[str] = None
    correction_delta: Optional[Decimal] = None
    corrected_at: Optional[datetime] = None
    corrected_by: Optional[str] = None
    correction_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BookingDetailRead(BookingRead):
    progress: BookingProgressRead


class OverlapsRead(BaseModel):
    unavailable_aircraft_ids: List[str] = Field(default_factory=list)
    unavailable_instructor_ids: List[str] = Field(default_factory=list)


class RosteredInstructorsRead(BaseModel):
    instructor_ids: List[str] = Field(default_factory=list)


class CheckinApprovalResult(BaseModel):
    booking_id: str
    invoice_id: str
    invoice_number: str
    billing_hours: Decimal
    applied_aircraft_delta: Decimal
    total_hours_start: Decimal
    total_hours_end: Decimal


class CheckinCorrectionResult(BaseModel):
    booking_id: str
    old_applied_delta: Decimal
    new_applied_delta: Decimal
    correction_delta: Decimal
    aircraft_total_time_in_service: Decimal
