"""
Fleet data models.

Only what scheduling needs: the aircraft a booking reserves, which meters
it records, and its persisted total time in service (moved only by
check-in approval and corrections, see `time_in_service`).
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Aircraft(Base):
    """
    An aircraft the school rents or instructs in.

    Rows are locked FOR UPDATE while a booking for them is written, which
    serialises concurrent bookings of the same aircraft.
    """

    __tablename__ = "aircraft"
    __table_args__ = (
        UniqueConstraint("tenant_id", "registration", name="uq_aircraft_tenant_registration"),
        Index("ix_aircraft_tenant_active", "tenant_id", "is_active"),
        CheckConstraint("total_time_in_service >= 0", name="ck_aircraft_ttis_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    tenant_id = Column(String(36), nullable=False, index=True)

    registration = Column(String(20), nullable=False)
    aircraft_type = Column(String(64), nullable=True)
    model = Column(String(64), nullable=True)

    record_hobbs = Column(Boolean, nullable=False, default=True)
    record_tacho = Column(Boolean, nullable=False, default=True)
    record_airswitch = Column(Boolean, nullable=False, default=False)

    total_time_in_service = Column(Numeric(12, 4), nullable=False, default=0)
    # Unset blocks check-in approval: TTIS cannot be moved without it.
    total_time_method = Column(String(32), nullable=True)  # TotalTimeMethod value

    display_order = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Aircraft id={self.id} registration={self.registration}>"
