# backend/flightops/errors.py
"""
Domain errors shared by the scheduling and finance apps.

Every error carries a machine-readable `code`, a human message and a list of
`{"field", "reason"}` entries identifying the offending input. The API layer
turns them into JSON responses with `status_code`; nothing in the core
retries on them.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

FieldIssue = Dict[str, str]


class DomainError(Exception):
    status_code = 400
    default_code = "domain_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        detail: Optional[Iterable[FieldIssue]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.detail: List[FieldIssue] = list(detail or [])
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, reason: str, message: Optional[str] = None):
        return cls(message or reason, detail=[{"field": field, "reason": reason}])

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "detail": self.detail}


class InvalidFormat(DomainError):
    default_code = "invalid_format"


class InvalidWindow(DomainError):
    default_code = "invalid_window"


class InvalidQuantity(DomainError):
    default_code = "invalid_quantity"


class InvalidPrice(DomainError):
    default_code = "invalid_price"


class InvalidTaxRate(DomainError):
    default_code = "invalid_tax_rate"


class UnknownStatus(DomainError):
    """A persisted status value outside the declared set: a data defect, not a user error."""

    status_code = 500
    default_code = "unknown_status"


class ResourceConflict(DomainError):
    status_code = 409
    default_code = "resource_conflict"

    def __init__(
        self,
        message: str = "Booking conflicts with an existing booking",
        *,
        aircraft_conflict: bool = False,
        instructor_conflict: bool = False,
        detail: Optional[Iterable[FieldIssue]] = None,
    ) -> None:
        if detail is None:
            detail = []
            if aircraft_conflict:
                detail.append({"field": "aircraft_id", "reason": "aircraft already booked for this time"})
            if instructor_conflict:
                detail.append({"field": "instructor_id", "reason": "instructor already booked for this time"})
        super().__init__(message, detail=detail)
        self.aircraft_conflict = aircraft_conflict
        self.instructor_conflict = instructor_conflict


class InstructorNotRostered(DomainError):
    default_code = "instructor_not_rostered"


class TransitionError(DomainError):
    """Raised by the workflow engine; `code` is invalid_transition or missing_requirements."""

    default_code = "invalid_transition"

    def __init__(self, code: str, detail: List[FieldIssue], message: Optional[str] = None) -> None:
        super().__init__(message or _first_reason(detail, code), code=code, detail=detail)
        self.status_code = 409 if code == "invalid_transition" else 400


class NotFound(DomainError):
    status_code = 404
    default_code = "not_found"


class Forbidden(DomainError):
    status_code = 403
    default_code = "forbidden"


class InvalidPayment(DomainError):
    default_code = "invalid_payment"


class InvoiceLocked(DomainError):
    """Items of a paid, cancelled or refunded invoice cannot change."""

    status_code = 409
    default_code = "invoice_locked"


def _first_reason(detail: List[FieldIssue], fallback: str) -> str:
    if detail:
        return detail[0].get("reason", fallback)
    return fallback
