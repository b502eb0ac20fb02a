from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from . import models


class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    chargeable_id: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    # Falls back to the invoice tax rate when omitted.
    tax_rate: Optional[Decimal] = None
    notes: Optional[str] = None


class InvoiceItemUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    notes: Optional[str] = None


class InvoiceItemRead(BaseModel):
    id: str
    invoice_id: str
    chargeable_id: Optional[str] = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    amount: Decimal
    tax_amount: Decimal
    rate_inclusive: Decimal
    line_total: Decimal
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceCreate(BaseModel):
    user_id: str
    booking_id: Optional[str] = None
    invoice_number: Optional[str] = None
    status: models.InvoiceStatusEnum = models.InvoiceStatusEnum.DRAFT
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    tax_rate: Decimal = Decimal("0")
    items: List[InvoiceItemCreate] = Field(default_factory=list)


class PaymentCreate(BaseModel):
    amount: Decimal
    payment_method: models.PaymentMethodEnum
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None


class PaymentRead(BaseModel):
    id: str
    invoice_id: str
    amount: Decimal
    payment_method: models.PaymentMethodEnum
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    paid_at: datetime
    created_by: Optional[str] = None

    class Config:
        from_attributes = True


class InvoiceRead(BaseModel):
    id: str
    tenant_id: str
    invoice_number: str
    user_id: str
    booking_id: Optional[str] = None
    status: models.InvoiceStatusEnum
    issue_date: date
    due_date: Optional[date] = None
    paid_date: Optional[datetime] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    tax_rate: Decimal
    subtotal: Decimal
    tax_total: Decimal
    total_amount: Decimal
    total_paid: Decimal
    balance_due: Decimal
    items: List[InvoiceItemRead] = Field(default_factory=list, validation_alias="active_items")
    payments: List[PaymentRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    invoice_id: str
    payment_id: str
    new_total_paid: Decimal
    new_balance_due: Decimal
    new_status: models.InvoiceStatusEnum
