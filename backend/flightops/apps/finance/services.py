from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from flightops.apps.audit import services as audit_services
from flightops.errors import DomainError, InvalidPayment, InvalidTaxRate, InvoiceLocked, NotFound
from flightops.security import ActorContext

from . import models, schemas
from .calculations import ZERO, calculate_invoice_totals, calculate_item_amounts, recalculate_invoice_item, round_money

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_TERMS_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _audit_event(
    db: Session,
    *,
    actor: ActorContext,
    entity_type: str,
    entity_id: str,
    action: str,
    after: Dict[str, Any],
    critical: bool = False,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=actor.tenant_id,
        actor_user_id=actor.user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        after=after,
        metadata={"module": "finance"},
        critical=critical,
    )


def get_invoice(db: Session, *, tenant_id: str, invoice_id: str, for_update: bool = False) -> models.Invoice:
    query = db.query(models.Invoice).filter(
        models.Invoice.tenant_id == tenant_id,
        models.Invoice.id == invoice_id,
        models.Invoice.deleted_at.is_(None),
    )
    if for_update:
        query = query.with_for_update()
    invoice = query.first()
    if not invoice:
        raise NotFound.for_field("invoice_id", "Invoice not found.")
    return invoice


def _get_item(db: Session, *, tenant_id: str, item_id: str) -> models.InvoiceItem:
    item = (
        db.query(models.InvoiceItem)
        .filter(
            models.InvoiceItem.tenant_id == tenant_id,
            models.InvoiceItem.id == item_id,
            models.InvoiceItem.deleted_at.is_(None),
        )
        .first()
    )
    if not item:
        raise NotFound.for_field("item_id", "Invoice item not found.")
    return item


def next_invoice_number(db: Session, *, tenant_id: str, year: Optional[int] = None) -> str:
    """INV-<year>-<seq>, sequence restarting every year per tenant."""
    year = year or _utcnow().year
    prefix = f"INV-{year}-"
    numbers = (
        db.query(models.Invoice.invoice_number)
        .filter(models.Invoice.tenant_id == tenant_id, models.Invoice.invoice_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


def refresh_invoice_totals(invoice: models.Invoice) -> models.Invoice:
    totals = calculate_invoice_totals(invoice.items)
    invoice.subtotal = totals.subtotal
    invoice.tax_total = totals.tax_total
    invoice.total_amount = totals.total_amount
    total_paid = round_money(invoice.total_paid or 0)
    invoice.total_paid = total_paid
    invoice.balance_due = max(ZERO, round_money(totals.total_amount - total_paid))
    return invoice


def _validate_invoice_tax_rate(value: Decimal) -> Decimal:
    if value < 0 or value > 1:
        raise InvalidTaxRate.for_field("tax_rate", "tax rate must be between 0 and 1")
    return value


def _new_item(invoice: models.Invoice, payload: schemas.InvoiceItemCreate) -> models.InvoiceItem:
    tax_rate = payload.tax_rate if payload.tax_rate is not None else invoice.tax_rate
    amounts = calculate_item_amounts(payload.quantity, payload.unit_price, tax_rate)
    return models.InvoiceItem(
        tenant_id=invoice.tenant_id,
        invoice_id=invoice.id,
        chargeable_id=payload.chargeable_id,
        description=payload.description,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        tax_rate=Decimal(str(tax_rate or 0)),
        amount=amounts.amount,
        tax_amount=amounts.tax_amount,
        rate_inclusive=amounts.rate_inclusive,
        line_total=amounts.line_total,
        notes=payload.notes,
    )


def create_invoice(
    db: Session,
    *,
    actor: ActorContext,
    payload: schemas.InvoiceCreate,
) -> models.Invoice:
    if not payload.items:
        raise DomainError(
            "Invoice needs at least one item.",
            code="missing_items",
            detail=[{"field": "items", "reason": "at least one item required"}],
        )
    if payload.status not in (models.InvoiceStatusEnum.DRAFT, models.InvoiceStatusEnum.PENDING):
        raise DomainError(
            "Only draft or pending invoices can be created.",
            code="invalid_status",
            detail=[{"field": "status", "reason": "must be draft or pending at creation"}],
        )
    tax_rate = _validate_invoice_tax_rate(payload.tax_rate)

    issue_date = payload.issue_date or _utcnow().date()
    invoice = models.Invoice(
        tenant_id=actor.tenant_id,
        invoice_number=payload.invoice_number or next_invoice_number(db, tenant_id=actor.tenant_id),
        user_id=payload.user_id,
        booking_id=payload.booking_id,
        status=payload.status,
        issue_date=issue_date,
        due_date=payload.due_date or issue_date + timedelta(days=DEFAULT_PAYMENT_TERMS_DAYS),
        reference=payload.reference,
        notes=payload.notes,
        tax_rate=tax_rate,
        total_paid=ZERO,
        created_by=actor.user_id,
    )
    db.add(invoice)
    db.flush()

    for item_payload in payload.items:
        item = _new_item(invoice, item_payload)
        invoice.items.append(item)
        db.add(item)

    refresh_invoice_totals(invoice)
    db.add(invoice)
    db.flush()

    _audit_event(
        db,
        actor=actor,
        entity_type="invoice",
        entity_id=str(invoice.id),
        action="create",
        after={
            "invoice_number": invoice.invoice_number,
            "status": invoice.status.value,
            "total_amount": str(invoice.total_amount),
        },
    )
    logger.info(
        "Invoice created",
        extra={
            "tenant_id": actor.tenant_id,
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "item_count": len(payload.items),
        },
    )
    return invoice


def _ensure_items_mutable(invoice: models.Invoice) -> None:
    if invoice.status in models.LOCKED_INVOICE_STATUSES:
        raise InvoiceLocked.for_field(
            "invoice_id",
            f"Items of a {invoice.status.value} invoice cannot be changed.",
        )


def add_invoice_item(
    db: Session,
    *,
    actor: ActorContext,
    invoice_id: str,
    payload: schemas.InvoiceItemCreate,
) -> models.InvoiceItem:
    invoice = get_invoice(db, tenant_id=actor.tenant_id, invoice_id=invoice_id, for_update=True)
    _ensure_items_mutable(invoice)

    item = _new_item(invoice, payload)
    invoice.items.append(item)
    db.add(item)
    refresh_invoice_totals(invoice)
    db.flush()

    _audit_event(
        db,
        actor=actor,
        entity_type="invoice_item",
        entity_id=str(item.id),
        action="create",
        after={"invoice_id": invoice.id, "line_total": str(item.line_total)},
    )
    return item


def update_invoice_item(
    db: Session,
    *,
    actor: ActorContext,
    item_id: str,
    payload: schemas.InvoiceItemUpdate,
) -> models.InvoiceItem:
    item = _get_item(db, tenant_id=actor.tenant_id, item_id=item_id)
    invoice = get_invoice(db, tenant_id=actor.tenant_id, invoice_id=item.invoice_id, for_update=True)
    _ensure_items_mutable(invoice)

    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        if value is None and key in ("quantity", "unit_price", "tax_rate"):
            continue
        setattr(item, key, value)
    recalculate_invoice_item(item)
    refresh_invoice_totals(invoice)
    db.flush()

    _audit_event(
        db,
        actor=actor,
        entity_type="invoice_item",
        entity_id=str(item.id),
        action="update",
        after={key: str(value) for key, value in data.items()},
    )
    return item


def delete_invoice_item(
    db: Session,
    *,
    actor: ActorContext,
    item_id: str,
) -> models.Invoice:
    item = _get_item(db, tenant_id=actor.tenant_id, item_id=item_id)
    invoice = get_invoice(db, tenant_id=actor.tenant_id, invoice_id=item.invoice_id, for_update=True)
    _ensure_items_mutable(invoice)

    item.deleted_at = _utcnow()
    item.deleted_by = actor.user_id
    refresh_invoice_totals(invoice)
    db.flush()

    _audit_event(
        db,
        actor=actor,
        entity_type="invoice_item",
        entity_id=str(item.id),
        action="delete",
        after={"invoice_id": invoice.id},
    )
    return invoice


def record_payment(
    db: Session,
    *,
    actor: ActorContext,
    invoice_id: str,
    payload: schemas.PaymentCreate,
) -> schemas.PaymentResult:
    if payload.amount is None or payload.amount <= 0:
        raise InvalidPayment.for_field("amount", "Payment amount must be greater than zero")
    amount = round_money(payload.amount)

    invoice = get_invoice(db, tenant_id=actor.tenant_id, invoice_id=invoice_id, for_update=True)
    if invoice.status in (models.InvoiceStatusEnum.CANCELLED, models.InvoiceStatusEnum.REFUNDED):
        raise InvalidPayment.for_field(
            "invoice_id", "Cannot record payments for cancelled or refunded invoices"
        )

    total_amount = round_money(invoice.total_amount or 0)
    total_paid = round_money(invoice.total_paid or 0)
    balance_due = (
        round_money(invoice.balance_due)
        if invoice.balance_due is not None
        else max(ZERO, round_money(total_amount - total_paid))
    )
    if balance_due <= 0:
        raise InvalidPayment.for_field("invoice_id", "Invoice has no remaining balance")
    if amount > balance_due:
        raise InvalidPayment(
            "Payment amount cannot exceed the remaining balance",
            detail=[{"field": "amount", "reason": f"balance due is {balance_due}"}],
        )

    paid_at = payload.paid_at or _utcnow()
    payment = models.InvoicePayment(
        tenant_id=actor.tenant_id,
        invoice_id=invoice.id,
        amount=amount,
        payment_method=payload.payment_method,
        payment_reference=payload.payment_reference,
        notes=payload.notes,
        paid_at=paid_at,
        created_by=actor.user_id,
    )
    db.add(payment)

    new_total_paid = round_money(total_paid + amount)
    new_balance_due = max(ZERO, round_money(total_amount - new_total_paid))
    invoice.total_paid = new_total_paid
    invoice.balance_due = new_balance_due
    invoice.payment_method = payload.payment_method
    invoice.payment_reference = payload.payment_reference
    if new_balance_due <= 0:
        invoice.status = models.InvoiceStatusEnum.PAID
        invoice.paid_date = paid_at
    db.add(invoice)
    db.flush()

    _audit_event(
        db,
        actor=actor,
        entity_type="invoice",
        entity_id=str(invoice.id),
        action="payment",
        after={
            "payment_id": payment.id,
            "amount": str(amount),
            "total_paid": str(new_total_paid),
            "balance_due": str(new_balance_due),
        },
        critical=True,
    )
    logger.info(
        "Invoice payment recorded",
        extra={
            "tenant_id": actor.tenant_id,
            "invoice_id": invoice.id,
            "payment_id": payment.id,
            "balance_due": str(new_balance_due),
        },
    )
    return schemas.PaymentResult(
        invoice_id=invoice.id,
        payment_id=payment.id,
        new_total_paid=new_total_paid,
        new_balance_due=new_balance_due,
        new_status=invoice.status,
    )
