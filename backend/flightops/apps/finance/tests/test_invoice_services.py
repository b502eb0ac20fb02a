from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from flightops.apps.audit import models as audit_models
from flightops.apps.finance import models as finance_models
from flightops.apps.finance import router as finance_router
from flightops.apps.finance import schemas as finance_schemas
from flightops.apps.finance import services as finance_services
from flightops.errors import DomainError, InvalidPayment, InvalidTaxRate, InvoiceLocked, NotFound
from flightops.security import ActorContext, Role

TENANT = "tenant-fin"
STAFF = ActorContext(user_id="admin-1", tenant_id=TENANT, role=Role.ADMIN)
MEMBER = ActorContext(user_id="member-1", tenant_id=TENANT, role=Role.MEMBER)
OTHER_MEMBER = ActorContext(user_id="member-2", tenant_id=TENANT, role=Role.MEMBER)


def _create_invoice(db, **overrides):
    data = {
        "user_id": "member-1",
        "issue_date": date(2026, 1, 7),
        "items": [{"description": "Aircraft hire", "quantity": "2", "unit_price": "150.00", "tax_rate": "0.15"}],
    }
    data.update(overrides)
    invoice = finance_services.create_invoice(db, actor=STAFF, payload=finance_schemas.InvoiceCreate(**data))
    db.commit()
    return invoice


def _pay(db, invoice_id, amount, method="cash"):
    result = finance_services.record_payment(
        db,
        actor=STAFF,
        invoice_id=invoice_id,
        payload=finance_schemas.PaymentCreate(amount=Decimal(amount), payment_method=method),
    )
    db.commit()
    return result


def test_create_invoice_computes_totals_and_number(db_session):
    invoice = _create_invoice(db_session)

    assert invoice.invoice_number == f"INV-{date.today().year}-0001"
    assert invoice.status == finance_models.InvoiceStatusEnum.DRAFT
    assert invoice.due_date == date(2026, 1, 7) + timedelta(days=30)
    assert invoice.subtotal == Decimal("300.00")
    assert invoice.tax_total == Decimal("45.00")
    assert invoice.total_amount == Decimal("345.00")
    assert invoice.balance_due == Decimal("345.00")

    item = invoice.items[0]
    assert item.rate_inclusive == Decimal("172.50")
    assert item.line_total == Decimal("345.00")

    assert _create_invoice(db_session).invoice_number == f"INV-{date.today().year}-0002"

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_type == "invoice", audit_models.AuditEvent.entity_id == invoice.id)
        .one()
    )
    assert event.after["total_amount"] == "345.00"


def test_item_without_tax_rate_uses_invoice_rate(db_session):
    invoice = _create_invoice(
        db_session,
        tax_rate="0.15",
        items=[{"description": "Landing fee", "quantity": "1", "unit_price": "45.50"}],
    )

    assert invoice.items[0].tax_rate == Decimal("0.15")
    assert invoice.tax_total == Decimal("6.83")
    assert invoice.total_amount == Decimal("52.33")


def test_create_invoice_validation(db_session):
    with pytest.raises(DomainError) as excinfo:
        _create_invoice(db_session, items=[])
    assert excinfo.value.code == "missing_items"

    with pytest.raises(DomainError) as excinfo:
        _create_invoice(db_session, status="paid")
    assert excinfo.value.code == "invalid_status"

    with pytest.raises(InvalidTaxRate):
        _create_invoice(db_session, tax_rate="1.5")


def test_item_changes_refresh_invoice_totals(db_session):
    invoice = _create_invoice(db_session)

    item = finance_services.add_invoice_item(
        db_session,
        actor=STAFF,
        invoice_id=invoice.id,
        payload=finance_schemas.InvoiceItemCreate(
            description="Landing fee", quantity=Decimal("1"), unit_price=Decimal("45.50"), tax_rate=Decimal("0.15")
        ),
    )
    db_session.commit()
    assert invoice.subtotal == Decimal("345.50")
    assert invoice.tax_total == Decimal("51.83")
    assert invoice.total_amount == Decimal("397.33")

    finance_services.update_invoice_item(
        db_session,
        actor=STAFF,
        item_id=item.id,
        payload=finance_schemas.InvoiceItemUpdate(quantity=Decimal("2")),
    )
    db_session.commit()
    assert item.amount == Decimal("91.00")
    assert item.tax_amount == Decimal("13.65")
    assert invoice.total_amount == Decimal("449.65")

    finance_services.delete_invoice_item(db_session, actor=STAFF, item_id=item.id)
    db_session.commit()
    assert item.deleted_at is not None
    assert invoice.total_amount == Decimal("345.00")
    assert [i.id for i in invoice.active_items] == [invoice.items[0].id]

    with pytest.raises(NotFound):
        finance_services.delete_invoice_item(db_session, actor=STAFF, item_id=item.id)


def test_partial_then_full_payment(db_session):
    invoice = _create_invoice(db_session, status="pending")

    result = _pay(db_session, invoice.id, "100.00")
    assert result.new_total_paid == Decimal("100.00")
    assert result.new_balance_due == Decimal("245.00")
    assert result.new_status == finance_models.InvoiceStatusEnum.PENDING

    result = _pay(db_session, invoice.id, "245.00", method="bank_transfer")
    assert result.new_balance_due == Decimal("0.00")
    assert result.new_status == finance_models.InvoiceStatusEnum.PAID
    assert invoice.paid_date is not None
    payments = (
        db_session.query(finance_models.InvoicePayment)
        .filter(finance_models.InvoicePayment.invoice_id == invoice.id)
        .count()
    )
    assert payments == 2


def test_overpayment_is_rejected(db_session):
    invoice = _create_invoice(db_session, status="pending")

    with pytest.raises(InvalidPayment) as excinfo:
        _pay(db_session, invoice.id, "345.01")
    assert excinfo.value.detail[0]["field"] == "amount"

    with pytest.raises(InvalidPayment):
        _pay(db_session, invoice.id, "0")


def test_paid_invoice_is_locked(db_session):
    invoice = _create_invoice(db_session, status="pending")
    _pay(db_session, invoice.id, "345.00")

    with pytest.raises(InvalidPayment):
        _pay(db_session, invoice.id, "1.00")
    with pytest.raises(InvoiceLocked) as excinfo:
        finance_services.add_invoice_item(
            db_session,
            actor=STAFF,
            invoice_id=invoice.id,
            payload=finance_schemas.InvoiceItemCreate(description="Fuel", quantity=1, unit_price=10),
        )
    assert excinfo.value.status_code == 409


def test_cancelled_invoice_takes_no_payments(db_session):
    invoice = _create_invoice(db_session, status="pending")
    invoice.status = finance_models.InvoiceStatusEnum.CANCELLED
    db_session.commit()

    with pytest.raises(InvalidPayment):
        _pay(db_session, invoice.id, "10.00")


def test_members_only_read_their_own_invoices(db_session):
    invoice = _create_invoice(db_session)

    assert finance_router.get_invoice(invoice.id, db=db_session, actor=MEMBER).id == invoice.id
    with pytest.raises(NotFound):
        finance_router.get_invoice(invoice.id, db=db_session, actor=OTHER_MEMBER)


def test_invoice_read_hides_deleted_items(db_session):
    invoice = _create_invoice(db_session)
    extra = finance_services.add_invoice_item(
        db_session,
        actor=STAFF,
        invoice_id=invoice.id,
        payload=finance_schemas.InvoiceItemCreate(description="Fuel", quantity=1, unit_price=10),
    )
    finance_services.delete_invoice_item(db_session, actor=STAFF, item_id=extra.id)
    db_session.commit()

    read = finance_schemas.InvoiceRead.model_validate(invoice)
    assert [item.description for item in read.items] == ["Aircraft hire"]
