from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from flightops.database import get_db
from flightops.errors import NotFound
from flightops.security import ActorContext, get_current_actor, require_staff

from . import schemas, services

router = APIRouter(prefix="", tags=["finance", "invoices"])


@router.post(
    "/invoices",
    response_model=schemas.InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
def create_invoice(
    payload: schemas.InvoiceCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    invoice = services.create_invoice(db, actor=actor, payload=payload)
    db.commit()
    db.refresh(invoice)
    return invoice


@router.get("/invoices/{invoice_id}", response_model=schemas.InvoiceRead)
def get_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
):
    invoice = services.get_invoice(db, tenant_id=actor.tenant_id, invoice_id=invoice_id)
    if not actor.is_staff and invoice.user_id != actor.user_id:
        raise NotFound.for_field("invoice_id", "Invoice not found.")
    return invoice


@router.post(
    "/invoices/{invoice_id}/items",
    response_model=schemas.InvoiceItemRead,
    status_code=status.HTTP_201_CREATED,
)
def add_invoice_item(
    invoice_id: str,
    payload: schemas.InvoiceItemCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    item = services.add_invoice_item(db, actor=actor, invoice_id=invoice_id, payload=payload)
    db.commit()
    db.refresh(item)
    return item


@router.patch("/invoice-items/{item_id}", response_model=schemas.InvoiceItemRead)
def update_invoice_item(
    item_id: str,
    payload: schemas.InvoiceItemUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    item = services.update_invoice_item(db, actor=actor, item_id=item_id, payload=payload)
    db.commit()
    db.refresh(item)
    return item


@router.delete("/invoice-items/{item_id}", response_model=schemas.InvoiceRead)
def delete_invoice_item(
    item_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    invoice = services.delete_invoice_item(db, actor=actor, item_id=item_id)
    db.commit()
    db.refresh(invoice)
    return invoice


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=schemas.PaymentResult,
    status_code=status.HTTP_201_CREATED,
)
def record_payment(
    invoice_id: str,
    payload: schemas.PaymentCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_staff),
):
    result = services.record_payment(db, actor=actor, invoice_id=invoice_id, payload=payload)
    db.commit()
    return result
