from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.deps import get_db
from cafedesk.core.permissions import require_permission
from cafedesk.core.security_current import Principal
from cafedesk.models.invoice import Invoice, InvoiceItem
from cafedesk.routers.sales import line_item_out
from cafedesk.schemas.common import build_pagination
from cafedesk.schemas.invoice import (
    InvoiceCreate,
    InvoiceListOut,
    InvoiceMutationOut,
    InvoiceOut,
    InvoicePaymentMethod,
    InvoicePaymentUpdate,
    InvoiceStatus,
    InvoiceType,
)
from cafedesk.schemas.reports import InvoiceStatsOut
from cafedesk.schemas.sales import PaymentStatus
from cafedesk.services import financial_service, reporting_service
from cafedesk.services.audit_service import log_audit_event

router = APIRouter(prefix="/invoices", tags=["invoices"])
MAX_INVOICE_PAGE_SIZE = 200

manage_invoices = require_permission("manage_invoices")


def invoice_out(invoice: Invoice, items: list[InvoiceItem]) -> InvoiceOut:
    return InvoiceOut(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        type=invoice.type,
        party=invoice.party,
        items=[line_item_out(item) for item in items],
        subtotal=float(invoice.subtotal),
        tax_amount=float(invoice.tax_amount),
        discount_percent=float(invoice.discount_percent),
        total=float(invoice.total),
        paid_amount=float(invoice.paid_amount),
        remaining_amount=float(invoice.remaining_amount),
        payment_method=invoice.payment_method,
        payment_status=invoice.payment_status,
        status=invoice.status,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        terms=invoice.terms,
        notes=invoice.notes,
        confirmed_at=invoice.confirmed_at,
        cancelled_at=invoice.cancelled_at,
        created_by=invoice.created_by,
        created_at=invoice.created_at,
    )


def _invoice_with_items(db: Session, invoice: Invoice) -> InvoiceOut:
    return invoice_out(invoice, financial_service.list_invoice_items(db, [invoice.id])[invoice.id])


def _audit(db: Session, principal: Principal, invoice: Invoice, action: str, **metadata) -> None:
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action=f"invoice.{action}",
        target_type="invoice",
        target_id=invoice.id,
        metadata_json={"invoice_number": invoice.invoice_number, **metadata},
    )


@router.get(
    "",
    response_model=InvoiceListOut,
    summary="List invoices",
    responses=error_responses(401, 403, 422, 500),
)
def list_invoices(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    type: InvoiceType | None = Query(None),
    status: InvoiceStatus | None = Query(None),
    payment_status: PaymentStatus | None = Query(None),
    payment_method: InvoicePaymentMethod | None = Query(None),
    limit: int = Query(50, ge=1, le=MAX_INVOICE_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    filters = [
        Invoice.owner_id == principal.owner_id,
        *reporting_service.date_range_filters(Invoice.issue_date, start_date, end_date),
    ]
    if type:
        filters.append(Invoice.type == type)
    if status:
        filters.append(Invoice.status == status)
    if payment_status:
        filters.append(Invoice.payment_status == payment_status)
    if payment_method:
        filters.append(Invoice.payment_method == payment_method)

    total = int(db.execute(select(func.count(Invoice.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Invoice)
        .where(*filters)
        .order_by(Invoice.issue_date.desc(), Invoice.created_at.desc(), Invoice.id.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items_by_invoice = financial_service.list_invoice_items(db, [invoice.id for invoice in rows])
    return InvoiceListOut(
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
        start_date=start_date,
        end_date=end_date,
        items=[invoice_out(invoice, items_by_invoice[invoice.id]) for invoice in rows],
    )


@router.get(
    "/stats",
    response_model=InvoiceStatsOut,
    summary="Invoice statistics",
    description="Totals over confirmed invoices, overall and per payment method and status.",
    responses=error_responses(401, 403, 422, 500),
)
def invoice_stats(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    type: InvoiceType | None = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    return reporting_service.invoice_stats(
        db,
        owner_id=principal.owner_id,
        start_date=start_date,
        end_date=end_date,
        invoice_type=type,
    )


@router.get(
    "/{invoice_id}",
    response_model=InvoiceOut,
    summary="Get invoice",
    responses=error_responses(401, 403, 404, 500),
)
def get_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    invoice = financial_service.get_invoice(db, owner_id=principal.owner_id, invoice_id=invoice_id)
    return _invoice_with_items(db, invoice)


@router.post(
    "",
    response_model=InvoiceMutationOut,
    status_code=201,
    summary="Create invoice",
    description=(
        "A confirmed invoice moves stock (out for sale invoices, in for purchase invoices) "
        "and mirrors any paid amount into the cash register. A draft only records prices."
    ),
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    invoice, items = financial_service.record_invoice(
        db,
        owner_id=principal.owner_id,
        actor_id=principal.id,
        invoice_type=payload.type,
        party=payload.party.model_dump(),
        lines=[
            financial_service.LineRequest(
                product_id=item.product_id,
                quantity=item.quantity,
                discount_percent=item.discount_percent,
            )
            for item in payload.items
        ],
        payment_method=payload.payment_method,
        paid_amount=payload.paid_amount,
        tax_amount=payload.tax_amount,
        discount_percent=payload.discount_percent,
        status=payload.status,
        issue_date=payload.issue_date,
        due_date=payload.due_date,
        terms=payload.terms,
        notes=payload.notes,
    )
    _audit(
        db,
        principal,
        invoice,
        "create",
        type=invoice.type,
        status=invoice.status,
        total=float(invoice.total),
        paid_amount=float(invoice.paid_amount),
    )
    db.commit()
    db.refresh(invoice)
    return InvoiceMutationOut(
        message="Invoice created successfully", invoice=invoice_out(invoice, items)
    )


@router.patch(
    "/{invoice_id}/payment",
    response_model=InvoiceMutationOut,
    summary="Record additional payment",
    description=(
        "Raises the paid amount of a confirmed invoice. The increase is written to the "
        "cash register as one entry."
    ),
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def update_invoice_payment(
    invoice_id: str,
    payload: InvoicePaymentUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    invoice, delta = financial_service.record_invoice_payment(
        db,
        owner_id=principal.owner_id,
        actor_id=principal.id,
        invoice_id=invoice_id,
        paid_amount=payload.paid_amount,
        payment_method=payload.payment_method,
    )
    _audit(
        db,
        principal,
        invoice,
        "payment",
        delta=float(delta),
        paid_amount=float(invoice.paid_amount),
    )
    db.commit()
    db.refresh(invoice)
    return InvoiceMutationOut(
        message="Payment recorded successfully", invoice=_invoice_with_items(db, invoice)
    )


@router.patch(
    "/{invoice_id}/cancel",
    response_model=InvoiceMutationOut,
    summary="Cancel invoice",
    description="Reverses the stock movement. Register entries are left untouched.",
    responses=error_responses(401, 403, 404, 409, 500),
)
def cancel_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    invoice = financial_service.cancel_invoice(db, owner_id=principal.owner_id, invoice_id=invoice_id)
    _audit(db, principal, invoice, "cancel", total=float(invoice.total))
    db.commit()
    db.refresh(invoice)
    return InvoiceMutationOut(
        message="Invoice cancelled successfully", invoice=_invoice_with_items(db, invoice)
    )


@router.post(
    "/{invoice_id}/confirm",
    response_model=InvoiceMutationOut,
    summary="Confirm draft invoice",
    description="Moves stock and mirrors the paid amount exactly as a confirmed creation would.",
    responses=error_responses(401, 403, 404, 409, 500),
)
def confirm_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    invoice = financial_service.confirm_invoice(
        db, owner_id=principal.owner_id, actor_id=principal.id, invoice_id=invoice_id
    )
    _audit(db, principal, invoice, "confirm", paid_amount=float(invoice.paid_amount))
    db.commit()
    db.refresh(invoice)
    return InvoiceMutationOut(
        message="Invoice confirmed successfully", invoice=_invoice_with_items(db, invoice)
    )


@router.post(
    "/{invoice_id}/void",
    response_model=InvoiceMutationOut,
    summary="Void draft invoice",
    responses=error_responses(401, 403, 404, 409, 500),
)
def void_invoice(
    invoice_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_invoices),
):
    invoice = financial_service.void_invoice(db, owner_id=principal.owner_id, invoice_id=invoice_id)
    _audit(db, principal, invoice, "void")
    db.commit()
    db.refresh(invoice)
    return InvoiceMutationOut(
        message="Invoice voided successfully", invoice=_invoice_with_items(db, invoice)
    )
