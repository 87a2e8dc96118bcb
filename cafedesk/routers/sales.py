from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.deps import get_db
from cafedesk.core.permissions import require_permission
from cafedesk.core.security_current import Principal
from cafedesk.models.sales import Sale, SaleItem
from cafedesk.schemas.common import build_pagination
from cafedesk.schemas.reports import SalesStatsOut
from cafedesk.schemas.sales import (
    LineItemOut,
    PaymentStatus,
    SaleCreate,
    SaleListOut,
    SaleMutationOut,
    SaleOut,
    SalePaymentMethod,
    SaleStatus,
    SaleUpdate,
)
from cafedesk.services import financial_service, reporting_service
from cafedesk.services.audit_service import log_audit_event

router = APIRouter(prefix="/sales", tags=["sales"])
MAX_SALE_PAGE_SIZE = 200

manage_sales = require_permission("manage_sales")


def line_item_out(item) -> LineItemOut:
    return LineItemOut(
        product_id=item.product_id,
        product_name=item.product_name,
        quantity=float(item.quantity),
        unit_price=float(item.unit_price),
        discount_percent=float(item.discount_percent),
        line_total=float(item.line_total),
    )


def sale_out(sale: Sale, items: list[SaleItem]) -> SaleOut:
    return SaleOut(
        id=sale.id,
        sale_number=sale.sale_number,
        items=[line_item_out(item) for item in items],
        subtotal=float(sale.subtotal),
        tax_amount=float(sale.tax_amount),
        discount_percent=float(sale.discount_percent),
        total=float(sale.total),
        paid_amount=float(sale.paid_amount),
        remaining_amount=float(sale.remaining_amount),
        payment_method=sale.payment_method,
        payment_status=sale.payment_status,
        status=sale.status,
        customer=sale.customer,
        notes=sale.notes,
        sold_at=sale.sold_at,
        cancelled_at=sale.cancelled_at,
        created_by=sale.created_by,
        created_at=sale.created_at,
    )


def _sale_with_items(db: Session, sale: Sale) -> SaleOut:
    return sale_out(sale, financial_service.list_sale_items(db, [sale.id])[sale.id])


@router.get(
    "",
    response_model=SaleListOut,
    summary="List sales",
    responses=error_responses(401, 403, 422, 500),
)
def list_sales(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    status: SaleStatus | None = Query(None),
    payment_status: PaymentStatus | None = Query(None),
    payment_method: SalePaymentMethod | None = Query(None),
    limit: int = Query(50, ge=1, le=MAX_SALE_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_sales),
):
    filters = [
        Sale.owner_id == principal.owner_id,
        *reporting_service.datetime_range_filters(Sale.sold_at, start_date, end_date),
    ]
    if status:
        filters.append(Sale.status == status)
    if payment_status:
        filters.append(Sale.payment_status == payment_status)
    if payment_method:
        filters.append(Sale.payment_method == payment_method)

    total = int(db.execute(select(func.count(Sale.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Sale)
        .where(*filters)
        .order_by(Sale.sold_at.desc(), Sale.id.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items_by_sale = financial_service.list_sale_items(db, [sale.id for sale in rows])
    return SaleListOut(
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
        start_date=start_date,
        end_date=end_date,
        items=[sale_out(sale, items_by_sale[sale.id]) for sale in rows],
    )


@router.get(
    "/stats",
    response_model=SalesStatsOut,
    summary="Sales statistics",
    description="Totals over confirmed sales, overall and per payment method.",
    responses=error_responses(401, 403, 422, 500),
)
def sales_stats(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_sales),
):
    return reporting_service.sales_stats(
        db, owner_id=principal.owner_id, start_date=start_date, end_date=end_date
    )


@router.get(
    "/{sale_id}",
    response_model=SaleOut,
    summary="Get sale",
    responses=error_responses(401, 403, 404, 500),
)
def get_sale(
    sale_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_sales),
):
    sale = financial_service.get_sale(db, owner_id=principal.owner_id, sale_id=sale_id)
    return _sale_with_items(db, sale)


@router.post(
    "",
    response_model=SaleMutationOut,
    status_code=201,
    summary="Create sale",
    description=(
        "Prices each line from the current product price, takes the quantities out of "
        "stock and records the sale in one transaction."
    ),
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def create_sale(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_sales),
):
    sale, items = financial_service.record_sale(
        db,
        owner_id=principal.owner_id,
        actor_id=principal.id,
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
        customer=payload.customer.model_dump() if payload.customer else None,
        notes=payload.notes,
        sold_at=payload.sold_at,
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="sale.create",
        target_type="sale",
        target_id=sale.id,
        metadata_json={
            "sale_number": sale.sale_number,
            "items_count": len(items),
            "total": float(sale.total),
            "payment_status": sale.payment_status,
        },
    )
    db.commit()
    db.refresh(sale)
    return SaleMutationOut(message="Sale created successfully", sale=sale_out(sale, items))


@router.put(
    "/{sale_id}",
    response_model=SaleMutationOut,
    summary="Update sale payment or notes",
    description="Line items are fixed once recorded; only the paid amount and notes change.",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def update_sale(
    sale_id: str,
    payload: SaleUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_sales),
):
    sale = financial_service.update_sale(
        db,
        owner_id=principal.owner_id,
        sale_id=sale_id,
        paid_amount=payload.paid_amount,
        notes=payload.notes,
        notes_set="notes" in payload.model_fields_set,
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="sale.update",
        target_type="sale",
        target_id=sale.id,
        metadata_json={"fields": sorted(payload.model_fields_set)},
    )
    db.commit()
    db.refresh(sale)
    return SaleMutationOut(message="Sale updated successfully", sale=_sale_with_items(db, sale))


@router.post(
    "/{sale_id}/cancel",
    response_model=SaleMutationOut,
    summary="Cancel sale",
    description="Returns the sold quantities to stock. Register entries are left untouched.",
    responses=error_responses(401, 403, 404, 409, 500),
)
def cancel_sale(
    sale_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_sales),
):
    sale = financial_service.cancel_sale(db, owner_id=principal.owner_id, sale_id=sale_id)
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="sale.cancel",
        target_type="sale",
        target_id=sale.id,
        metadata_json={"total": float(sale.total), "paid_amount": float(sale.paid_amount)},
    )
    db.commit()
    db.refresh(sale)
    return SaleMutationOut(message="Sale cancelled successfully", sale=_sale_with_items(db, sale))
