from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.deps import get_db
from cafedesk.core.errors import NotFound
from cafedesk.core.permissions import require_permission
from cafedesk.core.security_current import Principal
from cafedesk.models.cash_register import CashRegisterEntry
from cafedesk.schemas.cash_register import (
    CashCategory,
    CashReferenceOut,
    CashRegisterEntryMutationOut,
    CashRegisterEntryOut,
    CashRegisterListOut,
    CashTransactionCreate,
    TransactionType,
)
from cafedesk.schemas.common import build_pagination
from cafedesk.schemas.reports import CashSummaryOut
from cafedesk.services import cash_register_service, reporting_service
from cafedesk.services.audit_service import log_audit_event

router = APIRouter(prefix="/cash-register", tags=["cash-register"])
MAX_ENTRY_PAGE_SIZE = 500

manage_cash_register = require_permission("manage_cash_register")


def entry_out(entry: CashRegisterEntry) -> CashRegisterEntryOut:
    reference = cash_register_service.entry_reference(entry)
    return CashRegisterEntryOut(
        id=entry.id,
        sequence=entry.sequence,
        entry_date=entry.entry_date,
        transaction_type=entry.transaction_type,
        payment_method=entry.payment_method,
        amount=float(entry.amount),
        balance=float(entry.balance),
        description=entry.description,
        category=entry.category,
        reference=CashReferenceOut(type=reference.kind, id=reference.id) if reference else None,
        notes=entry.notes,
        created_by=entry.created_by,
    )


@router.get(
    "",
    response_model=CashRegisterListOut,
    summary="List cash-register entries",
    description="Newest first. `current_balance` is the owner's running balance.",
    responses=error_responses(401, 403, 422, 500),
)
def list_entries(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    transaction_type: TransactionType | None = Query(None),
    category: CashCategory | None = Query(None),
    payment_method: str | None = Query(None, max_length=20),
    limit: int = Query(50, ge=1, le=MAX_ENTRY_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_cash_register),
):
    filters = [
        CashRegisterEntry.owner_id == principal.owner_id,
        *reporting_service.datetime_range_filters(CashRegisterEntry.entry_date, start_date, end_date),
    ]
    if transaction_type:
        filters.append(CashRegisterEntry.transaction_type == transaction_type)
    if category:
        filters.append(CashRegisterEntry.category == category)
    if payment_method:
        filters.append(CashRegisterEntry.payment_method == payment_method)

    total = int(db.execute(select(func.count(CashRegisterEntry.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(CashRegisterEntry)
        .where(*filters)
        .order_by(CashRegisterEntry.sequence.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return CashRegisterListOut(
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
        start_date=start_date,
        end_date=end_date,
        current_balance=float(cash_register_service.current_balance(db, principal.owner_id)),
        items=[entry_out(entry) for entry in rows],
    )


@router.get(
    "/summary",
    response_model=CashSummaryOut,
    summary="Cash-register summary",
    description="Deposits, withdrawals and the current balance, with category and method breakdowns.",
    responses=error_responses(401, 403, 422, 500),
)
def cash_summary(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_cash_register),
):
    return reporting_service.cash_summary(
        db, owner_id=principal.owner_id, start_date=start_date, end_date=end_date
    )


@router.get(
    "/{entry_id}",
    response_model=CashRegisterEntryOut,
    summary="Get cash-register entry",
    responses=error_responses(401, 403, 404, 500),
)
def get_entry(
    entry_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_cash_register),
):
    entry = db.execute(
        select(CashRegisterEntry).where(
            CashRegisterEntry.id == entry_id,
            CashRegisterEntry.owner_id == principal.owner_id,
        )
    ).scalar_one_or_none()
    if not entry:
        raise NotFound("Cash-register entry not found")
    return entry_out(entry)


@router.post(
    "",
    response_model=CashRegisterEntryMutationOut,
    status_code=201,
    summary="Record deposit or withdrawal",
    description="A withdrawal that would take the balance below zero is rejected.",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def create_transaction(
    payload: CashTransactionCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_cash_register),
):
    reference = None
    if payload.reference is not None:
        reference = cash_register_service.build_reference(payload.reference.type, payload.reference.id)
        cash_register_service.ensure_reference_in_scope(
            db, owner_id=principal.owner_id, reference=reference
        )

    entry = cash_register_service.record_cash_movement(
        db,
        owner_id=principal.owner_id,
        actor_id=principal.id,
        transaction_type=payload.transaction_type,
        amount=payload.amount,
        payment_method=payload.payment_method,
        description=payload.description,
        category=payload.category,
        reference=reference,
        notes=payload.notes,
        guard_funds=True,
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action=f"cash_register.{payload.transaction_type}",
        target_type="cash_register_entry",
        target_id=entry.id,
        metadata_json={"amount": float(entry.amount), "balance": float(entry.balance)},
    )
    db.commit()
    db.refresh(entry)
    return CashRegisterEntryMutationOut(
        message="Transaction recorded successfully", entry=entry_out(entry)
    )
