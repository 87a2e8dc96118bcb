from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cafedesk.core.api_docs import error_responses
from cafedesk.core.deps import get_db
from cafedesk.core.permissions import require_permission
from cafedesk.core.security_current import Principal
from cafedesk.models.expense import Expense
from cafedesk.schemas.common import MessageOut, build_pagination
from cafedesk.schemas.expense import (
    ExpenseCategory,
    ExpenseCreate,
    ExpenseListOut,
    ExpenseMutationOut,
    ExpenseOut,
    ExpensePaymentMethod,
    ExpenseStatus,
    ExpenseUpdate,
)
from cafedesk.schemas.reports import ExpenseStatsOut
from cafedesk.services import financial_service, reporting_service
from cafedesk.services.audit_service import log_audit_event

router = APIRouter(prefix="/expenses", tags=["expenses"])
MAX_EXPENSE_PAGE_SIZE = 200

manage_expenses = require_permission("manage_expenses")


def expense_out(expense: Expense) -> ExpenseOut:
    return ExpenseOut(
        id=expense.id,
        expense_date=expense.expense_date,
        description=expense.description,
        amount=float(expense.amount),
        category=expense.category,
        payment_method=expense.payment_method,
        recurring=bool(expense.recurring),
        frequency=expense.frequency,
        next_due_date=expense.next_due_date,
        status=expense.status,
        attachments=list(expense.attachments or []),
        notes=expense.notes,
        created_by=expense.created_by,
        created_at=expense.created_at,
    )


@router.get(
    "",
    response_model=ExpenseListOut,
    summary="List expenses",
    responses=error_responses(401, 403, 422, 500),
)
def list_expenses(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    category: ExpenseCategory | None = Query(None),
    payment_method: ExpensePaymentMethod | None = Query(None),
    status: ExpenseStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=MAX_EXPENSE_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_expenses),
):
    filters = [
        Expense.owner_id == principal.owner_id,
        *reporting_service.date_range_filters(Expense.expense_date, start_date, end_date),
    ]
    if category:
        filters.append(Expense.category == category)
    if payment_method:
        filters.append(Expense.payment_method == payment_method)
    if status:
        filters.append(Expense.status == status)

    total = int(db.execute(select(func.count(Expense.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Expense)
        .where(*filters)
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc(), Expense.id.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return ExpenseListOut(
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
        start_date=start_date,
        end_date=end_date,
        items=[expense_out(e) for e in rows],
    )


@router.get(
    "/stats",
    response_model=ExpenseStatsOut,
    summary="Expense statistics",
    description="Totals per category and for the last twelve months with expenses.",
    responses=error_responses(401, 403, 422, 500),
)
def expense_stats(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_expenses),
):
    return reporting_service.expense_stats(
        db, owner_id=principal.owner_id, start_date=start_date, end_date=end_date
    )


@router.get(
    "/{expense_id}",
    response_model=ExpenseOut,
    summary="Get expense",
    responses=error_responses(401, 403, 404, 500),
)
def get_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_expenses),
):
    return expense_out(
        financial_service.get_expense(db, owner_id=principal.owner_id, expense_id=expense_id)
    )


@router.post(
    "",
    response_model=ExpenseMutationOut,
    status_code=201,
    summary="Create expense",
    description="Records the expense and the matching cash-register withdrawal.",
    responses=error_responses(401, 403, 422, 500),
)
def create_expense(
    payload: ExpenseCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_expenses),
):
    expense = financial_service.record_expense(
        db,
        owner_id=principal.owner_id,
        actor_id=principal.id,
        description=payload.description,
        amount=payload.amount,
        category=payload.category,
        payment_method=payload.payment_method,
        expense_date=payload.expense_date,
        recurring=payload.recurring,
        frequency=payload.frequency,
        attachments=[a.model_dump() for a in payload.attachments],
        notes=payload.notes,
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="expense.create",
        target_type="expense",
        target_id=expense.id,
        metadata_json={"category": expense.category, "amount": float(expense.amount)},
    )
    db.commit()
    db.refresh(expense)
    return ExpenseMutationOut(message="Expense created successfully", expense=expense_out(expense))


@router.put(
    "/{expense_id}",
    response_model=ExpenseMutationOut,
    summary="Update expense",
    description="Keeps the linked cash-register entry in step with the amount and payment method.",
    responses=error_responses(401, 403, 404, 422, 500),
)
def update_expense(
    expense_id: str,
    payload: ExpenseUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_expenses),
):
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key == "notes"
    }
    expense = financial_service.update_expense(
        db, owner_id=principal.owner_id, expense_id=expense_id, changes=changes
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="expense.update",
        target_type="expense",
        target_id=expense.id,
        metadata_json={"fields": sorted(changes), "amount": float(expense.amount)},
    )
    db.commit()
    db.refresh(expense)
    return ExpenseMutationOut(message="Expense updated successfully", expense=expense_out(expense))


@router.delete(
    "/{expense_id}",
    response_model=MessageOut,
    summary="Delete expense",
    description="Deletes the expense and its cash-register entry, crediting the amount back.",
    responses=error_responses(401, 403, 404, 500),
)
def delete_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_expenses),
):
    expense = financial_service.delete_expense(
        db, owner_id=principal.owner_id, expense_id=expense_id
    )
    log_audit_event(
        db,
        owner_id=principal.owner_id,
        actor_user_id=principal.id,
        action="expense.delete",
        target_type="expense",
        target_id=expense_id,
        metadata_json={"amount": float(expense.amount)},
    )
    db.commit()
    return MessageOut(message="Expense deleted successfully")
