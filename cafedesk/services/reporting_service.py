"""Read-only aggregates over an owner's financial records."""
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import case, extract, func, select
from sqlalchemy.orm import Session

from cafedesk.core.money import ZERO_MONEY, to_money
from cafedesk.models.cash_register import CashRegisterEntry
from cafedesk.models.expense import Expense
from cafedesk.models.invoice import Invoice
from cafedesk.models.sales import Sale
from cafedesk.services.cash_register_service import current_balance

MONTHS_WINDOW = 12


def day_bounds(start_date: date | None, end_date: date | None) -> tuple[datetime | None, datetime | None]:
    """Turn an inclusive date range into ``[start, end)`` datetimes."""
    start = datetime.combine(start_date, time.min) if start_date else None
    end = datetime.combine(end_date + timedelta(days=1), time.min) if end_date else None
    return start, end


def datetime_range_filters(column, start_date: date | None, end_date: date | None) -> list:
    start, end = day_bounds(start_date, end_date)
    filters = []
    if start is not None:
        filters.append(column >= start)
    if end is not None:
        filters.append(column < end)
    return filters


def date_range_filters(column, start_date: date | None, end_date: date | None) -> list:
    filters = []
    if start_date is not None:
        filters.append(column >= start_date)
    if end_date is not None:
        filters.append(column <= end_date)
    return filters


def _money(value) -> float:
    return float(to_money(value if value is not None else ZERO_MONEY))


def _average(total, count: int) -> float:
    if not count:
        return 0.0
    return float(to_money(Decimal(str(total)) / count))


def _grouped(rows) -> list[dict]:
    return [
        {"key": str(key), "count": int(count), "total": _money(total)}
        for key, count, total in rows
    ]


def _month_label(year, month) -> str:
    return f"{int(year):04d}-{int(month):02d}"


def sales_stats(
    db: Session, *, owner_id: str, start_date: date | None = None, end_date: date | None = None
) -> dict:
    filters = [
        Sale.owner_id == owner_id,
        Sale.status == "confirmed",
        *datetime_range_filters(Sale.sold_at, start_date, end_date),
    ]
    count, revenue, paid, pending = db.execute(
        select(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total), 0),
            func.coalesce(func.sum(Sale.paid_amount), 0),
            func.coalesce(func.sum(Sale.remaining_amount), 0),
        ).where(*filters)
    ).one()
    by_method = db.execute(
        select(Sale.payment_method, func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0))
        .where(*filters)
        .group_by(Sale.payment_method)
        .order_by(Sale.payment_method)
    ).all()
    return {
        "overall": {
            "total_sales": int(count),
            "total_revenue": _money(revenue),
            "total_paid": _money(paid),
            "total_pending": _money(pending),
            "average_order_value": _average(revenue, int(count)),
        },
        "by_payment_method": _grouped(by_method),
    }


def invoice_stats(
    db: Session,
    *,
    owner_id: str,
    start_date: date | None = None,
    end_date: date | None = None,
    invoice_type: str | None = None,
) -> dict:
    filters = [
        Invoice.owner_id == owner_id,
        Invoice.status == "confirmed",
        *date_range_filters(Invoice.issue_date, start_date, end_date),
    ]
    if invoice_type:
        filters.append(Invoice.type == invoice_type)

    count, amount, paid, pending = db.execute(
        select(
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total), 0),
            func.coalesce(func.sum(Invoice.paid_amount), 0),
            func.coalesce(func.sum(Invoice.remaining_amount), 0),
        ).where(*filters)
    ).one()
    by_method = db.execute(
        select(
            Invoice.payment_method,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.paid_amount), 0),
        )
        .where(*filters)
        .group_by(Invoice.payment_method)
        .order_by(Invoice.payment_method)
    ).all()
    by_status = db.execute(
        select(
            Invoice.payment_status,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total), 0),
        )
        .where(*filters)
        .group_by(Invoice.payment_status)
        .order_by(Invoice.payment_status)
    ).all()
    return {
        "overall": {
            "total_invoices": int(count),
            "total_amount": _money(amount),
            "total_paid": _money(paid),
            "total_pending": _money(pending),
            "average_amount": _average(amount, int(count)),
        },
        "by_payment_method": _grouped(by_method),
        "by_payment_status": _grouped(by_status),
    }


def expense_stats(
    db: Session, *, owner_id: str, start_date: date | None = None, end_date: date | None = None
) -> dict:
    filters = [
        Expense.owner_id == owner_id,
        Expense.status != "cancelled",
        *date_range_filters(Expense.expense_date, start_date, end_date),
    ]
    by_category = db.execute(
        select(Expense.category, func.count(Expense.id), func.coalesce(func.sum(Expense.amount), 0))
        .where(*filters)
        .group_by(Expense.category)
        .order_by(func.sum(Expense.amount).desc())
    ).all()

    year = extract("year", Expense.expense_date)
    month = extract("month", Expense.expense_date)
    monthly = db.execute(
        select(year, month, func.count(Expense.id), func.coalesce(func.sum(Expense.amount), 0))
        .where(*filters)
        .group_by(year, month)
        .order_by(year.desc(), month.desc())
        .limit(MONTHS_WINDOW)
    ).all()
    return {
        "by_category": [
            {
                "category": category,
                "count": int(count),
                "total_amount": _money(total),
                "average_amount": _average(total, int(count)),
            }
            for category, count, total in by_category
        ],
        "monthly": [
            {"month": _month_label(y, m), "count": int(count), "total": _money(total)}
            for y, m, count, total in monthly
        ],
    }


def cash_summary(
    db: Session, *, owner_id: str, start_date: date | None = None, end_date: date | None = None
) -> dict:
    filters = [
        CashRegisterEntry.owner_id == owner_id,
        *datetime_range_filters(CashRegisterEntry.entry_date, start_date, end_date),
    ]
    deposits, withdrawals = db.execute(
        select(
            func.coalesce(
                func.sum(
                    case(
                        (CashRegisterEntry.transaction_type == "deposit", CashRegisterEntry.amount),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(
                func.sum(
                    case(
                        (CashRegisterEntry.transaction_type == "withdrawal", CashRegisterEntry.amount),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(*filters)
    ).one()
    by_category = db.execute(
        select(
            CashRegisterEntry.category,
            func.count(CashRegisterEntry.id),
            func.coalesce(func.sum(CashRegisterEntry.amount), 0),
        )
        .where(*filters)
        .group_by(CashRegisterEntry.category)
        .order_by(CashRegisterEntry.category)
    ).all()
    by_method = db.execute(
        select(
            CashRegisterEntry.payment_method,
            func.count(CashRegisterEntry.id),
            func.coalesce(func.sum(CashRegisterEntry.amount), 0),
        )
        .where(*filters)
        .group_by(CashRegisterEntry.payment_method)
        .order_by(CashRegisterEntry.payment_method)
    ).all()
    return {
        "overall": {
            "total_deposits": _money(deposits),
            "total_withdrawals": _money(withdrawals),
            "current_balance": float(current_balance(db, owner_id)),
        },
        "by_category": _grouped(by_category),
        "by_payment_method": _grouped(by_method),
    }
