"""Recording of sales, invoices and expenses.

Each public ``record_*``/``cancel_*``/``update_*`` function performs every
write one financial event needs (document, line items, stock movement and the
paired cash-register entry) on the caller's session. The router commits once,
so a failure anywhere leaves nothing behind.
"""
import calendar
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafedesk.core.errors import InsufficientStock, InvalidAmount, InvalidState, NotFound
from cafedesk.core.id_utils import generate_document_number
from cafedesk.core.money import ZERO_MONEY, apply_discount, to_money, to_percent
from cafedesk.core.observability import log_event
from cafedesk.models.expense import Expense
from cafedesk.models.invoice import Invoice, InvoiceItem
from cafedesk.models.product import Product
from cafedesk.models.sales import Sale, SaleItem
from cafedesk.services.cash_register_service import (
    ExpenseReference,
    InvoiceReference,
    find_entry_for_reference,
    record_cash_movement,
    remove_entry,
    revise_entry_amount,
)

STOCK_OUT = "out"
STOCK_IN = "in"


@dataclass(frozen=True)
class LineRequest:
    product_id: str
    quantity: Decimal
    discount_percent: Decimal = ZERO_MONEY


@dataclass(frozen=True)
class PricedLine:
    position: int
    product_id: str
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_percent: Decimal
    tax_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: str


def compute_line_total(quantity: Decimal, unit_price: Decimal, discount_percent: Decimal) -> Decimal:
    gross = Decimal(str(quantity)) * to_money(unit_price)
    return to_money(apply_discount(gross, to_percent(discount_percent)))


def derive_payment_status(*, remaining_amount: Decimal, paid_amount: Decimal) -> str:
    if remaining_amount <= ZERO_MONEY:
        return "paid"
    if paid_amount > ZERO_MONEY:
        return "partial"
    return "unpaid"


def compute_totals(
    line_totals: Iterable[Decimal],
    *,
    discount_percent: Decimal,
    tax_amount: Decimal,
    paid_amount: Decimal,
) -> Totals:
    subtotal = to_money(sum((to_money(v) for v in line_totals), ZERO_MONEY))
    discount = to_percent(discount_percent)
    tax = to_money(tax_amount)
    total = to_money(apply_discount(subtotal, discount) + tax)
    paid = to_money(paid_amount)
    # negative remaining means change is due and is kept as computed
    remaining = to_money(total - paid)
    return Totals(
        subtotal=subtotal,
        discount_percent=discount,
        tax_amount=tax,
        total=total,
        paid_amount=paid,
        remaining_amount=remaining,
        payment_status=derive_payment_status(remaining_amount=remaining, paid_amount=paid),
    )


def _apply_payment(document: Sale | Invoice, paid_amount: Decimal) -> None:
    document.paid_amount = to_money(paid_amount)
    document.remaining_amount = to_money(document.total - document.paid_amount)
    document.payment_status = derive_payment_status(
        remaining_amount=document.remaining_amount,
        paid_amount=document.paid_amount,
    )


def _locked_products(db: Session, *, owner_id: str, product_ids: Iterable[str]) -> dict[str, Product]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    # sorted lock order keeps concurrent requests from deadlocking
    rows = db.execute(
        select(Product)
        .where(Product.owner_id == owner_id, Product.id.in_(ids))
        .order_by(Product.id)
        .with_for_update()
    ).scalars().all()
    products = {product.id: product for product in rows}
    for product_id in ids:
        if product_id not in products:
            raise NotFound(f"Product not found: {product_id}")
    return products


def _quantities_by_product(lines: Iterable[tuple[str, Decimal]]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, ZERO_MONEY) + Decimal(str(quantity))
    return totals


def _check_stock(products: dict[str, Product], quantities: dict[str, Decimal]) -> None:
    for product_id, requested in quantities.items():
        product = products[product_id]
        if product.stock_quantity < requested:
            raise InsufficientStock(
                f"Insufficient stock for {product.name}",
                product_id=product_id,
                available=product.stock_quantity,
                requested=requested,
            )


def move_stock(
    db: Session,
    *,
    owner_id: str,
    lines: Iterable[tuple[str, Decimal]],
    direction: str,
) -> dict[str, Product]:
    """Apply a stock movement for ``(product_id, quantity)`` pairs.

    Every product is locked and, for outgoing stock, checked before any
    quantity changes.
    """
    quantities = _quantities_by_product(lines)
    products = _locked_products(db, owner_id=owner_id, product_ids=quantities)
    if direction == STOCK_OUT:
        _check_stock(products, quantities)
    sign = Decimal("-1") if direction == STOCK_OUT else Decimal("1")
    for product_id, quantity in quantities.items():
        product = products[product_id]
        product.stock_quantity = to_money(product.stock_quantity + sign * quantity)
    return products


def _opposite(direction: str) -> str:
    return STOCK_IN if direction == STOCK_OUT else STOCK_OUT


def price_lines(
    db: Session,
    *,
    owner_id: str,
    lines: Sequence[LineRequest],
    direction: str | None,
) -> list[PricedLine]:
    """Resolve products, snapshot prices and, when ``direction`` is set, move stock."""
    pairs = [(line.product_id, line.quantity) for line in lines]
    if direction is None:
        products = _locked_products(db, owner_id=owner_id, product_ids=[p for p, _ in pairs])
    else:
        products = move_stock(db, owner_id=owner_id, lines=pairs, direction=direction)

    priced: list[PricedLine] = []
    for position, line in enumerate(lines):
        product = products[line.product_id]
        unit_price = to_money(product.price)
        discount = to_percent(line.discount_percent)
        quantity = Decimal(str(line.quantity))
        priced.append(
            PricedLine(
                position=position,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                discount_percent=discount,
                line_total=compute_line_total(quantity, unit_price, discount),
            )
        )
    return priced


def get_sale(db: Session, *, owner_id: str, sale_id: str, lock: bool = False) -> Sale:
    stmt = select(Sale).where(Sale.id == sale_id, Sale.owner_id == owner_id)
    if lock:
        stmt = stmt.with_for_update()
    sale = db.execute(stmt).scalar_one_or_none()
    if not sale:
        raise NotFound("Sale not found")
    return sale


def list_sale_items(db: Session, sale_ids: Sequence[str]) -> dict[str, list[SaleItem]]:
    grouped: dict[str, list[SaleItem]] = {sale_id: [] for sale_id in sale_ids}
    if not sale_ids:
        return grouped
    rows = db.execute(
        select(SaleItem)
        .where(SaleItem.sale_id.in_(list(sale_ids)))
        .order_by(SaleItem.sale_id, SaleItem.position)
    ).scalars().all()
    for item in rows:
        grouped[item.sale_id].append(item)
    return grouped


def record_sale(
    db: Session,
    *,
    owner_id: str,
    actor_id: str,
    lines: Sequence[LineRequest],
    payment_method: str,
    paid_amount: Decimal,
    tax_amount: Decimal,
    discount_percent: Decimal,
    customer: dict | None = None,
    notes: str | None = None,
    sold_at: datetime | None = None,
) -> tuple[Sale, list[SaleItem]]:
    priced = price_lines(db, owner_id=owner_id, lines=lines, direction=STOCK_OUT)
    totals = compute_totals(
        (line.line_total for line in priced),
        discount_percent=discount_percent,
        tax_amount=tax_amount,
        paid_amount=paid_amount,
    )

    sale = Sale(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        sale_number=generate_document_number("SALE"),
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        discount_percent=totals.discount_percent,
        total=totals.total,
        paid_amount=totals.paid_amount,
        remaining_amount=totals.remaining_amount,
        payment_method=payment_method,
        payment_status=totals.payment_status,
        status="confirmed",
        customer=customer,
        notes=notes,
        sold_at=sold_at or datetime.now(timezone.utc),
        created_by=actor_id,
    )
    db.add(sale)
    db.flush()

    items = [
        SaleItem(
            id=str(uuid.uuid4()),
            sale_id=sale.id,
            product_id=line.product_id,
            position=line.position,
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            discount_percent=line.discount_percent,
            line_total=line.line_total,
        )
        for line in priced
    ]
    db.add_all(items)

    log_event(
        "sale.recorded",
        owner_id=owner_id,
        sale_id=sale.id,
        sale_number=sale.sale_number,
        total=sale.total,
        paid_amount=sale.paid_amount,
        payment_status=sale.payment_status,
        items_count=len(items),
    )
    return sale, items


def update_sale(
    db: Session,
    *,
    owner_id: str,
    sale_id: str,
    paid_amount: Decimal | None = None,
    notes: str | None = None,
    notes_set: bool = False,
) -> Sale:
    sale = get_sale(db, owner_id=owner_id, sale_id=sale_id, lock=True)
    if paid_amount is not None:
        if sale.status != "confirmed":
            raise InvalidState("Payment of a cancelled sale cannot change")
        _apply_payment(sale, paid_amount)
    if notes_set:
        sale.notes = notes
    log_event(
        "sale.updated",
        owner_id=owner_id,
        sale_id=sale.id,
        paid_amount=sale.paid_amount,
        payment_status=sale.payment_status,
    )
    return sale


def cancel_sale(db: Session, *, owner_id: str, sale_id: str) -> Sale:
    sale = get_sale(db, owner_id=owner_id, sale_id=sale_id, lock=True)
    if sale.status != "confirmed":
        raise InvalidState("Only confirmed sales can be cancelled")

    items = list_sale_items(db, [sale.id])[sale.id]
    move_stock(
        db,
        owner_id=owner_id,
        lines=[(item.product_id, item.quantity) for item in items],
        direction=_opposite(STOCK_OUT),
    )
    sale.status = "cancelled"
    sale.cancelled_at = datetime.now(timezone.utc)
    log_event(
        "sale.cancelled",
        owner_id=owner_id,
        sale_id=sale.id,
        total=sale.total,
        paid_amount=sale.paid_amount,
    )
    return sale


def invoice_stock_direction(invoice_type: str) -> str:
    return STOCK_IN if invoice_type == "purchase" else STOCK_OUT


def _mirror_invoice_payment(
    db: Session,
    *,
    invoice: Invoice,
    actor_id: str,
    amount: Decimal,
    description: str,
) -> None:
    if amount <= ZERO_MONEY:
        return
    incoming = invoice.type == "sale"
    record_cash_movement(
        db,
        owner_id=invoice.owner_id,
        actor_id=actor_id,
        transaction_type="deposit" if incoming else "withdrawal",
        amount=amount,
        payment_method=invoice.payment_method,
        description=description,
        category="sale" if incoming else "expense",
        reference=InvoiceReference(id=invoice.id),
    )


def _payment_description(invoice: Invoice) -> str:
    verb = "Payment received for" if invoice.type == "sale" else "Payment made for"
    return f"{verb} invoice #{invoice.invoice_number}"


def get_invoice(db: Session, *, owner_id: str, invoice_id: str, lock: bool = False) -> Invoice:
    stmt = select(Invoice).where(Invoice.id == invoice_id, Invoice.owner_id == owner_id)
    if lock:
        stmt = stmt.with_for_update()
    invoice = db.execute(stmt).scalar_one_or_none()
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice


def list_invoice_items(db: Session, invoice_ids: Sequence[str]) -> dict[str, list[InvoiceItem]]:
    grouped: dict[str, list[InvoiceItem]] = {invoice_id: [] for invoice_id in invoice_ids}
    if not invoice_ids:
        return grouped
    rows = db.execute(
        select(InvoiceItem)
        .where(InvoiceItem.invoice_id.in_(list(invoice_ids)))
        .order_by(InvoiceItem.invoice_id, InvoiceItem.position)
    ).scalars().all()
    for item in rows:
        grouped[item.invoice_id].append(item)
    return grouped


def record_invoice(
    db: Session,
    *,
    owner_id: str,
    actor_id: str,
    invoice_type: str,
    party: dict,
    lines: Sequence[LineRequest],
    payment_method: str,
    paid_amount: Decimal,
    tax_amount: Decimal,
    discount_percent: Decimal,
    status: str = "confirmed",
    issue_date: date | None = None,
    due_date: date | None = None,
    terms: str | None = None,
    notes: str | None = None,
) -> tuple[Invoice, list[InvoiceItem]]:
    """Create an invoice; a confirmed one moves stock and mirrors its payment.

    A draft only snapshots prices. Stock and cash follow on confirmation.
    """
    confirmed = status == "confirmed"
    priced = price_lines(
        db,
        owner_id=owner_id,
        lines=lines,
        direction=invoice_stock_direction(invoice_type) if confirmed else None,
    )
    totals = compute_totals(
        (line.line_total for line in priced),
        discount_percent=discount_percent,
        tax_amount=tax_amount,
        paid_amount=paid_amount,
    )

    now = datetime.now(timezone.utc)
    invoice = Invoice(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        invoice_number=generate_document_number("INV"),
        type=invoice_type,
        party=party,
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        discount_percent=totals.discount_percent,
        total=totals.total,
        paid_amount=totals.paid_amount,
        remaining_amount=totals.remaining_amount,
        payment_method=payment_method,
        payment_status=totals.payment_status,
        status=status,
        issue_date=issue_date or now.date(),
        due_date=due_date,
        terms=terms,
        notes=notes,
        confirmed_at=now if confirmed else None,
        created_by=actor_id,
    )
    db.add(invoice)
    db.flush()

    items = [
        InvoiceItem(
            id=str(uuid.uuid4()),
            invoice_id=invoice.id,
            product_id=line.product_id,
            position=line.position,
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            discount_percent=line.discount_percent,
            line_total=line.line_total,
        )
        for line in priced
    ]
    db.add_all(items)

    if confirmed:
        _mirror_invoice_payment(
            db,
            invoice=invoice,
            actor_id=actor_id,
            amount=invoice.paid_amount,
            description=_payment_description(invoice),
        )

    log_event(
        "invoice.recorded",
        owner_id=owner_id,
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        invoice_type=invoice_type,
        status=status,
        total=invoice.total,
        paid_amount=invoice.paid_amount,
    )
    return invoice, items


def confirm_invoice(db: Session, *, owner_id: str, actor_id: str, invoice_id: str) -> Invoice:
    invoice = get_invoice(db, owner_id=owner_id, invoice_id=invoice_id, lock=True)
    if invoice.status != "draft":
        raise InvalidState("Only draft invoices can be confirmed")

    items = list_invoice_items(db, [invoice.id])[invoice.id]
    move_stock(
        db,
        owner_id=owner_id,
        lines=[(item.product_id, item.quantity) for item in items],
        direction=invoice_stock_direction(invoice.type),
    )
    invoice.status = "confirmed"
    invoice.confirmed_at = datetime.now(timezone.utc)
    _mirror_invoice_payment(
        db,
        invoice=invoice,
        actor_id=actor_id,
        amount=invoice.paid_amount,
        description=_payment_description(invoice),
    )
    log_event(
        "invoice.confirmed",
        owner_id=owner_id,
        invoice_id=invoice.id,
        paid_amount=invoice.paid_amount,
    )
    return invoice


def void_invoice(db: Session, *, owner_id: str, invoice_id: str) -> Invoice:
    invoice = get_invoice(db, owner_id=owner_id, invoice_id=invoice_id, lock=True)
    if invoice.status != "draft":
        raise InvalidState("Only draft invoices can be voided")
    invoice.status = "void"
    log_event("invoice.voided", owner_id=owner_id, invoice_id=invoice.id)
    return invoice


def record_invoice_payment(
    db: Session,
    *,
    owner_id: str,
    actor_id: str,
    invoice_id: str,
    paid_amount: Decimal,
    payment_method: str,
) -> tuple[Invoice, Decimal]:
    """Raise an invoice's paid amount and mirror the increase into the register."""
    invoice = get_invoice(db, owner_id=owner_id, invoice_id=invoice_id, lock=True)
    if invoice.status != "confirmed":
        raise InvalidState("Payments can only be added to confirmed invoices")

    new_paid = to_money(paid_amount)
    delta = to_money(new_paid - invoice.paid_amount)
    if delta <= ZERO_MONEY:
        raise InvalidAmount(
            "New paid amount must be greater than the current paid amount",
            details=[
                {
                    "field": "paid_amount",
                    "message": f"current={to_money(invoice.paid_amount)}, requested={new_paid}",
                    "type": "invalid_amount",
                }
            ],
        )

    invoice.payment_method = payment_method
    _apply_payment(invoice, new_paid)
    _mirror_invoice_payment(
        db,
        invoice=invoice,
        actor_id=actor_id,
        amount=delta,
        description=f"Additional payment for invoice #{invoice.invoice_number}",
    )
    log_event(
        "invoice.paid",
        owner_id=owner_id,
        invoice_id=invoice.id,
        delta=delta,
        paid_amount=invoice.paid_amount,
        payment_status=invoice.payment_status,
    )
    return invoice, delta


def cancel_invoice(db: Session, *, owner_id: str, invoice_id: str) -> Invoice:
    invoice = get_invoice(db, owner_id=owner_id, invoice_id=invoice_id, lock=True)
    if invoice.status != "confirmed":
        raise InvalidState("Only confirmed invoices can be cancelled")

    items = list_invoice_items(db, [invoice.id])[invoice.id]
    move_stock(
        db,
        owner_id=owner_id,
        lines=[(item.product_id, item.quantity) for item in items],
        direction=_opposite(invoice_stock_direction(invoice.type)),
    )
    invoice.status = "cancelled"
    invoice.cancelled_at = datetime.now(timezone.utc)
    log_event(
        "invoice.cancelled",
        owner_id=owner_id,
        invoice_id=invoice.id,
        total=invoice.total,
        paid_amount=invoice.paid_amount,
    )
    return invoice


def _add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_due_date(expense_date: date, frequency: str, recurring: bool) -> date | None:
    if not recurring or frequency == "none":
        return None
    if frequency == "daily":
        return expense_date + timedelta(days=1)
    if frequency == "weekly":
        return expense_date + timedelta(weeks=1)
    if frequency == "monthly":
        return _add_months(expense_date, 1)
    if frequency == "yearly":
        return _add_months(expense_date, 12)
    return None


def _expense_description(description: str) -> str:
    return f"Expense: {description}"


def get_expense(db: Session, *, owner_id: str, expense_id: str) -> Expense:
    expense = db.execute(
        select(Expense).where(Expense.id == expense_id, Expense.owner_id == owner_id)
    ).scalar_one_or_none()
    if not expense:
        raise NotFound("Expense not found")
    return expense


def record_expense(
    db: Session,
    *,
    owner_id: str,
    actor_id: str,
    description: str,
    amount: Decimal,
    category: str,
    payment_method: str,
    expense_date: date | None = None,
    recurring: bool = False,
    frequency: str = "none",
    attachments: list[dict] | None = None,
    notes: str | None = None,
) -> Expense:
    spent_on = expense_date or datetime.now(timezone.utc).date()
    expense = Expense(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        expense_date=spent_on,
        description=description,
        amount=to_money(amount),
        category=category,
        payment_method=payment_method,
        recurring=recurring,
        frequency=frequency,
        next_due_date=next_due_date(spent_on, frequency, recurring),
        status="paid",
        attachments=attachments or [],
        notes=notes,
        created_by=actor_id,
    )
    db.add(expense)
    record_cash_movement(
        db,
        owner_id=owner_id,
        actor_id=actor_id,
        transaction_type="withdrawal",
        amount=expense.amount,
        payment_method=payment_method,
        description=_expense_description(description),
        category="expense",
        reference=ExpenseReference(id=expense.id),
    )
    log_event(
        "expense.recorded",
        owner_id=owner_id,
        expense_id=expense.id,
        amount=expense.amount,
        category=category,
    )
    return expense


def update_expense(db: Session, *, owner_id: str, expense_id: str, changes: dict) -> Expense:
    """Apply field changes and keep the linked register entry in step."""
    expense = get_expense(db, owner_id=owner_id, expense_id=expense_id)
    for field_name, value in changes.items():
        if field_name == "amount":
            value = to_money(value)
        setattr(expense, field_name, value)

    if not expense.recurring:
        expense.frequency = "none"
    expense.next_due_date = next_due_date(expense.expense_date, expense.frequency, expense.recurring)

    entry = find_entry_for_reference(
        db, owner_id=owner_id, reference=ExpenseReference(id=expense.id)
    )
    if entry is not None:
        if entry.amount != expense.amount:
            revise_entry_amount(db, entry, expense.amount)
        entry.payment_method = expense.payment_method
        entry.description = _expense_description(expense.description)

    log_event(
        "expense.updated",
        owner_id=owner_id,
        expense_id=expense.id,
        amount=expense.amount,
        fields=sorted(changes),
    )
    return expense


def delete_expense(db: Session, *, owner_id: str, expense_id: str) -> Expense:
    expense = get_expense(db, owner_id=owner_id, expense_id=expense_id)
    entry = find_entry_for_reference(
        db, owner_id=owner_id, reference=ExpenseReference(id=expense.id)
    )
    if entry is not None:
        remove_entry(db, entry)
    db.delete(expense)
    log_event(
        "expense.deleted",
        owner_id=owner_id,
        expense_id=expense.id,
        amount=expense.amount,
    )
    return expense
