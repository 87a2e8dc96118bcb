"""Cash-register ledger writes.

Every entry is appended through :func:`record_cash_movement`, which locks the
owner's :class:`CashRegisterBalance` row, moves it by the entry amount and
stamps the entry with the resulting balance and the next sequence number.
Callers own the transaction; nothing here commits.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafedesk.core.errors import InsufficientFunds, InvalidAmount, NotFound, ValidationFailed
from cafedesk.core.money import ZERO_MONEY, to_money
from cafedesk.core.observability import log_event
from cafedesk.models.cash_register import CashRegisterBalance, CashRegisterEntry
from cafedesk.models.expense import Expense
from cafedesk.models.invoice import Invoice
from cafedesk.models.sales import Sale


@dataclass(frozen=True)
class SaleReference:
    kind: ClassVar[str] = "sale"
    id: str


@dataclass(frozen=True)
class InvoiceReference:
    kind: ClassVar[str] = "invoice"
    id: str


@dataclass(frozen=True)
class ExpenseReference:
    kind: ClassVar[str] = "expense"
    id: str


CashReference = Union[SaleReference, InvoiceReference, ExpenseReference]

_REFERENCE_TYPES: dict[str, type] = {
    SaleReference.kind: SaleReference,
    InvoiceReference.kind: InvoiceReference,
    ExpenseReference.kind: ExpenseReference,
}

_REFERENCE_MODELS = {
    SaleReference: Sale,
    InvoiceReference: Invoice,
    ExpenseReference: Expense,
}

_SIGN = {"deposit": Decimal("1"), "withdrawal": Decimal("-1")}


def build_reference(kind: str | None, ref_id: str | None) -> CashReference | None:
    if not kind or not ref_id:
        return None
    reference_type = _REFERENCE_TYPES.get(kind)
    if reference_type is None:
        raise ValidationFailed(f"Unknown cash reference type: {kind}")
    return reference_type(id=ref_id)


def entry_reference(entry: CashRegisterEntry) -> CashReference | None:
    return build_reference(entry.reference_type, entry.reference_id)


def ensure_reference_in_scope(db: Session, *, owner_id: str, reference: CashReference) -> None:
    model = _REFERENCE_MODELS[type(reference)]
    found = db.execute(
        select(model.id).where(model.id == reference.id, model.owner_id == owner_id)
    ).scalar_one_or_none()
    if found is None:
        raise NotFound(f"Referenced {reference.kind} not found")


def open_register(db: Session, owner_id: str) -> CashRegisterBalance:
    """Create the zero balance row for a new ledger owner.

    Runs inside the account's creating transaction so the first cash entries
    only ever lock an existing row.
    """
    counter = CashRegisterBalance(owner_id=owner_id, balance=ZERO_MONEY, last_sequence=0)
    db.add(counter)
    db.flush()
    return counter


def _locked_balance(db: Session, owner_id: str) -> CashRegisterBalance:
    counter = db.execute(
        select(CashRegisterBalance)
        .where(CashRegisterBalance.owner_id == owner_id)
        .with_for_update()
    ).scalar_one_or_none()
    if counter is None:
        # accounts inserted outside create_user
        counter = open_register(db, owner_id)
    return counter


def current_balance(db: Session, owner_id: str) -> Decimal:
    balance = db.execute(
        select(CashRegisterBalance.balance).where(CashRegisterBalance.owner_id == owner_id)
    ).scalar_one_or_none()
    return to_money(balance or ZERO_MONEY)


def record_cash_movement(
    db: Session,
    *,
    owner_id: str,
    actor_id: str,
    transaction_type: str,
    amount: Decimal,
    payment_method: str,
    description: str,
    category: str,
    reference: CashReference | None = None,
    notes: str | None = None,
    guard_funds: bool = False,
) -> CashRegisterEntry:
    """Append one ledger entry and move the owner's running balance.

    ``guard_funds`` rejects a withdrawal that would take the balance below
    zero. Only direct register transactions set it; expense and purchase
    withdrawals always go through.
    """
    if transaction_type not in _SIGN:
        raise ValidationFailed(f"Unknown transaction type: {transaction_type}")
    amount = to_money(amount)
    if amount < ZERO_MONEY:
        raise InvalidAmount("Cash amount cannot be negative")

    counter = _locked_balance(db, owner_id)
    new_balance = to_money(counter.balance + _SIGN[transaction_type] * amount)
    if guard_funds and transaction_type == "withdrawal" and new_balance < ZERO_MONEY:
        raise InsufficientFunds(
            "Insufficient funds in the cash register",
            details=[
                {
                    "field": "amount",
                    "message": f"balance={to_money(counter.balance)}, requested={amount}",
                    "type": "insufficient_funds",
                }
            ],
        )

    counter.balance = new_balance
    counter.last_sequence += 1

    entry = CashRegisterEntry(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        sequence=counter.last_sequence,
        entry_date=datetime.now(timezone.utc),
        transaction_type=transaction_type,
        payment_method=payment_method,
        amount=amount,
        balance=new_balance,
        description=description,
        category=category,
        reference_type=reference.kind if reference else None,
        reference_id=reference.id if reference else None,
        notes=notes,
        created_by=actor_id,
    )
    db.add(entry)
    log_event(
        "cash_entry.recorded",
        owner_id=owner_id,
        entry_id=entry.id,
        sequence=entry.sequence,
        transaction_type=transaction_type,
        amount=amount,
        balance=new_balance,
        reference_type=entry.reference_type,
        reference_id=entry.reference_id,
    )
    return entry


def find_entry_for_reference(
    db: Session, *, owner_id: str, reference: CashReference
) -> CashRegisterEntry | None:
    return db.execute(
        select(CashRegisterEntry)
        .where(
            CashRegisterEntry.owner_id == owner_id,
            CashRegisterEntry.reference_type == reference.kind,
            CashRegisterEntry.reference_id == reference.id,
        )
        .order_by(CashRegisterEntry.sequence.asc())
    ).scalars().first()


def revise_entry_amount(db: Session, entry: CashRegisterEntry, new_amount: Decimal) -> Decimal:
    """Rewrite an entry's amount and move the running balance by the difference.

    Balances already stamped on later entries are left as recorded.
    Returns the signed change applied to the balance.
    """
    new_amount = to_money(new_amount)
    counter = _locked_balance(db, entry.owner_id)
    sign = _SIGN[entry.transaction_type]
    shift = to_money(sign * (new_amount - entry.amount))
    counter.balance = to_money(counter.balance + shift)
    entry.balance = to_money(entry.balance + shift)
    entry.amount = new_amount
    log_event(
        "cash_entry.revised",
        owner_id=entry.owner_id,
        entry_id=entry.id,
        amount=new_amount,
        balance_shift=shift,
        balance=counter.balance,
    )
    return shift


def remove_entry(db: Session, entry: CashRegisterEntry) -> Decimal:
    """Delete an entry and take its effect back out of the running balance."""
    counter = _locked_balance(db, entry.owner_id)
    shift = to_money(-_SIGN[entry.transaction_type] * entry.amount)
    counter.balance = to_money(counter.balance + shift)
    db.delete(entry)
    log_event(
        "cash_entry.removed",
        owner_id=entry.owner_id,
        entry_id=entry.id,
        amount=entry.amount,
        balance=counter.balance,
    )
    return shift
