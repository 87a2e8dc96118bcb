from datetime import date
from decimal import Decimal

import pytest

from cafedesk.core.id_utils import generate_document_number
from cafedesk.services.blog_service import estimate_read_time, slugify
from cafedesk.services.cash_register_service import (
    ExpenseReference,
    InvoiceReference,
    SaleReference,
    build_reference,
)
from cafedesk.services.financial_service import (
    compute_line_total,
    compute_totals,
    derive_payment_status,
    next_due_date,
)


def test_line_total_applies_percentage_discount():
    assert compute_line_total(Decimal("3"), Decimal("2.50"), Decimal("10")) == Decimal("6.75")
    assert compute_line_total(Decimal("1"), Decimal("9.99"), Decimal("0")) == Decimal("9.99")
    assert compute_line_total(Decimal("2"), Decimal("5"), Decimal("100")) == Decimal("0.00")


def test_totals_discount_subtotal_before_tax():
    totals = compute_totals(
        [Decimal("20.00"), Decimal("10.00")],
        discount_percent=Decimal("10"),
        tax_amount=Decimal("2.00"),
        paid_amount=Decimal("5.00"),
    )
    assert totals.subtotal == Decimal("30.00")
    assert totals.total == Decimal("29.00")
    assert totals.remaining_amount == Decimal("24.00")
    assert totals.payment_status == "partial"


@pytest.mark.parametrize(
    ("remaining", "paid", "expected"),
    [
        (Decimal("10.00"), Decimal("0.00"), "unpaid"),
        (Decimal("4.00"), Decimal("6.00"), "partial"),
        (Decimal("0.00"), Decimal("10.00"), "paid"),
        (Decimal("-2.00"), Decimal("12.00"), "paid"),
        (Decimal("0.00"), Decimal("0.00"), "paid"),
    ],
)
def test_payment_status_follows_remaining_amount(remaining, paid, expected):
    assert derive_payment_status(remaining_amount=remaining, paid_amount=paid) == expected


@pytest.mark.parametrize(
    ("frequency", "expected"),
    [
        ("daily", date(2026, 2, 1)),
        ("weekly", date(2026, 2, 7)),
        ("monthly", date(2026, 2, 28)),
        ("yearly", date(2027, 1, 31)),
    ],
)
def test_next_due_date_clamps_month_end(frequency, expected):
    assert next_due_date(date(2026, 1, 31), frequency, True) == expected


def test_next_due_date_is_empty_for_one_off_expenses():
    assert next_due_date(date(2026, 1, 31), "monthly", False) is None
    assert next_due_date(date(2026, 1, 31), "none", True) is None


def test_build_reference_by_kind():
    assert build_reference("sale", "s1") == SaleReference(id="s1")
    assert build_reference("invoice", "i1") == InvoiceReference(id="i1")
    assert build_reference("expense", "e1") == ExpenseReference(id="e1")
    assert build_reference(None, None) is None


def test_document_numbers_are_prefixed_and_distinct():
    first = generate_document_number("SALE")
    second = generate_document_number("SALE")
    assert first.startswith("SALE-")
    assert len(first.split("-")[-1]) == 6
    assert first != second


def test_slug_and_read_time_helpers():
    assert slugify("  Café & Croissants: 2026!  ") == "caf-croissants-2026"
    assert slugify("!!!") == "post"
    assert estimate_read_time("one two three") == 1
    assert estimate_read_time(" ".join(["w"] * 401)) == 3
