from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
PERCENT_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_percent(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP)


def apply_discount(amount: Decimal, discount_percent: Decimal) -> Decimal:
    """Reduce ``amount`` by ``discount_percent`` (0-100) without rounding."""
    return amount * (1 - discount_percent / HUNDRED)
