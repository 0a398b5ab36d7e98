from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENT = Decimal("1")
# Largest value an SQLite INTEGER column can hold.
MAX_CENTS = 2**63 - 1
MAX_AMOUNT = Decimal(MAX_CENTS).scaleb(-2)


def amount_to_cents(value: Union[Decimal, int, float, str]) -> int:
    """Convert a currency amount to integer cents, rounding half away from zero."""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    try:
        return int((amount * 100).quantize(CENT, rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc


def cents_to_amount(cents: int) -> float:
    return cents / 100


def div_round_half_up(numerator: int, denominator: int) -> int:
    # Integer form of round(n / d) with .5 going up; inputs are never negative.
    if denominator <= 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)


def format_currency(cents: int) -> str:
    return f"${cents / 100:,.2f}"
