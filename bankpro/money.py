"""
Money helpers

All balances and amounts are Decimal rupees with two decimal places.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string to a 2-place Decimal"""
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_inr(amount: Decimal) -> str:
    """Render an amount for user-facing messages, e.g. ₹1,234.50"""
    return f"₹{to_money(amount):,.2f}"
