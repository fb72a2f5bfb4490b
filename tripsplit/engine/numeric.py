"""
Shared numeric helpers for the ledger engine.

Home-currency amounts are settled in whole units; origin-currency
amounts are shown with at most two decimals.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

ZERO = Decimal("0")
HALF = Decimal("0.5")
CENT = Decimal("0.01")


def try_decimal(value: Any) -> Optional[Decimal]:
    """Parse a number from a cell value, returning None when it is not one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    return result if result.is_finite() else None


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    parsed = try_decimal(value)
    return default if parsed is None else parsed


def round_home(amount: Decimal) -> Decimal:
    """Round to a whole home-currency unit, halves toward +infinity."""
    result = (amount + HALF).to_integral_value(rounding=ROUND_FLOOR)
    # Avoid Decimal('-0')
    return result + 0


def format_home(amount: Decimal) -> str:
    return str(int(round_home(amount)))


def format_origin(amount: Decimal) -> str:
    """At most two decimals; integral values carry no fractional part."""
    quantized = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if quantized == quantized.to_integral_value():
        return str(int(quantized))
    return format(quantized.normalize(), "f")


def safe_divide(numerator: Decimal, denominator: Decimal, default: Decimal = ZERO) -> Decimal:
    if denominator == 0:
        return default
    return numerator / denominator


def within_tolerance(remainder: Decimal, tolerance: Decimal) -> bool:
    """True when the remainder is zero or its magnitude is strictly below tolerance."""
    return remainder == 0 or abs(remainder) < tolerance
