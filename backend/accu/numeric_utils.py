from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round a currency amount to cents (half-up, the accounting convention)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal_str(value: Optional[Decimal]) -> Optional[str]:
    """
    Serialize a Numeric column for JSON.

    Decimals are rendered as strings so clients never see binary float
    rounding on currency amounts.
    """
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return format(value, "f")
