from __future__ import annotations

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(value) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def floor_div(value: Decimal, unit: int) -> int:
    """Whole number of units contained in value (rounded down)."""
    return int((Decimal(value) / unit).to_integral_value(rounding=ROUND_DOWN))


def to_money_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize money as a fixed 2-decimal string."""
    if value is None:
        return None
    return str(quantize_money(value))
