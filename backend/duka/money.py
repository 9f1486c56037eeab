from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def quantize(amount) -> Decimal:
    """Round to two places (half-up), the precision of every money column."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(amount) -> Optional[str]:
    """JSON wire format for money: a fixed two-place string, never a float."""
    if amount is None:
        return None
    return str(quantize(amount))
