from __future__ import annotations

from typing import Iterable, Optional, Tuple

from conecta_loja.config import settings
from conecta_loja.constants import DISCOUNT_PERCENTAGE


def calc_effective_price(
    price: float,
    discount: Optional[float] = None,
    discount_type: Optional[str] = None,
) -> float:
    """
    Unit price after discount.

    PERCENTAGE takes ``discount`` percent off, any other type subtracts it
    as a fixed amount. Never goes below zero.
    """
    base = float(price)
    if not discount:
        return base

    value = float(discount)
    if discount_type == DISCOUNT_PERCENTAGE:
        result = base * (1 - value / 100)
    else:
        result = base - value
    return max(result, 0.0)


def calc_total(lines: Iterable[Tuple[float, int]]) -> float:
    """Sum of (unit_price, qty) pairs, rounded like every other money value."""
    total = 0.0
    for unit_price, qty in lines:
        total += unit_price * qty
    return round(total, settings.decimals)
