"""
Money helpers for the payout engine.
All amounts are USD floats; rounding to cents uses ROUND_HALF_UP on the
decimal representation of the float so 1.005 becomes 1.01.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal('0.01')


def quantize_money(value: Decimal) -> Decimal:
    """Round a Decimal to cents using ROUND_HALF_UP."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_currency(value: float) -> float:
    """Round a float amount (or percentage) to 2 decimals, half away from zero."""
    return float(quantize_money(Decimal(str(value))))


def sum_currency(values: Iterable[float]) -> float:
    """Sum already-rounded amounts without picking up float noise."""
    total = sum((Decimal(str(v)) for v in values), Decimal('0'))
    return float(quantize_money(total))
