"""Decimal helpers for ledger amounts"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

# Matches Numeric(20, 8) storage
AMOUNT_QUANTUM = Decimal("0.00000001")
ZERO = Decimal("0")

Number = Union[Decimal, int, float, str]


def to_amount(value: Number) -> Decimal:
    """Coerce to a Decimal quantized to ledger precision"""
    if not isinstance(value, Decimal):
        # str() keeps floats like 0.1 from dragging binary noise along
        value = Decimal(str(value))
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def format_amount(value: Number) -> str:
    """Two-decimal rendering used in user-facing messages"""
    return f"{Decimal(str(value)):.2f}"
