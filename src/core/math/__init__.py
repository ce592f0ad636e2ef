"""
Core math modules

Целочисленные примитивы с фиксированной точкой и формулы позиции.
"""

# Fixed Point
from src.core.math.fixed_point import (
    # Scale constants
    BASIS_POINTS_DIVISOR,
    FUNDING_RATE_PRECISION,
    PRICE_PRECISION,
    SYNTHETIC_DECIMALS,
    # Division
    apply_bps,
    mul_div,
    # Checked
    checked_sub,
)

# Position Math
from src.core.math.position_math import (
    get_delta,
    leverage_bps,
    next_average_price,
    next_global_short_average_price,
    signed_pnl,
)

__all__ = [
    # Fixed Point: Scale constants
    "PRICE_PRECISION",
    "FUNDING_RATE_PRECISION",
    "BASIS_POINTS_DIVISOR",
    "SYNTHETIC_DECIMALS",
    # Fixed Point: Division
    "mul_div",
    "apply_bps",
    # Fixed Point: Checked
    "checked_sub",
    # Position Math
    "get_delta",
    "signed_pnl",
    "next_average_price",
    "next_global_short_average_price",
    "leverage_bps",
]
