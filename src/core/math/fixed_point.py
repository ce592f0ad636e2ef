"""
Fixed Point — Целочисленная арифметика с фиксированной точкой

Все денежные величины ядра — целые числа (Python int, без float):
- USD и цены: масштаб PRICE_PRECISION = 10**30
- Нативные суммы токенов: масштаб 10**decimals конкретного токена
- Funding/skew индексы: масштаб FUNDING_RATE_PRECISION = 10**6
- Basis points: BASIS_POINTS_DIVISOR = 10_000

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Деление всегда floor (округление вниз для неотрицательных значений)
2. Результат детерминирован и побитово воспроизводим
3. Уменьшение ниже нуля никогда не обрезается — ArithmeticUnderflow
"""

from typing import Final, Optional

from src.core.errors import ArithmeticUnderflow

# =============================================================================
# МАСШТАБЫ
# =============================================================================

# USD и цена (USD за одну целую единицу актива)
PRICE_PRECISION: Final[int] = 10**30

# Накопительные funding/skew индексы и rate factors
FUNDING_RATE_PRECISION: Final[int] = 10**6

BASIS_POINTS_DIVISOR: Final[int] = 10_000

# Decimals синтетического stable-токена пула
SYNTHETIC_DECIMALS: Final[int] = 18


# =============================================================================
# ДЕЛЕНИЕ
# =============================================================================


def mul_div(a: int, b: int, denominator: int, fallback: Optional[int] = None) -> int:
    """
    Floor(a * b / denominator) без промежуточной потери точности.

    Args:
        a: Множитель (>= 0)
        b: Множитель (>= 0)
        denominator: Делитель
        fallback: Значение при denominator == 0 (если None — ValueError)

    Returns:
        Результат деления с округлением вниз

    Examples:
        >>> mul_div(10, 3, 4)
        7
        >>> mul_div(10, 3, 0, fallback=0)
        0
    """
    if denominator == 0:
        if fallback is None:
            raise ValueError("mul_div: division by zero")
        return fallback
    if a < 0 or b < 0 or denominator < 0:
        raise ValueError(f"mul_div expects non-negative operands, got {a}, {b}, {denominator}")
    return a * b // denominator


def apply_bps(value: int, bps: int) -> int:
    """value * bps / 10_000, floor."""
    return mul_div(value, bps, BASIS_POINTS_DIVISOR)


# =============================================================================
# CHECKED ОПЕРАЦИИ
# =============================================================================


def checked_sub(a: int, b: int, what: str = "value") -> int:
    """
    Вычитание с проверкой на underflow.

    Raises:
        ArithmeticUnderflow: Если a - b < 0
    """
    result = a - b
    if result < 0:
        raise ArithmeticUnderflow(f"{what} underflow: {a} - {b} < 0")
    return result
