"""
Units — Типизированные величины с фиксированной точкой

Единственный допустимый способ работы с денежными величинами ядра:
- Usd: сумма в USD (масштаб PRICE_PRECISION), может быть отрицательной (PnL)
- Price: USD за одну целую единицу актива (масштаб PRICE_PRECISION)
- TokenAmount: нативная сумма токена (масштаб 10**decimals, decimals внутри)

ЗАПРЕЩЕНО смешивать единицы без явного конвертера из этого модуля:
Usd + TokenAmount, TokenAmount(18) + TokenAmount(6) → UnitMismatchError.

Конвертеры:
- token_to_usd(amount, price) → Usd
- usd_to_token(usd, price, decimals) → TokenAmount
- usd_to_synthetic(usd) / synthetic_to_usd(amount) — синтетический stable (18 decimals)

Округление всегда вниз. Выбор min/max цены (в пользу пула) — забота
вызывающего кода.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from src.core.errors import ArithmeticUnderflow, UnitMismatchError
from src.core.math.fixed_point import (
    PRICE_PRECISION,
    SYNTHETIC_DECIMALS,
    apply_bps,
    checked_sub,
)

Number = Union[int, str, Decimal]


def _scaled(value: Number, scale: int) -> int:
    """Целое представление value * scale (для человекочитаемых литералов)."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value * scale
    return int(Decimal(str(value)) * scale)


def _require_same(left: object, right: object) -> None:
    if type(left) is not type(right):
        raise UnitMismatchError(
            f"cannot combine {type(left).__name__} with {type(right).__name__}"
        )


# =============================================================================
# USD
# =============================================================================


@dataclass(frozen=True)
class Usd:
    """Сумма в USD, масштаб PRICE_PRECISION."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"Usd.value must be int, got {type(self.value).__name__}")

    @classmethod
    def of(cls, dollars: Number) -> "Usd":
        """Usd.of(1000) == 1000 USD."""
        return cls(_scaled(dollars, PRICE_PRECISION))

    @classmethod
    def zero(cls) -> "Usd":
        return cls(0)

    def __add__(self, other: "Usd") -> "Usd":
        _require_same(self, other)
        return Usd(self.value + other.value)

    def __sub__(self, other: "Usd") -> "Usd":
        _require_same(self, other)
        return Usd(self.value - other.value)

    def __neg__(self) -> "Usd":
        return Usd(-self.value)

    def __abs__(self) -> "Usd":
        return Usd(abs(self.value))

    def __lt__(self, other: "Usd") -> bool:
        _require_same(self, other)
        return self.value < other.value

    def __le__(self, other: "Usd") -> bool:
        _require_same(self, other)
        return self.value <= other.value

    def __gt__(self, other: "Usd") -> bool:
        _require_same(self, other)
        return self.value > other.value

    def __ge__(self, other: "Usd") -> bool:
        _require_same(self, other)
        return self.value >= other.value

    def __bool__(self) -> bool:
        return self.value != 0

    def checked_sub(self, other: "Usd", what: str = "usd") -> "Usd":
        """Вычитание без ухода в минус (ArithmeticUnderflow)."""
        _require_same(self, other)
        return Usd(checked_sub(self.value, other.value, what))

    def mul_div(self, numerator: int, denominator: int) -> "Usd":
        """self * numerator / denominator (безразмерная доля), floor."""
        if self.value < 0:
            return Usd(-(-self.value * numerator // denominator))
        return Usd(self.value * numerator // denominator)

    def bps(self, basis_points: int) -> "Usd":
        """Доля в basis points (для неотрицательных сумм)."""
        return Usd(apply_bps(self.value, basis_points))

    def __repr__(self) -> str:
        return f"Usd({Decimal(self.value) / PRICE_PRECISION})"


# =============================================================================
# PRICE
# =============================================================================


@dataclass(frozen=True)
class Price:
    """USD за одну целую единицу актива, масштаб PRICE_PRECISION."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"Price.value must be int, got {type(self.value).__name__}")
        if self.value < 0:
            raise ValueError(f"Price cannot be negative: {self.value}")

    @classmethod
    def of(cls, dollars: Number) -> "Price":
        """Price.of(100) == 100 USD за единицу."""
        return cls(_scaled(dollars, PRICE_PRECISION))

    @classmethod
    def zero(cls) -> "Price":
        return cls(0)

    def __lt__(self, other: "Price") -> bool:
        _require_same(self, other)
        return self.value < other.value

    def __le__(self, other: "Price") -> bool:
        _require_same(self, other)
        return self.value <= other.value

    def __gt__(self, other: "Price") -> bool:
        _require_same(self, other)
        return self.value > other.value

    def __ge__(self, other: "Price") -> bool:
        _require_same(self, other)
        return self.value >= other.value

    def __bool__(self) -> bool:
        return self.value != 0

    def __repr__(self) -> str:
        return f"Price({Decimal(self.value) / PRICE_PRECISION})"


# =============================================================================
# TOKEN AMOUNT
# =============================================================================


@dataclass(frozen=True)
class TokenAmount:
    """Нативная сумма токена с собственным масштабом 10**decimals."""

    amount: int
    decimals: int

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"TokenAmount.amount must be int, got {type(self.amount).__name__}")
        if self.amount < 0:
            raise ArithmeticUnderflow(f"TokenAmount cannot be negative: {self.amount}")
        if not 0 <= self.decimals <= 36:
            raise ValueError(f"decimals out of range: {self.decimals}")

    @classmethod
    def of(cls, units: Number, decimals: int) -> "TokenAmount":
        """TokenAmount.of(15, 18) == 15 * 10**18 нативных единиц."""
        return cls(_scaled(units, 10**decimals), decimals)

    @classmethod
    def zero(cls, decimals: int) -> "TokenAmount":
        return cls(0, decimals)

    def _check(self, other: "TokenAmount") -> None:
        _require_same(self, other)
        if self.decimals != other.decimals:
            raise UnitMismatchError(
                f"cannot combine token amounts with {self.decimals} and {other.decimals} decimals"
            )

    def __add__(self, other: "TokenAmount") -> "TokenAmount":
        self._check(other)
        return TokenAmount(self.amount + other.amount, self.decimals)

    def __sub__(self, other: "TokenAmount") -> "TokenAmount":
        self._check(other)
        if other.amount > self.amount:
            raise ArithmeticUnderflow(
                f"token amount underflow: {self.amount} - {other.amount} < 0"
            )
        return TokenAmount(self.amount - other.amount, self.decimals)

    def __lt__(self, other: "TokenAmount") -> bool:
        self._check(other)
        return self.amount < other.amount

    def __le__(self, other: "TokenAmount") -> bool:
        self._check(other)
        return self.amount <= other.amount

    def __gt__(self, other: "TokenAmount") -> bool:
        self._check(other)
        return self.amount > other.amount

    def __ge__(self, other: "TokenAmount") -> bool:
        self._check(other)
        return self.amount >= other.amount

    def __bool__(self) -> bool:
        return self.amount != 0

    def mul_div(self, numerator: int, denominator: int) -> "TokenAmount":
        """self * numerator / denominator, floor."""
        return TokenAmount(self.amount * numerator // denominator, self.decimals)

    def __repr__(self) -> str:
        return f"TokenAmount({Decimal(self.amount) / (10 ** self.decimals)}, decimals={self.decimals})"


# =============================================================================
# КОНВЕРТЕРЫ
# =============================================================================


def token_to_usd(amount: TokenAmount, price: Price) -> Usd:
    """
    Конверсия: нативная сумма → USD.

    usd = amount * price / 10**decimals
    """
    if not isinstance(amount, TokenAmount) or not isinstance(price, Price):
        raise UnitMismatchError("token_to_usd expects (TokenAmount, Price)")
    return Usd(amount.amount * price.value // 10**amount.decimals)


def usd_to_token(usd: Usd, price: Price, decimals: int) -> TokenAmount:
    """
    Конверсия: USD → нативная сумма.

    amount = usd * 10**decimals / price

    Raises:
        ValueError: Если price == 0 или usd < 0
    """
    if not isinstance(usd, Usd) or not isinstance(price, Price):
        raise UnitMismatchError("usd_to_token expects (Usd, Price)")
    if price.value == 0:
        raise ValueError("usd_to_token: zero price")
    if usd.value < 0:
        raise ValueError(f"usd_to_token: negative usd {usd.value}")
    return TokenAmount(usd.value * 10**decimals // price.value, decimals)


def usd_to_synthetic(usd: Usd) -> TokenAmount:
    """USD → синтетический stable (1 единица = 1 USD)."""
    if usd.value < 0:
        raise ValueError(f"usd_to_synthetic: negative usd {usd.value}")
    return TokenAmount(usd.value * 10**SYNTHETIC_DECIMALS // PRICE_PRECISION, SYNTHETIC_DECIMALS)


def synthetic_to_usd(amount: TokenAmount) -> Usd:
    """Синтетический stable → USD."""
    if amount.decimals != SYNTHETIC_DECIMALS:
        raise UnitMismatchError(
            f"synthetic supply uses {SYNTHETIC_DECIMALS} decimals, got {amount.decimals}"
        )
    return Usd(amount.amount * PRICE_PRECISION // 10**SYNTHETIC_DECIMALS)
