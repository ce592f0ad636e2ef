"""Внешние коллабораторы ledger.

Интерфейсы (typing.Protocol):
- PriceOracle: лучшая/худшая цена актива
- TradingGate: открыта ли торговая сессия
- ReferralLookup: скидка/ребейт реферала
- NotificationSink: приём событий (best-effort)

In-memory реализации используются в тестах и при встраивании ядра.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

from src.core.domain.events import LedgerEvent
from src.core.domain.units import Price
from src.core.errors import ValidationError
from src.core.math.fixed_point import BASIS_POINTS_DIVISOR


# =============================================================================
# INTERFACES
# =============================================================================


class PriceOracle(Protocol):
    def max_price(self, asset: str) -> Price: ...

    def min_price(self, asset: str) -> Price: ...


class TradingGate(Protocol):
    def is_open(self, asset: str) -> bool: ...


@dataclass(frozen=True)
class ReferralTerms:
    """Условия реферала для аккаунта."""

    discount_bps: int = 0
    rebate_bps: int = 0
    referrer: Optional[str] = None

    def __post_init__(self) -> None:
        if self.discount_bps < 0 or self.rebate_bps < 0:
            raise ValueError("referral basis points cannot be negative")
        if self.discount_bps + self.rebate_bps > BASIS_POINTS_DIVISOR:
            raise ValueError(
                f"discount_bps + rebate_bps exceeds {BASIS_POINTS_DIVISOR}: "
                f"{self.discount_bps} + {self.rebate_bps}"
            )
        if self.rebate_bps > 0 and not self.referrer:
            raise ValueError("rebate_bps requires a referrer")


NO_REFERRAL = ReferralTerms()


class ReferralLookup(Protocol):
    def discount(self, account: str) -> ReferralTerms: ...


class NotificationSink(Protocol):
    def emit(self, event: LedgerEvent) -> None: ...


# =============================================================================
# IN-MEMORY IMPLEMENTATIONS
# =============================================================================


class FixedPriceOracle:
    """Оракул с ценами, выставленными вручную (min/max на актив)."""

    def __init__(self) -> None:
        self._prices: Dict[str, Tuple[Price, Price]] = {}

    def set_price(self, asset: str, price: Price, max_price: Optional[Price] = None) -> None:
        """Выставить цену; при max_price задаётся спред min/max."""
        upper = max_price if max_price is not None else price
        if upper < price:
            raise ValueError(f"max price below min price for {asset}")
        self._prices[asset] = (price, upper)

    def _lookup(self, asset: str) -> Tuple[Price, Price]:
        try:
            return self._prices[asset]
        except KeyError:
            raise ValidationError(f"no price for asset {asset}") from None

    def max_price(self, asset: str) -> Price:
        return self._lookup(asset)[1]

    def min_price(self, asset: str) -> Price:
        return self._lookup(asset)[0]


class StaticTradingGate:
    """Все рынки открыты, кроме явно закрытых."""

    def __init__(self, closed: Optional[set] = None) -> None:
        self._closed = set(closed or ())

    def close(self, asset: str) -> None:
        self._closed.add(asset)

    def open(self, asset: str) -> None:
        self._closed.discard(asset)

    def is_open(self, asset: str) -> bool:
        return asset not in self._closed


class StaticReferralLookup:
    def __init__(self, terms: Optional[Dict[str, ReferralTerms]] = None) -> None:
        self._terms = dict(terms or {})

    def set_terms(self, account: str, terms: ReferralTerms) -> None:
        self._terms[account] = terms

    def discount(self, account: str) -> ReferralTerms:
        return self._terms.get(account, NO_REFERRAL)


class NullNotificationSink:
    def emit(self, event: LedgerEvent) -> None:
        pass


class MemoryNotificationSink:
    """Копит события в списке (для тестов и отладки)."""

    def __init__(self) -> None:
        self.events: List[LedgerEvent] = []

    def emit(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> List[LedgerEvent]:
        return [e for e in self.events if isinstance(e, event_type)]
