"""LiquidationEvaluator — вердикт ликвидации позиции.

Чистая функция (position, mark_price, accrued_fee) → LiquidationVerdict:
1. unrealized_pnl = (mark - avg) * size / avg (знак инвертирован для SHORT)
2. remaining = collateral + unrealized_pnl - accrued_fee
3. remaining <= 0                          → LIQUIDATABLE (hard)
4. size / remaining > max_leverage         → LIQUIDATABLE_SOFT
5. иначе                                   → NOT_LIQUIDATABLE

mark_price пессимистична для трейдера: min цена для LONG, max для SHORT.
Монотонность: при фиксированных комиссиях движение цены против позиции
никогда не возвращает вердикт в NOT_LIQUIDATABLE.
"""

from dataclasses import dataclass
from enum import Enum

from src.core.domain.position import Position
from src.core.domain.units import Price, Usd
from src.core.math.fixed_point import BASIS_POINTS_DIVISOR
from src.ledger.collaborators import PriceOracle
from src.ledger.config import LedgerConfig
from src.ledger.fees import FeeEngine, MarginFee, SkewFee
from src.ledger.store import LedgerStore


class LiquidationVerdict(str, Enum):
    NOT_LIQUIDATABLE = "not_liquidatable"
    LIQUIDATABLE = "liquidatable"
    LIQUIDATABLE_SOFT = "liquidatable_soft"


def remaining_collateral(position: Position, mark_price: Price, accrued_fee: Usd) -> Usd:
    """collateral + unrealized_pnl - accrued_fee (может быть отрицательным)."""
    return position.collateral + position.unrealized_pnl(mark_price) - accrued_fee


def evaluate_liquidation(
    position: Position,
    mark_price: Price,
    accrued_fee: Usd,
    max_leverage_bps: int,
) -> LiquidationVerdict:
    """
    Вердикт ликвидации.

    Args:
        position: Позиция (size > 0)
        mark_price: Пессимистичная для трейдера цена индексного актива
        accrued_fee: Комиссии, причитающиеся при закрытии (USD)
        max_leverage_bps: Максимальное плечо в basis points

    Returns:
        LiquidationVerdict
    """
    if not position.is_open:
        return LiquidationVerdict.NOT_LIQUIDATABLE

    remaining = remaining_collateral(position, mark_price, accrued_fee)
    if remaining.value <= 0:
        return LiquidationVerdict.LIQUIDATABLE

    if remaining.value * max_leverage_bps < position.size.value * BASIS_POINTS_DIVISOR:
        return LiquidationVerdict.LIQUIDATABLE_SOFT

    return LiquidationVerdict.NOT_LIQUIDATABLE


@dataclass(frozen=True)
class LiquidationAssessment:
    verdict: LiquidationVerdict
    mark_price: Price
    margin_fee: MarginFee
    skew_fee: SkewFee
    remaining_collateral: Usd

    @property
    def accrued_fee(self) -> Usd:
        return self.margin_fee.total + self.skew_fee.charge


class LiquidationEvaluator:
    """Собирает входы вердикта из текущих индексов пула и оракула."""

    def __init__(
        self,
        config: LedgerConfig,
        store: LedgerStore,
        fees: FeeEngine,
        oracle: PriceOracle,
    ) -> None:
        self._config = config
        self._store = store
        self._fees = fees
        self._oracle = oracle

    def mark_price(self, position: Position) -> Price:
        """Min цена для LONG, max цена для SHORT."""
        asset = position.key.index_asset
        if position.is_long:
            return self._oracle.min_price(asset)
        return self._oracle.max_price(asset)

    def assess(self, position: Position) -> LiquidationAssessment:
        """
        Оценка позиции по текущим индексам.

        Комиссии: funding + закрывающая taker комиссия на весь размер
        + skew charge (rebate не уменьшает требование к коллатералу).
        """
        key = position.key
        collateral_pool = self._store.pool(key.pool_id, key.collateral_asset)
        index_pool = self._store.pool(key.pool_id, key.index_asset)

        margin_fee = self._fees.margin_fee(
            key.account,
            position.size,
            position.size,
            position.entry_funding_index,
            collateral_pool.cumulative_funding_index,
        )
        skew_fee = self._fees.skew_fee(
            position, index_pool, self._oracle.max_price(key.collateral_asset)
        )

        mark = self.mark_price(position)
        accrued = margin_fee.total + skew_fee.charge
        return LiquidationAssessment(
            verdict=evaluate_liquidation(position, mark, accrued, self._config.max_leverage_bps),
            mark_price=mark,
            margin_fee=margin_fee,
            skew_fee=skew_fee,
            remaining_collateral=remaining_collateral(position, mark, accrued),
        )
