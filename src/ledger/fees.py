"""FeeEngine — margin fee, skew fee, реферальные скидки.

Margin fee:
    position_fee = size_delta * margin_fee_bps / 10_000
    funding_fee  = size * (current_funding_index - entry_funding_index) / FUNDING_RATE_PRECISION

Реферал (discount_bps, rebate_bps, referrer):
    discount уменьшает position_fee для трейдера;
    rebate = position_fee * rebate_bps / 10_000 вырезается из уплаченной
    комиссии и записывается рефереру вместо fee reserves протокола.

Skew fee:
    позиция стороны большинства (или при балансе) платит прирост индекса
    своей стороны с момента входа; позиция стороны меньшинства получает
    rebate в размере прироста индекса противоположной стороны.
    Rebate зачисляется в claimable и никогда не вычитается из коллатерала.
"""

from dataclasses import dataclass
from typing import Optional

from src.core.domain.pool import PoolAggregate
from src.core.domain.position import Position
from src.core.domain.units import Price, TokenAmount, Usd, usd_to_token
from src.core.math.fixed_point import FUNDING_RATE_PRECISION
from src.ledger.collaborators import ReferralLookup
from src.ledger.config import LedgerConfig


@dataclass(frozen=True)
class MarginFee:
    """Разбивка margin fee (все суммы в USD)."""

    position_fee: Usd  # после скидки
    funding_fee: Usd
    discount: Usd
    referral_rebate: Usd
    referrer: Optional[str] = None

    @property
    def total(self) -> Usd:
        """Сумма, списываемая с позиции."""
        return self.position_fee + self.funding_fee

    @property
    def protocol_fee(self) -> Usd:
        """Часть комиссии, поступающая в fee reserves пула."""
        return self.total - self.referral_rebate


@dataclass(frozen=True)
class SkewFee:
    is_rebate: bool
    amount_usd: Usd
    amount_native: TokenAmount

    @property
    def charge(self) -> Usd:
        """Сумма к списанию с позиции (0 для rebate)."""
        return Usd.zero() if self.is_rebate else self.amount_usd


class FeeEngine:
    def __init__(self, config: LedgerConfig, referrals: ReferralLookup) -> None:
        self._config = config
        self._referrals = referrals

    def position_fee(self, size_delta: Usd) -> Usd:
        """Taker комиссия на size_delta до реферальной скидки."""
        return size_delta.bps(self._config.margin_fee_bps)

    def funding_fee(self, size: Usd, entry_funding_index: int, current_funding_index: int) -> Usd:
        """
        Funding, накопленный позицией с момента входа.

        Raises:
            ValueError: Если entry индекс больше текущего (индексы монотонны)
        """
        if current_funding_index < entry_funding_index:
            raise ValueError(
                f"funding index went backwards: entry={entry_funding_index}, "
                f"current={current_funding_index}"
            )
        if size.value == 0:
            return Usd.zero()
        return size.mul_div(current_funding_index - entry_funding_index, FUNDING_RATE_PRECISION)

    def margin_fee(
        self,
        account: str,
        size: Usd,
        size_delta: Usd,
        entry_funding_index: int,
        current_funding_index: int,
    ) -> MarginFee:
        """
        Margin fee позиции с учётом реферальной скидки.

        Args:
            account: Владелец позиции (для реферального lookup)
            size: Размер позиции до изменения (база для funding)
            size_delta: Изменение размера (база для taker комиссии)
            entry_funding_index: Снимок funding индекса позиции
            current_funding_index: Текущий funding индекс пула
        """
        raw_fee = self.position_fee(size_delta)
        terms = self._referrals.discount(account)

        discount = raw_fee.bps(terms.discount_bps)
        rebate = raw_fee.bps(terms.rebate_bps) if terms.referrer else Usd.zero()

        return MarginFee(
            position_fee=raw_fee - discount,
            funding_fee=self.funding_fee(size, entry_funding_index, current_funding_index),
            discount=discount,
            referral_rebate=rebate,
            referrer=terms.referrer if rebate.value > 0 else None,
        )

    def skew_fee(
        self,
        position: Position,
        index_pool: PoolAggregate,
        collateral_max_price: Price,
    ) -> SkewFee:
        """
        Skew fee/rebate позиции по индексам агрегата индексного токена.

        Сторона определяется текущим global_long_size / global_short_size.
        Нативная сумма считается по max цене коллатерала (меньше токенов).
        """
        decimals = position.collateral_amount.decimals
        if not position.is_open:
            return SkewFee(False, Usd.zero(), TokenAmount.zero(decimals))

        long_delta = index_pool.cumulative_long_skew_index - position.entry_long_skew_index
        short_delta = index_pool.cumulative_short_skew_index - position.entry_short_skew_index
        if long_delta < 0 or short_delta < 0:
            raise ValueError("skew index went backwards")

        longs = index_pool.global_long_size
        shorts = index_pool.global_short_size
        if position.is_long:
            on_minority = longs < shorts
            own_delta, opposite_delta = long_delta, short_delta
        else:
            on_minority = shorts < longs
            own_delta, opposite_delta = short_delta, long_delta

        accrued = opposite_delta if on_minority else own_delta
        amount_usd = position.size.mul_div(accrued, FUNDING_RATE_PRECISION)
        return SkewFee(
            is_rebate=on_minority,
            amount_usd=amount_usd,
            amount_native=usd_to_token(amount_usd, collateral_max_price, decimals),
        )

    @staticmethod
    def fee_tokens(fee: Usd, collateral_max_price: Price, decimals: int) -> TokenAmount:
        """USD комиссии → нативные единицы по max цене коллатерала."""
        return usd_to_token(fee, collateral_max_price, decimals)
