"""PositionLedger — атомарные переходы позиций.

Состояния ключа: Absent → Open → Absent. Других состояний нет.

Операции:
- increase: открытие/увеличение позиции, депозит коллатерала
- decrease: уменьшение/закрытие, вывод коллатерала → нативная выплата
- liquidate: soft (обычное полное закрытие) или hard (коллатерал в пул)
- add_liquidity / remove_liquidity: ликвидность пула против synthetic supply
- *_from_payload: те же операции из сырого dict после JSON Schema валидации

Каждая операция:
1. Захватывает OperationGuard (повторный вход → ReentrancyError)
2. Открывает транзакцию LedgerStore (любое исключение → полный откат)
3. Продвигает AccrualIndex до любого расчёта комиссий
4. Перед commit проверяет pool_amount >= reserved_amount для всех
   затронутых агрегатов; события публикуются только после commit
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from src.core.contracts import (
    parse_decrease_request,
    parse_increase_request,
    parse_liquidate_request,
)
from src.core.domain.events import (
    ClosePosition,
    CollectMarginFees,
    DecreasePosition,
    IncreasePosition,
    LedgerEvent,
    LiquidatePosition,
    LiquidityChanged,
    SkewFeeApplied,
    UpdatePosition,
)
from src.core.domain.pool import PoolAggregate
from src.core.domain.position import Position, PositionKey
from src.core.domain.requests import (
    DecreasePositionRequest,
    IncreasePositionRequest,
    LiquidatePositionRequest,
)
from src.core.domain.units import Price, TokenAmount, Usd, token_to_usd, usd_to_token
from src.core.errors import (
    CollateralBelowMinimum,
    CollateralExceedsSize,
    EmptyPosition,
    InsufficientCollateralForFees,
    InsufficientFunds,
    InvalidPositionSize,
    InvalidTokenPair,
    LeverageExceeded,
    MarketClosed,
    NotLiquidatable,
    PositionLiquidatable,
    ValidationError,
)
from src.core.math.fixed_point import BASIS_POINTS_DIVISOR
from src.core.math.position_math import get_delta, next_average_price
from src.ledger.accrual import AccrualIndex
from src.ledger.capabilities import Capability, OperationContext
from src.ledger.collaborators import (
    NotificationSink,
    NullNotificationSink,
    PriceOracle,
    ReferralLookup,
    StaticReferralLookup,
    TradingGate,
)
from src.ledger.config import LedgerConfig, PoolTokenConfig
from src.ledger.fees import FeeEngine, MarginFee, SkewFee
from src.ledger.guard import OperationGuard
from src.ledger.liquidation import LiquidationEvaluator, LiquidationVerdict
from src.ledger.store import LedgerStore
from src.ledger.vault import VaultAccountant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidationOutcome:
    """Результат ликвидации.

    soft: amount_out выплачен владельцу позиции (receiver == account)
    hard: amount_out — liquidation fee для fee_receiver
    """

    verdict: LiquidationVerdict
    receiver: str
    amount_out: TokenAmount


@dataclass(frozen=True)
class _Prices:
    index_min: Price
    index_max: Price
    collateral_min: Price
    collateral_max: Price


class PositionLedger:
    def __init__(
        self,
        config: LedgerConfig,
        oracle: PriceOracle,
        gate: TradingGate,
        referrals: Optional[ReferralLookup] = None,
        sink: Optional[NotificationSink] = None,
        store: Optional[LedgerStore] = None,
    ) -> None:
        self.config = config
        self.store = store or LedgerStore()
        self.vault = VaultAccountant(self.store)
        self.accrual = AccrualIndex(self.store, self.vault, config)
        self.fees = FeeEngine(config, referrals or StaticReferralLookup())
        self.evaluator = LiquidationEvaluator(config, self.store, self.fees, oracle)

        self._oracle = oracle
        self._gate = gate
        self._sink = sink or NullNotificationSink()
        self._guard = OperationGuard()
        self._pending: List[LedgerEvent] = []

    # =========================================================================
    # Инфраструктура операции
    # =========================================================================

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        with self._guard.hold(name):
            self._pending = []
            try:
                with self.store.transaction():
                    yield
                    for pool in self.store.touched_pools():
                        self.vault.ensure_solvent(pool)
                events = self._pending
            finally:
                self._pending = []
        self._publish(events)

    def _publish(self, events: List[LedgerEvent]) -> None:
        for event in events:
            try:
                self._sink.emit(event)
            except Exception:
                logger.exception("Notification sink failed on %s", event.name)

    def configure_token(self, config: PoolTokenConfig) -> PoolAggregate:
        """Регистрация токена пула (создание PoolAggregate)."""
        with self._guard.hold("configure_token"):
            with self.store.transaction():
                return self.vault.configure_token(config)

    # =========================================================================
    # Чтение
    # =========================================================================

    def get_position(
        self,
        account: str,
        pool_id: str,
        collateral_asset: str,
        index_asset: str,
        is_long: bool,
    ) -> Position:
        """Позиция по ключу; нулевой sentinel если позиции нет."""
        key = PositionKey(
            account=account,
            pool_id=pool_id,
            collateral_asset=collateral_asset,
            index_asset=index_asset,
            is_long=is_long,
        )
        position = self.store.position(key.id)
        if position is not None:
            return position
        decimals = self.vault.token_config(pool_id, collateral_asset).decimals
        return Position.absent(key, decimals)

    def pool(self, pool_id: str, token: str) -> PoolAggregate:
        return self.store.pool(pool_id, token)

    def claimable(self, account: str, pool_id: str, token: str) -> TokenAmount:
        """Накопленные skew rebates аккаунта."""
        decimals = self.vault.token_config(pool_id, token).decimals
        return self.store.claimable.get((account, pool_id, token)) or TokenAmount.zero(decimals)

    def referral_rebate(self, referrer: str, pool_id: str, token: str) -> TokenAmount:
        decimals = self.vault.token_config(pool_id, token).decimals
        return self.store.referral_rebates.get((referrer, pool_id, token)) or TokenAmount.zero(
            decimals
        )

    # =========================================================================
    # Валидация
    # =========================================================================

    def _validate_pair(
        self, pool_id: str, collateral_asset: str, index_asset: str, is_long: bool
    ) -> PoolTokenConfig:
        """
        Проверка инструмента (collateral, index, side).

        Returns:
            Конфигурация токена-коллатерала

        Raises:
            UnknownToken: Токен не сконфигурирован в пуле
            InvalidTokenPair: Комбинация не разрешена
        """
        collateral = self.vault.token_config(pool_id, collateral_asset)
        index = self.vault.token_config(pool_id, index_asset)

        if index.is_stable:
            raise InvalidTokenPair(f"index asset {index_asset} is a stable token")

        if is_long:
            if collateral_asset != index_asset and not collateral.is_stable:
                raise InvalidTokenPair(
                    f"long collateral {collateral_asset} must be {index_asset} or a stable token"
                )
        else:
            if not collateral.is_stable:
                raise InvalidTokenPair(f"short collateral {collateral_asset} must be stable")
            if not index.is_shortable:
                raise InvalidTokenPair(f"index asset {index_asset} is not shortable")

        return collateral

    def _require_open_market(self, index_asset: str) -> None:
        if not self._gate.is_open(index_asset):
            raise MarketClosed(f"trading session for {index_asset} is closed")

    def _validate_position(self, position: Position) -> None:
        """
        Лимиты открытой позиции.

        Raises:
            CollateralExceedsSize: collateral > size (плечо < 1x)
            CollateralBelowMinimum: collateral < min_collateral_usd
            LeverageExceeded: size / collateral > max_leverage
        """
        if position.collateral > position.size:
            raise CollateralExceedsSize(
                f"collateral {position.collateral!r} exceeds size {position.size!r}"
            )
        if position.collateral < self.config.min_collateral_usd:
            raise CollateralBelowMinimum(
                f"collateral {position.collateral!r} below minimum "
                f"{self.config.min_collateral_usd!r}"
            )
        if (
            position.size.value * BASIS_POINTS_DIVISOR
            > position.collateral.value * self.config.max_leverage_bps
        ):
            raise LeverageExceeded(
                f"leverage {position.leverage_bps()} bps exceeds "
                f"{self.config.max_leverage_bps} bps"
            )

    def _validate_not_liquidatable(self, position: Position) -> None:
        assessment = self.evaluator.assess(position)
        if assessment.verdict != LiquidationVerdict.NOT_LIQUIDATABLE:
            raise PositionLiquidatable(
                f"position {position.key.id} would be {assessment.verdict.value}"
            )

    # =========================================================================
    # Общие шаги
    # =========================================================================

    def _prices(self, key: PositionKey) -> _Prices:
        return _Prices(
            index_min=self._oracle.min_price(key.index_asset),
            index_max=self._oracle.max_price(key.index_asset),
            collateral_min=self._oracle.min_price(key.collateral_asset),
            collateral_max=self._oracle.max_price(key.collateral_asset),
        )

    def _collect_fees(
        self,
        key: PositionKey,
        margin_fee: MarginFee,
        skew_fee: SkewFee,
        collateral_max: Price,
        decimals: int,
    ) -> TokenAmount:
        """
        Зачисление комиссий: fee reserves протокола + rebate реферера.

        Returns:
            Полная комиссия в нативных единицах коллатерала
        """
        fee_usd = margin_fee.total + skew_fee.charge
        fee_native = self.fees.fee_tokens(fee_usd, collateral_max, decimals)
        rebate_native = self.fees.fee_tokens(margin_fee.referral_rebate, collateral_max, decimals)
        protocol_native = fee_native - rebate_native

        self.vault.collect_fee_reserves(key.pool_id, key.collateral_asset, protocol_native)

        if margin_fee.referrer is not None and rebate_native:
            rebate_key = (margin_fee.referrer, key.pool_id, key.collateral_asset)
            current = self.store.referral_rebates.get(rebate_key) or TokenAmount.zero(decimals)
            self.store.referral_rebates.put(rebate_key, current + rebate_native)

        self._pending.append(
            CollectMarginFees(
                pool_id=key.pool_id,
                token=key.collateral_asset,
                fee_usd=fee_usd.value,
                fee_amount=fee_native.amount,
                referrer=margin_fee.referrer,
                referral_rebate_amount=rebate_native.amount,
            )
        )
        return fee_native

    def _credit_skew_rebate(self, key: PositionKey, skew_fee: SkewFee) -> None:
        """Skew rebate выплачивается пулом в claimable баланс аккаунта."""
        if not skew_fee.is_rebate or not skew_fee.amount_native:
            return
        self.vault.decrease_pool_amount(key.pool_id, key.collateral_asset, skew_fee.amount_native)
        claim_key = (key.account, key.pool_id, key.collateral_asset)
        current = self.store.claimable.get(claim_key) or TokenAmount.zero(
            skew_fee.amount_native.decimals
        )
        self.store.claimable.put(claim_key, current + skew_fee.amount_native)

    def _emit_skew(self, key: PositionKey, skew_fee: SkewFee) -> None:
        if skew_fee.amount_usd:
            self._pending.append(
                SkewFeeApplied(
                    key_id=key.id,
                    is_rebate=skew_fee.is_rebate,
                    amount_usd=skew_fee.amount_usd.value,
                    amount_native=skew_fee.amount_native.amount,
                )
            )

    @staticmethod
    def _position_fields(key: PositionKey) -> dict:
        return {
            "key_id": key.id,
            "account": key.account,
            "pool_id": key.pool_id,
            "collateral_asset": key.collateral_asset,
            "index_asset": key.index_asset,
            "is_long": key.is_long,
        }

    @staticmethod
    def _update_event(position: Position, mark_price: Price) -> UpdatePosition:
        return UpdatePosition(
            key_id=position.key.id,
            size=position.size.value,
            collateral=position.collateral.value,
            average_price=position.average_price.value,
            entry_funding_index=position.entry_funding_index,
            reserve_amount=position.reserve_amount.amount,
            realized_pnl=position.realized_pnl.value,
            mark_price=mark_price.value,
        )

    # =========================================================================
    # INCREASE
    # =========================================================================

    def increase(self, ctx: OperationContext, request: IncreasePositionRequest) -> Position:
        """
        Открытие или увеличение позиции.

        Returns:
            Зафиксированная позиция

        Raises:
            ValidationError: Плохой инструмент, закрытый рынок, пустой запрос
            InsufficientCollateralForFees: Коллатерал не покрывает комиссии
            PositionRejected: Нарушены лимиты итоговой позиции
            InsufficientFunds: Резерв превысил бы ликвидность пула
        """
        with self._operation("increase"):
            position = self._increase(ctx, request)
        return position

    def _increase(self, ctx: OperationContext, request: IncreasePositionRequest) -> Position:
        ctx.require_account(request.account, Capability.INCREASE_POSITION)
        key = request.key
        collateral_config = self._validate_pair(
            key.pool_id, key.collateral_asset, key.index_asset, key.is_long
        )
        self._require_open_market(key.index_asset)
        if request.size_delta == 0 and request.collateral_amount == 0:
            raise ValidationError("increase request has neither size_delta nor collateral")

        decimals = collateral_config.decimals
        size_delta = Usd(request.size_delta)
        deposit = TokenAmount(request.collateral_amount, decimals)

        self._pending.extend(
            self.accrual.advance(key.pool_id, key.collateral_asset, key.index_asset, ctx.now)
        )

        position = self.store.position(key.id) or Position.absent(key, decimals)
        prices = self._prices(key)

        # Худшая для тейкера цена
        fill_price = prices.index_max if key.is_long else prices.index_min

        if not position.is_open:
            average_price = fill_price
        elif size_delta.value > 0:
            average_price = Price(
                next_average_price(
                    position.size.value,
                    position.average_price.value,
                    fill_price.value,
                    size_delta.value,
                    key.is_long,
                )
            )
        else:
            average_price = position.average_price

        deposit_usd = token_to_usd(deposit, prices.collateral_min)

        collateral_pool = self.store.pool(key.pool_id, key.collateral_asset)
        index_pool = self.store.pool(key.pool_id, key.index_asset)

        margin_fee = self.fees.margin_fee(
            key.account,
            position.size,
            size_delta,
            position.entry_funding_index,
            collateral_pool.cumulative_funding_index,
        )
        skew_fee = self.fees.skew_fee(position, index_pool, prices.collateral_max)
        fee_usd = margin_fee.total + skew_fee.charge

        available = position.collateral + deposit_usd
        if available <= fee_usd:
            raise InsufficientCollateralForFees(
                f"collateral {available!r} does not cover fees {fee_usd!r}"
            )

        fee_native = self.fees.fee_tokens(fee_usd, prices.collateral_max, decimals)
        next_size = position.size + size_delta
        if next_size.value <= 0:
            raise InvalidPositionSize(f"position size must be positive, got {next_size!r}")

        reserve_delta = usd_to_token(size_delta, prices.collateral_min, decimals)
        updated = position.model_copy(
            update={
                "size": next_size,
                "collateral": available - fee_usd,
                "collateral_amount": position.collateral_amount + deposit - fee_native,
                "average_price": average_price,
                "entry_funding_index": collateral_pool.cumulative_funding_index,
                "entry_long_skew_index": index_pool.cumulative_long_skew_index,
                "entry_short_skew_index": index_pool.cumulative_short_skew_index,
                "reserve_amount": position.reserve_amount + reserve_delta,
                "last_increase_timestamp": ctx.now,
            }
        )

        self._validate_position(updated)
        self._validate_not_liquidatable(updated)

        # Агрегаты пула
        self._collect_fees(key, margin_fee, skew_fee, prices.collateral_max, decimals)
        self._credit_skew_rebate(key, skew_fee)

        if key.is_long:
            self.vault.increase_guaranteed_usd(
                key.pool_id, key.collateral_asset, size_delta + fee_usd
            )
            self.vault.decrease_guaranteed_usd(key.pool_id, key.collateral_asset, deposit_usd)
            self.vault.increase_pool_amount(key.pool_id, key.collateral_asset, deposit)
            self.vault.decrease_pool_amount(key.pool_id, key.collateral_asset, fee_native)
            self.vault.increase_global_long_size(key.pool_id, key.index_asset, size_delta)
        elif size_delta.value > 0:
            self.vault.update_global_short_average_price(
                key.pool_id, key.index_asset, fill_price, size_delta
            )
            self.vault.increase_global_short_size(key.pool_id, key.index_asset, size_delta)

        self.vault.increase_reserved_amount(key.pool_id, key.collateral_asset, reserve_delta)

        self.store.positions.put(key.id, updated)

        self._emit_skew(key, skew_fee)
        self._pending.append(
            IncreasePosition(
                **self._position_fields(key),
                collateral_delta_usd=deposit_usd.value,
                size_delta=size_delta.value,
                price=fill_price.value,
                fee_usd=fee_usd.value,
            )
        )
        self._pending.append(self._update_event(updated, fill_price))

        logger.info(
            "Position increased: %s size=%r collateral=%r",
            key.id,
            updated.size,
            updated.collateral,
        )
        return updated

    # =========================================================================
    # DECREASE
    # =========================================================================

    def decrease(self, ctx: OperationContext, request: DecreasePositionRequest) -> TokenAmount:
        """
        Уменьшение или закрытие позиции.

        Returns:
            Нативная сумма к выплате receiver (decimals коллатерала)

        Raises:
            ValidationError: Плохой инструмент, закрытый рынок, некорректные дельты
            EmptyPosition: Позиции нет
            InsufficientFunds: Убыток/комиссии превышают коллатерал
            PositionRejected: Остаток позиции нарушает лимиты
        """
        with self._operation("decrease"):
            ctx.require_account(request.account, Capability.DECREASE_POSITION)
            key = request.key
            self._validate_pair(key.pool_id, key.collateral_asset, key.index_asset, key.is_long)
            self._require_open_market(key.index_asset)
            if request.size_delta == 0 and request.collateral_delta == 0:
                raise ValidationError(
                    "decrease request has neither size_delta nor collateral_delta"
                )

            self._pending.extend(
                self.accrual.advance(key.pool_id, key.collateral_asset, key.index_asset, ctx.now)
            )
            amount_out = self._decrease(
                key,
                Usd(request.collateral_delta),
                Usd(request.size_delta),
                request.receiver,
            )
        return amount_out

    def _decrease(
        self,
        key: PositionKey,
        collateral_delta: Usd,
        size_delta: Usd,
        receiver: str,
    ) -> TokenAmount:
        position = self.store.position(key.id)
        if position is None or not position.is_open:
            raise EmptyPosition(f"position {key.id} is empty")
        if size_delta > position.size:
            raise ValidationError(
                f"size_delta {size_delta!r} exceeds position size {position.size!r}"
            )
        if collateral_delta > position.collateral:
            raise ValidationError(
                f"collateral_delta {collateral_delta!r} exceeds collateral {position.collateral!r}"
            )

        decimals = position.collateral_amount.decimals
        is_full_close = size_delta == position.size
        prices = self._prices(key)
        mark_price = prices.index_min if key.is_long else prices.index_max

        collateral_pool = self.store.pool(key.pool_id, key.collateral_asset)
        index_pool = self.store.pool(key.pool_id, key.index_asset)

        # Резерв уменьшается пропорционально size_delta
        reserve_delta = position.reserve_amount.mul_div(size_delta.value, position.size.value)
        self.vault.decrease_reserved_amount(key.pool_id, key.collateral_asset, reserve_delta)

        margin_fee = self.fees.margin_fee(
            key.account,
            position.size,
            size_delta,
            position.entry_funding_index,
            collateral_pool.cumulative_funding_index,
        )
        skew_fee = self.fees.skew_fee(position, index_pool, prices.collateral_max)
        fee_usd = margin_fee.total + skew_fee.charge

        collateral, realized_pnl, usd_out, usd_out_after_fee = self._reduce_collateral(
            position, collateral_delta, size_delta, mark_price, fee_usd, prices, is_full_close
        )

        fee_native = self._collect_fees(
            key, margin_fee, skew_fee, prices.collateral_max, decimals
        )
        self._credit_skew_rebate(key, skew_fee)
        if key.is_long and usd_out <= fee_usd:
            # Комиссия списана с коллатерала, который лежит в пуле
            self.vault.decrease_pool_amount(key.pool_id, key.collateral_asset, fee_native)

        collateral_before = position.collateral
        if not is_full_close:
            collateral_amount = (
                position.collateral_amount.mul_div(collateral.value, collateral_before.value)
                if collateral_before.value > 0
                else TokenAmount.zero(decimals)
            )
            updated = position.model_copy(
                update={
                    "size": position.size - size_delta,
                    "collateral": collateral,
                    "collateral_amount": collateral_amount,
                    "entry_funding_index": collateral_pool.cumulative_funding_index,
                    "entry_long_skew_index": index_pool.cumulative_long_skew_index,
                    "entry_short_skew_index": index_pool.cumulative_short_skew_index,
                    "reserve_amount": position.reserve_amount - reserve_delta,
                    "realized_pnl": realized_pnl,
                }
            )
            self._validate_position(updated)
            self._validate_not_liquidatable(updated)

            if key.is_long:
                self.vault.increase_guaranteed_usd(
                    key.pool_id, key.collateral_asset, collateral_before - collateral
                )
                self.vault.decrease_guaranteed_usd(key.pool_id, key.collateral_asset, size_delta)

            self.store.positions.put(key.id, updated)
            self._pending.append(self._update_event(updated, mark_price))
        else:
            if key.is_long:
                self.vault.increase_guaranteed_usd(
                    key.pool_id, key.collateral_asset, collateral_before
                )
                self.vault.decrease_guaranteed_usd(key.pool_id, key.collateral_asset, size_delta)

            self.store.positions.delete(key.id)
            self._pending.append(
                ClosePosition(
                    key_id=key.id,
                    size=position.size.value,
                    collateral=collateral_before.value,
                    average_price=position.average_price.value,
                    entry_funding_index=position.entry_funding_index,
                    reserve_amount=position.reserve_amount.amount,
                    realized_pnl=realized_pnl.value,
                )
            )

        if key.is_long:
            self.vault.decrease_global_long_size(key.pool_id, key.index_asset, size_delta)
        else:
            self.vault.decrease_global_short_size(key.pool_id, key.index_asset, size_delta)

        amount_out = TokenAmount.zero(decimals)
        if usd_out.value > 0:
            if key.is_long:
                self.vault.withdraw(
                    key.pool_id,
                    key.collateral_asset,
                    usd_to_token(usd_out, prices.collateral_max, decimals),
                )
            amount_out = usd_to_token(usd_out_after_fee, prices.collateral_max, decimals)

        self._emit_skew(key, skew_fee)
        self._pending.append(
            DecreasePosition(
                **self._position_fields(key),
                collateral_delta_usd=collateral_delta.value,
                size_delta=size_delta.value,
                price=mark_price.value,
                fee_usd=fee_usd.value,
                amount_out=amount_out.amount,
                receiver=receiver,
            )
        )

        logger.info(
            "Position decreased: %s size_delta=%r amount_out=%r full_close=%s",
            key.id,
            size_delta,
            amount_out,
            is_full_close,
        )
        return amount_out

    def _reduce_collateral(
        self,
        position: Position,
        collateral_delta: Usd,
        size_delta: Usd,
        mark_price: Price,
        fee_usd: Usd,
        prices: _Prices,
        is_full_close: bool,
    ) -> Tuple[Usd, Usd, Usd, Usd]:
        """
        Реализация PnL пропорционально size_delta и расчёт выплаты.

        Выплата = collateral_delta - комиссии - убыток (или + прибыль).
        Убыток сначала уменьшает выплату; остаток убытка, не покрытый
        выплатой, списывается с коллатерала позиции. Комиссия берётся из
        выплаты, если выплата её покрывает, иначе из коллатерала.

        Returns:
            (collateral, realized_pnl, usd_out, usd_out_after_fee)

        Raises:
            InsufficientFunds: Убыток превышает выплату и коллатерал
        """
        key = position.key
        decimals = position.collateral_amount.decimals
        collateral = position.collateral
        realized_pnl = position.realized_pnl
        usd_out = Usd.zero()

        if collateral_delta.value > 0:
            usd_out = usd_out + collateral_delta
            collateral = collateral - collateral_delta

        has_profit, delta = get_delta(
            position.size.value, position.average_price.value, mark_price.value, key.is_long
        )
        adjusted_delta = Usd(delta * size_delta.value // position.size.value)

        if adjusted_delta.value > 0:
            if has_profit:
                usd_out = usd_out + adjusted_delta
                realized_pnl = realized_pnl + adjusted_delta
                if not key.is_long:
                    # Прибыль шорта платит пул
                    self.vault.decrease_pool_amount(
                        key.pool_id,
                        key.collateral_asset,
                        usd_to_token(adjusted_delta, prices.collateral_max, decimals),
                    )
            else:
                from_payout = min(adjusted_delta, usd_out)
                from_collateral = adjusted_delta - from_payout
                if from_collateral > collateral:
                    raise InsufficientFunds(
                        f"realized loss {adjusted_delta!r} exceeds payout {usd_out!r} and "
                        f"collateral {collateral!r}; position must be liquidated"
                    )
                usd_out = usd_out - from_payout
                collateral = collateral - from_collateral
                realized_pnl = realized_pnl - adjusted_delta
                if not key.is_long:
                    # Убыток шорта уходит в пул
                    self.vault.increase_pool_amount(
                        key.pool_id,
                        key.collateral_asset,
                        usd_to_token(adjusted_delta, prices.collateral_max, decimals),
                    )

        if is_full_close:
            usd_out = usd_out + collateral
            collateral = Usd.zero()

        if usd_out > fee_usd:
            usd_out_after_fee = usd_out - fee_usd
        else:
            if fee_usd > collateral:
                raise InsufficientCollateralForFees(
                    f"collateral {collateral!r} does not cover fees {fee_usd!r}"
                )
            collateral = collateral - fee_usd
            usd_out_after_fee = usd_out

        return collateral, realized_pnl, usd_out, usd_out_after_fee

    # =========================================================================
    # LIQUIDATE
    # =========================================================================

    def liquidate(
        self, ctx: OperationContext, request: LiquidatePositionRequest
    ) -> LiquidationOutcome:
        """
        Ликвидация позиции.

        soft: деградирует до полного decrease с выплатой остатка владельцу.
        hard: комиссии собираются, агрегаты освобождаются на весь размер,
        liquidation fee выплачивается fee_receiver, остаток коллатерала
        остаётся пулу, позиция удаляется.

        Raises:
            EmptyPosition: Позиции нет
            NotLiquidatable: Evaluator не подтверждает ликвидацию
        """
        with self._operation("liquidate"):
            ctx.require(Capability.LIQUIDATE_POSITION)
            key = request.key
            self._validate_pair(key.pool_id, key.collateral_asset, key.index_asset, key.is_long)

            position = self.store.position(key.id)
            if position is None or not position.is_open:
                raise EmptyPosition(f"position {key.id} is empty")

            self._pending.extend(
                self.accrual.advance(key.pool_id, key.collateral_asset, key.index_asset, ctx.now)
            )

            assessment = self.evaluator.assess(position)
            if assessment.verdict == LiquidationVerdict.NOT_LIQUIDATABLE:
                raise NotLiquidatable(f"position {key.id} is not liquidatable")

            if assessment.verdict == LiquidationVerdict.LIQUIDATABLE_SOFT:
                amount_out = self._decrease(key, Usd.zero(), position.size, key.account)
                outcome = LiquidationOutcome(assessment.verdict, key.account, amount_out)
                logger.warning(
                    "Position %s soft-liquidated: closed with %r to owner", key.id, amount_out
                )
            else:
                outcome = self._hard_liquidate(
                    position, assessment.margin_fee, request.fee_receiver
                )
                logger.warning(
                    "Position %s liquidated: size=%r collateral=%r remaining=%r",
                    key.id,
                    position.size,
                    position.collateral,
                    assessment.remaining_collateral,
                )
        return outcome

    def _hard_liquidate(
        self, position: Position, margin_fee: MarginFee, fee_receiver: str
    ) -> LiquidationOutcome:
        key = position.key
        decimals = position.collateral_amount.decimals
        prices = self._prices(key)
        mark_price = prices.index_min if key.is_long else prices.index_max

        # Skew rebate ликвидируемой позиции не начисляется
        index_pool = self.store.pool(key.pool_id, key.index_asset)
        skew_fee = self.fees.skew_fee(position, index_pool, prices.collateral_max)
        if skew_fee.is_rebate:
            skew_fee = SkewFee(False, Usd.zero(), TokenAmount.zero(decimals))
        fee_usd = margin_fee.total + skew_fee.charge

        fee_native = self._collect_fees(key, margin_fee, skew_fee, prices.collateral_max, decimals)
        self.vault.decrease_reserved_amount(
            key.pool_id, key.collateral_asset, position.reserve_amount
        )

        if key.is_long:
            self.vault.decrease_guaranteed_usd(
                key.pool_id, key.collateral_asset, position.size - position.collateral
            )
            self.vault.decrease_pool_amount(key.pool_id, key.collateral_asset, fee_native)
            self.vault.decrease_global_long_size(key.pool_id, key.index_asset, position.size)
        else:
            if fee_usd < position.collateral:
                remaining = position.collateral - fee_usd
                self.vault.increase_pool_amount(
                    key.pool_id,
                    key.collateral_asset,
                    usd_to_token(remaining, prices.collateral_max, decimals),
                )
            elif fee_usd > position.collateral:
                shortfall = fee_usd - position.collateral
                self.vault.decrease_pool_amount(
                    key.pool_id,
                    key.collateral_asset,
                    usd_to_token(shortfall, prices.collateral_max, decimals),
                )
            self.vault.decrease_global_short_size(key.pool_id, key.index_asset, position.size)

        self.store.positions.delete(key.id)

        liquidation_fee = usd_to_token(
            self.config.liquidation_fee_usd, prices.collateral_max, decimals
        )
        self.vault.withdraw(key.pool_id, key.collateral_asset, liquidation_fee)

        self._pending.append(
            LiquidatePosition(
                **self._position_fields(key),
                verdict=LiquidationVerdict.LIQUIDATABLE.value,
                size=position.size.value,
                collateral=position.collateral.value,
                reserve_amount=position.reserve_amount.amount,
                realized_pnl=position.realized_pnl.value,
                mark_price=mark_price.value,
                fee_receiver=fee_receiver,
                liquidation_fee_amount=liquidation_fee.amount,
            )
        )
        return LiquidationOutcome(LiquidationVerdict.LIQUIDATABLE, fee_receiver, liquidation_fee)

    # =========================================================================
    # СЫРЫЕ PAYLOAD
    # =========================================================================
    #
    # Точка входа для роутера: dict проверяется JSON Schema контрактом до
    # захвата guard и открытия транзакции, поэтому отклонённый payload
    # не меняет состояние и не публикует события.

    def increase_from_payload(self, ctx: OperationContext, payload: Dict[str, Any]) -> Position:
        """
        Raises:
            ValidationError: payload не соответствует increase_request контракту
        """
        return self.increase(ctx, parse_increase_request(payload))

    def decrease_from_payload(
        self, ctx: OperationContext, payload: Dict[str, Any]
    ) -> TokenAmount:
        """
        Raises:
            ValidationError: payload не соответствует decrease_request контракту
        """
        return self.decrease(ctx, parse_decrease_request(payload))

    def liquidate_from_payload(
        self, ctx: OperationContext, payload: Dict[str, Any]
    ) -> LiquidationOutcome:
        """
        Raises:
            ValidationError: payload не соответствует liquidate_request контракту
        """
        return self.liquidate(ctx, parse_liquidate_request(payload))

    # =========================================================================
    # ЛИКВИДНОСТЬ ПУЛА
    # =========================================================================

    def add_liquidity(
        self, ctx: OperationContext, pool_id: str, token: str, amount: int
    ) -> TokenAmount:
        """
        Депозит ликвидности в пул.

        Returns:
            Выпущенный synthetic (18 decimals)
        """
        with self._operation("add_liquidity"):
            ctx.require(Capability.MANAGE_LIQUIDITY)
            config = self.vault.token_config(pool_id, token)
            if amount <= 0:
                raise ValidationError(f"liquidity amount must be positive, got {amount}")
            self._pending.extend(self.accrual.advance(pool_id, token, token, ctx.now))

            deposit = TokenAmount(amount, config.decimals)
            synthetic = self.vault.add_liquidity(
                pool_id, token, deposit, self._oracle.min_price(token)
            )
            self._pending.append(
                LiquidityChanged(
                    pool_id=pool_id,
                    token=token,
                    account=ctx.caller,
                    token_amount=deposit.amount,
                    synthetic_amount=synthetic.amount,
                    is_deposit=True,
                )
            )
        return synthetic

    def remove_liquidity(
        self, ctx: OperationContext, pool_id: str, token: str, synthetic_amount: int
    ) -> TokenAmount:
        """
        Вывод ликвидности из пула.

        Returns:
            Нативная сумма к выплате

        Raises:
            InsufficientFunds: Вывод затронул бы зарезервированную ликвидность
        """
        with self._operation("remove_liquidity"):
            ctx.require(Capability.MANAGE_LIQUIDITY)
            self.vault.token_config(pool_id, token)
            if synthetic_amount <= 0:
                raise ValidationError(f"synthetic amount must be positive, got {synthetic_amount}")
            self._pending.extend(self.accrual.advance(pool_id, token, token, ctx.now))

            decimals = self.pool(pool_id, token).synthetic_supply.decimals
            synthetic = TokenAmount(synthetic_amount, decimals)
            amount_out = self.vault.remove_liquidity(
                pool_id, token, synthetic, self._oracle.max_price(token)
            )
            self._pending.append(
                LiquidityChanged(
                    pool_id=pool_id,
                    token=token,
                    account=ctx.caller,
                    token_amount=amount_out.amount,
                    synthetic_amount=synthetic.amount,
                    is_deposit=False,
                )
            )
        return amount_out

    def claim_skew_rebates(
        self, ctx: OperationContext, account: str, pool_id: str, token: str
    ) -> TokenAmount:
        """Списывает накопленные skew rebates аккаунта и возвращает сумму к выплате."""
        with self._operation("claim_skew_rebates"):
            ctx.require_account(account, Capability.DECREASE_POSITION)
            amount = self.claimable(account, pool_id, token)
            if amount:
                self.store.claimable.delete((account, pool_id, token))
        return amount
