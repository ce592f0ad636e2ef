"""
Тесты для LiquidationEvaluator

Проверяет:
1. Hard вердикт: collateral 100, убыток 96, комиссия 5 → remaining -1
2. Soft вердикт: убыток 50, комиссия 5 → remaining 45, плечо > max
3. Монотонность по mark price
4. Пессимистичную mark price (min для LONG, max для SHORT)
"""

from decimal import Decimal

import pytest

from src.core.domain.position import Position, PositionKey
from src.core.domain.units import Price, TokenAmount, Usd
from src.core.math.fixed_point import BASIS_POINTS_DIVISOR
from src.ledger.collaborators import FixedPriceOracle, StaticReferralLookup
from src.ledger.config import LedgerConfig
from src.ledger.fees import FeeEngine
from src.ledger.liquidation import (
    LiquidationEvaluator,
    LiquidationVerdict,
    evaluate_liquidation,
    remaining_collateral,
)
from src.ledger.store import LedgerStore

MAX_LEVERAGE_20X = 20 * BASIS_POINTS_DIVISOR
MAX_LEVERAGE_50X = 50 * BASIS_POINTS_DIVISOR


def _position(is_long: bool = True) -> Position:
    """size=1000, collateral=100, average_price=100"""
    return Position(
        key=PositionKey(
            account="alice",
            pool_id="main",
            collateral_asset="USDC",
            index_asset="ETH",
            is_long=is_long,
        ),
        size=Usd.of(1000),
        collateral=Usd.of(100),
        collateral_amount=TokenAmount.of(100, 18),
        average_price=Price.of(100),
        reserve_amount=TokenAmount.of(1000, 18),
    )


class TestVerdict:
    def test_hard_liquidation(self) -> None:
        """100 - 96 - 5 = -1 → LIQUIDATABLE"""
        position = _position()
        mark = Price.of("90.4")

        assert remaining_collateral(position, mark, Usd.of(5)) == Usd.of(-1)
        assert (
            evaluate_liquidation(position, mark, Usd.of(5), MAX_LEVERAGE_50X)
            == LiquidationVerdict.LIQUIDATABLE
        )

    def test_exactly_zero_is_hard(self) -> None:
        """100 - 95 - 5 = 0 → LIQUIDATABLE"""
        assert (
            evaluate_liquidation(_position(), Price.of(95), Usd.of(5), MAX_LEVERAGE_50X)
            == LiquidationVerdict.LIQUIDATABLE
        )

    def test_soft_liquidation(self) -> None:
        """100 - 50 - 5 = 45, 1000 / 45 ≈ 22x > 20x → LIQUIDATABLE_SOFT"""
        position = _position()
        mark = Price.of(95)

        assert remaining_collateral(position, mark, Usd.of(5)) == Usd.of(45)
        assert (
            evaluate_liquidation(position, mark, Usd.of(5), MAX_LEVERAGE_20X)
            == LiquidationVerdict.LIQUIDATABLE_SOFT
        )

    def test_same_position_healthy_under_higher_max_leverage(self) -> None:
        """1000 / 45 ≈ 22x < 50x → NOT_LIQUIDATABLE"""
        assert (
            evaluate_liquidation(_position(), Price.of(95), Usd.of(5), MAX_LEVERAGE_50X)
            == LiquidationVerdict.NOT_LIQUIDATABLE
        )

    def test_gains_increase_remaining(self) -> None:
        position = _position()
        assert remaining_collateral(position, Price.of(110), Usd.of(5)) == Usd.of(195)

    def test_short_loss_on_price_rise(self) -> None:
        """SHORT: рост цены до 109.6 → убыток 96"""
        assert (
            evaluate_liquidation(
                _position(is_long=False), Price.of("109.6"), Usd.of(5), MAX_LEVERAGE_50X
            )
            == LiquidationVerdict.LIQUIDATABLE
        )

    def test_absent_position_not_liquidatable(self) -> None:
        absent = Position.absent(_position().key, 18)
        assert (
            evaluate_liquidation(absent, Price.of(1), Usd.of(5), MAX_LEVERAGE_20X)
            == LiquidationVerdict.NOT_LIQUIDATABLE
        )


class TestMonotonicity:
    """Движение цены против позиции не возвращает вердикт в NOT_LIQUIDATABLE"""

    @pytest.mark.parametrize("is_long", [True, False])
    def test_verdict_never_recovers(self, is_long: bool) -> None:
        position = _position(is_long)
        fee = Usd.of(5)
        severity = {
            LiquidationVerdict.NOT_LIQUIDATABLE: 0,
            LiquidationVerdict.LIQUIDATABLE_SOFT: 1,
            LiquidationVerdict.LIQUIDATABLE: 2,
        }

        previous = 0
        for step in range(0, 200):
            # LONG: цена падает от 100, SHORT: растёт от 100
            offset = Decimal(step) / 10
            price = Decimal(100) - offset if is_long else Decimal(100) + offset
            verdict = evaluate_liquidation(position, Price.of(price), fee, MAX_LEVERAGE_20X)
            assert severity[verdict] >= previous
            previous = severity[verdict]

        assert previous == 2


class TestMarkPrice:
    def test_pessimistic_price(self) -> None:
        oracle = FixedPriceOracle()
        oracle.set_price("ETH", Price.of(99), max_price=Price.of(101))
        config = LedgerConfig()
        evaluator = LiquidationEvaluator(
            config, LedgerStore(), FeeEngine(config, StaticReferralLookup()), oracle
        )

        assert evaluator.mark_price(_position(is_long=True)) == Price.of(99)
        assert evaluator.mark_price(_position(is_long=False)) == Price.of(101)
