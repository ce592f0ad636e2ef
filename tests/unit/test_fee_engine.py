"""
Тесты для FeeEngine

Проверяет:
1. Taker комиссию на size_delta
2. Funding fee по приросту индекса
3. Реферальную скидку и rebate рефереру
4. Skew fee для стороны большинства и rebate для стороны меньшинства
"""

import pytest

from src.core.domain.pool import PoolAggregate
from src.core.domain.position import Position, PositionKey
from src.core.domain.units import Price, TokenAmount, Usd
from src.ledger.collaborators import ReferralTerms, StaticReferralLookup
from src.ledger.config import LedgerConfig
from src.ledger.fees import FeeEngine


@pytest.fixture
def referrals() -> StaticReferralLookup:
    return StaticReferralLookup()


@pytest.fixture
def engine(referrals: StaticReferralLookup) -> FeeEngine:
    return FeeEngine(LedgerConfig(margin_fee_bps=10), referrals)


def _position(is_long: bool, entry_long: int = 0, entry_short: int = 0) -> Position:
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
        entry_long_skew_index=entry_long,
        entry_short_skew_index=entry_short,
        reserve_amount=TokenAmount.of(1000, 18),
    )


def _index_pool(longs: int, shorts: int, long_index: int, short_index: int) -> PoolAggregate:
    return PoolAggregate.empty("main", "ETH", 18).model_copy(
        update={
            "global_long_size": Usd.of(longs),
            "global_short_size": Usd.of(shorts),
            "cumulative_long_skew_index": long_index,
            "cumulative_short_skew_index": short_index,
        }
    )


class TestMarginFee:
    def test_position_fee(self, engine: FeeEngine) -> None:
        """10 bps от $1000 = $1"""
        assert engine.position_fee(Usd.of(1000)) == Usd.of(1)

    def test_funding_fee(self, engine: FeeEngine) -> None:
        """$1000 * 250 / 1e6 = $0.25"""
        assert engine.funding_fee(Usd.of(1000), 100, 350) == Usd.of("0.25")

    def test_funding_index_backwards(self, engine: FeeEngine) -> None:
        with pytest.raises(ValueError, match="backwards"):
            engine.funding_fee(Usd.of(1000), 10, 5)

    def test_margin_fee_without_referral(self, engine: FeeEngine) -> None:
        fee = engine.margin_fee("alice", Usd.of(1000), Usd.of(500), 0, 1000)

        assert fee.position_fee == Usd.of("0.5")
        assert fee.funding_fee == Usd.of(1)
        assert fee.total == Usd.of("1.5")
        assert fee.referral_rebate == Usd.zero()
        assert fee.referrer is None
        assert fee.protocol_fee == fee.total

    def test_referral_discount_and_rebate(
        self, engine: FeeEngine, referrals: StaticReferralLookup
    ) -> None:
        """Скидка трейдеру, rebate рефереру из уплаченной комиссии"""
        referrals.set_terms(
            "alice", ReferralTerms(discount_bps=1000, rebate_bps=2000, referrer="bob")
        )

        fee = engine.margin_fee("alice", Usd.zero(), Usd.of(1000), 0, 0)

        assert fee.discount == Usd.of("0.1")
        assert fee.position_fee == Usd.of("0.9")
        assert fee.referral_rebate == Usd.of("0.2")
        assert fee.referrer == "bob"
        assert fee.protocol_fee == Usd.of("0.7")

    def test_rebate_requires_referrer(self) -> None:
        with pytest.raises(ValueError, match="referrer"):
            ReferralTerms(rebate_bps=100)

    def test_referral_bps_bounded(self) -> None:
        with pytest.raises(ValueError, match="exceeds"):
            ReferralTerms(discount_bps=6000, rebate_bps=5000, referrer="bob")


class TestSkewFee:
    def test_majority_long_is_charged(self, engine: FeeEngine) -> None:
        """LONG на стороне большинства платит прирост long индекса"""
        pool = _index_pool(longs=3000, shorts=1000, long_index=500, short_index=0)

        fee = engine.skew_fee(_position(is_long=True), pool, Price.of(1))

        assert not fee.is_rebate
        assert fee.amount_usd == Usd.of("0.5")
        assert fee.charge == Usd.of("0.5")
        assert fee.amount_native == TokenAmount.of("0.5", 18)

    def test_minority_short_gets_rebate(self, engine: FeeEngine) -> None:
        """SHORT на стороне меньшинства получает прирост противоположного индекса"""
        pool = _index_pool(longs=3000, shorts=1000, long_index=500, short_index=0)

        fee = engine.skew_fee(_position(is_long=False), pool, Price.of(1))

        assert fee.is_rebate
        assert fee.amount_usd == Usd.of("0.5")
        assert fee.charge == Usd.zero()
        assert fee.amount_native == TokenAmount.of("0.5", 18)

    def test_only_growth_since_entry(self, engine: FeeEngine) -> None:
        pool = _index_pool(longs=3000, shorts=1000, long_index=500, short_index=0)

        fee = engine.skew_fee(_position(is_long=True, entry_long=400), pool, Price.of(1))

        assert fee.amount_usd == Usd.of("0.1")

    def test_balanced_charges_own_side(self, engine: FeeEngine) -> None:
        pool = _index_pool(longs=1000, shorts=1000, long_index=0, short_index=200)

        fee = engine.skew_fee(_position(is_long=False), pool, Price.of(1))

        assert not fee.is_rebate
        assert fee.amount_usd == Usd.of("0.2")

    def test_absent_position_pays_nothing(self, engine: FeeEngine) -> None:
        absent = Position.absent(_position(True).key, 18)
        pool = _index_pool(longs=3000, shorts=1000, long_index=500, short_index=0)

        fee = engine.skew_fee(absent, pool, Price.of(1))

        assert fee.amount_usd == Usd.zero()

    def test_native_amount_at_max_price(self, engine: FeeEngine) -> None:
        """Выше цена коллатерала → меньше нативных единиц"""
        pool = _index_pool(longs=3000, shorts=1000, long_index=500, short_index=0)

        fee = engine.skew_fee(_position(is_long=True), pool, Price.of(2))

        assert fee.amount_native == TokenAmount.of("0.25", 18)
