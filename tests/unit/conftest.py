"""
Общие fixtures для тестов ledger.

Пул "main":
- ETH: индексный актив, 18 decimals, shortable
- USDC: stable коллатерал, 18 decimals

Ликвидность: 10_000 USDC и 100 ETH, цены ETH=$100, USDC=$1.
"""

from typing import Callable

import pytest

from src.core.domain.units import Price
from src.ledger import (
    TRADER_CAPABILITIES,
    Capability,
    CapabilityTable,
    FixedPriceOracle,
    LedgerConfig,
    MemoryNotificationSink,
    OperationContext,
    PoolTokenConfig,
    PositionLedger,
    StaticReferralLookup,
    StaticTradingGate,
)

POOL = "main"
ETH = "ETH"
USDC = "USDC"

# Кратно funding_interval по умолчанию (3600)
T0 = 3600 * 472_222

WAD = 10**18


CAPABILITIES = CapabilityTable.build(
    {
        "alice": TRADER_CAPABILITIES,
        "carol": TRADER_CAPABILITIES,
        "router": TRADER_CAPABILITIES | {Capability.ACT_FOR_ACCOUNT},
        "keeper": {Capability.LIQUIDATE_POSITION},
        "lp": {Capability.MANAGE_LIQUIDITY},
    }
)


def make_ctx(caller: str = "alice", now: int = T0) -> OperationContext:
    return OperationContext(caller=caller, now=now, capabilities=CAPABILITIES)


@pytest.fixture
def oracle() -> FixedPriceOracle:
    oracle = FixedPriceOracle()
    oracle.set_price(ETH, Price.of(100))
    oracle.set_price(USDC, Price.of(1))
    return oracle


@pytest.fixture
def gate() -> StaticTradingGate:
    return StaticTradingGate()


@pytest.fixture
def referrals() -> StaticReferralLookup:
    return StaticReferralLookup()


@pytest.fixture
def sink() -> MemoryNotificationSink:
    return MemoryNotificationSink()


@pytest.fixture
def make_ledger(oracle, gate, referrals, sink) -> Callable[..., PositionLedger]:
    """Фабрика ledger с конфигурированным и пополненным пулом."""

    def _make(config: LedgerConfig = LedgerConfig()) -> PositionLedger:
        ledger = PositionLedger(config, oracle, gate, referrals=referrals, sink=sink)
        ledger.configure_token(PoolTokenConfig(POOL, ETH, 18, is_shortable=True))
        ledger.configure_token(PoolTokenConfig(POOL, USDC, 18, is_stable=True))
        ledger.add_liquidity(make_ctx("lp"), POOL, USDC, 10_000 * WAD)
        ledger.add_liquidity(make_ctx("lp"), POOL, ETH, 100 * WAD)
        sink.events.clear()
        return ledger

    return _make


@pytest.fixture
def ledger(make_ledger) -> PositionLedger:
    return make_ledger()
