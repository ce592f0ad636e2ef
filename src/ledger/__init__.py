"""
Ledger — бухгалтерское ядро пула perpetual-позиций.

Компоненты:
- VaultAccountant: агрегаты пула (pool/reserved/guaranteed/fee reserves)
- AccrualIndex: накопительные funding и skew индексы
- FeeEngine: margin fee, skew fee, реферальные скидки
- LiquidationEvaluator: вердикт ликвидации
- PositionLedger: атомарные переходы increase / decrease / liquidate
"""

from src.ledger.accrual import AccrualIndex
from src.ledger.capabilities import (
    TRADER_CAPABILITIES,
    Capability,
    CapabilityTable,
    OperationContext,
)
from src.ledger.collaborators import (
    NO_REFERRAL,
    FixedPriceOracle,
    MemoryNotificationSink,
    NotificationSink,
    NullNotificationSink,
    PriceOracle,
    ReferralLookup,
    ReferralTerms,
    StaticReferralLookup,
    StaticTradingGate,
    TradingGate,
)
from src.ledger.config import LedgerConfig, PoolTokenConfig
from src.ledger.fees import FeeEngine, MarginFee, SkewFee
from src.ledger.guard import OperationGuard
from src.ledger.liquidation import (
    LiquidationAssessment,
    LiquidationEvaluator,
    LiquidationVerdict,
    evaluate_liquidation,
)
from src.ledger.position_ledger import LiquidationOutcome, PositionLedger
from src.ledger.store import LedgerStore
from src.ledger.vault import VaultAccountant

__all__ = [
    # Orchestration
    "PositionLedger",
    "LiquidationOutcome",
    "OperationGuard",
    "LedgerStore",
    # Components
    "VaultAccountant",
    "AccrualIndex",
    "FeeEngine",
    "MarginFee",
    "SkewFee",
    "LiquidationEvaluator",
    "LiquidationAssessment",
    "LiquidationVerdict",
    "evaluate_liquidation",
    # Configuration
    "LedgerConfig",
    "PoolTokenConfig",
    # Capabilities
    "Capability",
    "CapabilityTable",
    "OperationContext",
    "TRADER_CAPABILITIES",
    # Collaborators
    "PriceOracle",
    "TradingGate",
    "ReferralLookup",
    "ReferralTerms",
    "NO_REFERRAL",
    "NotificationSink",
    "FixedPriceOracle",
    "StaticTradingGate",
    "StaticReferralLookup",
    "NullNotificationSink",
    "MemoryNotificationSink",
]
