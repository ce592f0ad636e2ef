"""
Events — События ledger для NotificationSink

События буферизуются внутри операции и отправляются только после commit.
Сбой sink никогда не откатывает зафиксированный переход.

Все суммы — целые числа в масштабах ядра (USD/цены 1e30, нативные единицы).
"""

from typing import Optional

from pydantic import BaseModel, Field


class LedgerEvent(BaseModel):
    """Базовое событие."""

    model_config = {"frozen": True}

    @property
    def name(self) -> str:
        return type(self).__name__


class _PositionEvent(LedgerEvent):
    key_id: str = Field(..., description="PositionKey.id")
    account: str
    pool_id: str
    collateral_asset: str
    index_asset: str
    is_long: bool


class IncreasePosition(_PositionEvent):
    collateral_delta_usd: int
    size_delta: int
    price: int
    fee_usd: int


class DecreasePosition(_PositionEvent):
    collateral_delta_usd: int
    size_delta: int
    price: int
    fee_usd: int
    amount_out: int
    receiver: str


class UpdatePosition(LedgerEvent):
    key_id: str
    size: int
    collateral: int
    average_price: int
    entry_funding_index: int
    reserve_amount: int
    realized_pnl: int
    mark_price: int


class ClosePosition(LedgerEvent):
    key_id: str
    size: int
    collateral: int
    average_price: int
    entry_funding_index: int
    reserve_amount: int
    realized_pnl: int


class LiquidatePosition(_PositionEvent):
    verdict: str
    size: int
    collateral: int
    reserve_amount: int
    realized_pnl: int
    mark_price: int
    fee_receiver: str
    liquidation_fee_amount: int


class CollectMarginFees(LedgerEvent):
    pool_id: str
    token: str
    fee_usd: int
    fee_amount: int
    referrer: Optional[str] = None
    referral_rebate_amount: int = 0


class SkewFeeApplied(LedgerEvent):
    key_id: str
    is_rebate: bool
    amount_usd: int
    amount_native: int


class AccrualUpdated(LedgerEvent):
    pool_id: str
    token: str
    cumulative_funding_index: int
    cumulative_long_skew_index: int
    cumulative_short_skew_index: int


class LiquidityChanged(LedgerEvent):
    pool_id: str
    token: str
    account: str
    token_amount: int
    synthetic_amount: int
    is_deposit: bool
