"""
Domain models and value objects.

Contains fundamental domain entities like Usd, TokenAmount, Position, PoolAggregate.
"""

from src.core.domain.events import (
    AccrualUpdated,
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
from src.core.domain.position import Direction, Position, PositionKey, position_key
from src.core.domain.requests import (
    DecreasePositionRequest,
    IncreasePositionRequest,
    LiquidatePositionRequest,
)
from src.core.domain.units import (
    Price,
    TokenAmount,
    Usd,
    synthetic_to_usd,
    token_to_usd,
    usd_to_synthetic,
    usd_to_token,
)

__all__ = [
    # Units module
    "Usd",
    "Price",
    "TokenAmount",
    "token_to_usd",
    "usd_to_token",
    "usd_to_synthetic",
    "synthetic_to_usd",
    # Position model
    "Position",
    "PositionKey",
    "Direction",
    "position_key",
    # Pool model
    "PoolAggregate",
    # Requests
    "IncreasePositionRequest",
    "DecreasePositionRequest",
    "LiquidatePositionRequest",
    # Events
    "LedgerEvent",
    "IncreasePosition",
    "DecreasePosition",
    "UpdatePosition",
    "ClosePosition",
    "LiquidatePosition",
    "CollectMarginFees",
    "SkewFeeApplied",
    "AccrualUpdated",
    "LiquidityChanged",
]
