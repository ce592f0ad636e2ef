"""
Position — Модель маржинальной позиции

Immutable Pydantic модель позиции трейдера против пула.
Ключ: (account, pool_id, collateral_asset, index_asset, is_long),
не более одной живой записи на ключ.

Отсутствие позиции представлено нулевым sentinel (size == 0),
никогда не частично заполненной записью.
"""

import hashlib
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.domain.units import Price, TokenAmount, Usd
from src.core.math.position_math import leverage_bps, signed_pnl


# =============================================================================
# ENUMS
# =============================================================================


class Direction(str, Enum):
    """Направление позиции"""

    LONG = "long"
    SHORT = "short"


# =============================================================================
# KEY
# =============================================================================


def _encode_field(value: str) -> bytes:
    raw = value.encode("utf-8")
    return len(raw).to_bytes(4, "big") + raw


class PositionKey(BaseModel):
    """
    Составной ключ позиции.

    id — детерминированный и свободный от коллизий идентификатор:
    SHA-256 от length-prefixed UTF-8 полей + один байт направления.
    Часть контракта хранимого состояния, формат не меняется.
    """

    account: str = Field(..., min_length=1, description="Владелец позиции")
    pool_id: str = Field(..., min_length=1, description="Идентификатор пула")
    collateral_asset: str = Field(..., min_length=1, description="Токен коллатерала")
    index_asset: str = Field(..., min_length=1, description="Индексный актив")
    is_long: bool = Field(..., description="LONG (True) / SHORT (False)")

    model_config = {"frozen": True}

    @property
    def id(self) -> str:
        payload = b"".join(
            (
                _encode_field(self.account),
                _encode_field(self.pool_id),
                _encode_field(self.collateral_asset),
                _encode_field(self.index_asset),
                b"\x01" if self.is_long else b"\x00",
            )
        )
        return hashlib.sha256(payload).hexdigest()

    @property
    def direction(self) -> Direction:
        return Direction.LONG if self.is_long else Direction.SHORT


def position_key(
    account: str,
    pool_id: str,
    collateral_asset: str,
    index_asset: str,
    is_long: bool,
) -> str:
    """Идентификатор позиции по полям ключа."""
    return PositionKey(
        account=account,
        pool_id=pool_id,
        collateral_asset=collateral_asset,
        index_asset=index_asset,
        is_long=is_long,
    ).id


# =============================================================================
# POSITION MODEL
# =============================================================================


class Position(BaseModel):
    """
    Модель позиции.

    Immutable модель (frozen=True). Все изменения создают новый экземпляр
    через model_copy(update=...) внутри транзакции ledger.

    Единицы:
    - size, collateral, realized_pnl: Usd
    - average_price: Price индексного актива
    - collateral_amount, reserve_amount: TokenAmount в decimals коллатерала
    - entry_*_index: снимки накопительных индексов (FUNDING_RATE_PRECISION)
    """

    key: PositionKey

    size: Usd = Field(..., description="Размер позиции (USD)")
    collateral: Usd = Field(..., description="Коллатерал за вычетом комиссий (USD)")
    collateral_amount: TokenAmount = Field(..., description="Коллатерал в нативных единицах")
    average_price: Price = Field(..., description="Средняя цена входа")

    entry_funding_index: int = Field(0, ge=0)
    entry_long_skew_index: int = Field(0, ge=0)
    entry_short_skew_index: int = Field(0, ge=0)

    reserve_amount: TokenAmount = Field(..., description="Зарезервировано в пуле (нативно)")
    last_increase_timestamp: int = Field(0, ge=0)
    realized_pnl: Usd = Field(default_factory=Usd.zero, description="Реализованный PnL")

    model_config = {"frozen": True}

    @field_validator("size", "collateral")
    @classmethod
    def validate_non_negative_usd(cls, v: Usd) -> Usd:
        if v.value < 0:
            raise ValueError(f"must be non-negative, got {v.value}")
        return v

    @model_validator(mode="after")
    def validate_decimals(self) -> "Position":
        if self.collateral_amount.decimals != self.reserve_amount.decimals:
            raise ValueError(
                "collateral_amount and reserve_amount must share collateral decimals"
            )
        return self

    @classmethod
    def absent(cls, key: PositionKey, collateral_decimals: int) -> "Position":
        """Нулевой sentinel для отсутствующей позиции."""
        return cls(
            key=key,
            size=Usd.zero(),
            collateral=Usd.zero(),
            collateral_amount=TokenAmount.zero(collateral_decimals),
            average_price=Price.zero(),
            reserve_amount=TokenAmount.zero(collateral_decimals),
        )

    @property
    def is_open(self) -> bool:
        return self.size.value > 0

    @property
    def is_long(self) -> bool:
        return self.key.is_long

    def leverage_bps(self) -> int:
        """Текущее плечо size / collateral в basis points."""
        return leverage_bps(self.size.value, self.collateral.value)

    def unrealized_pnl(self, mark_price: Price) -> Usd:
        """Нереализованный PnL по цене mark_price (со знаком)."""
        if not self.is_open:
            return Usd.zero()
        return Usd(
            signed_pnl(self.size.value, self.average_price.value, mark_price.value, self.is_long)
        )
