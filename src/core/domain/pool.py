"""
PoolAggregate — Агрегаты пула по (pool_id, token)

Immutable Pydantic модель. Создаётся один раз при конфигурации токена пула,
изменяется каждой операцией над позициями этой пары, никогда не удаляется.

Инварианты (проверяются после каждой зафиксированной операции):
- pool_amount >= reserved_amount
- guaranteed_usd >= 0
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.domain.units import Price, TokenAmount, Usd
from src.core.math.fixed_point import SYNTHETIC_DECIMALS


class PoolAggregate(BaseModel):
    """
    Агрегат пула для одного токена.

    Funding индекс ведётся на агрегате токена-коллатерала,
    skew индексы и глобальные размеры — на агрегате индексного токена.
    """

    pool_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    decimals: int = Field(..., ge=0, le=36)

    # Ликвидность (нативные единицы токена)
    pool_amount: TokenAmount
    reserved_amount: TokenAmount
    fee_reserves: TokenAmount

    # USD обязательства
    guaranteed_usd: Usd = Field(default_factory=Usd.zero)

    # Синтетический stable, выпущенный против пула
    synthetic_supply: TokenAmount = Field(
        default_factory=lambda: TokenAmount.zero(SYNTHETIC_DECIMALS)
    )

    # Накопительные индексы
    cumulative_funding_index: int = Field(0, ge=0)
    cumulative_long_skew_index: int = Field(0, ge=0)
    cumulative_short_skew_index: int = Field(0, ge=0)
    last_funding_time: Optional[int] = Field(None, ge=0)
    last_skew_time: Optional[int] = Field(None, ge=0)

    # Открытый интерес по индексному токену
    global_long_size: Usd = Field(default_factory=Usd.zero)
    global_short_size: Usd = Field(default_factory=Usd.zero)
    global_short_average_price: Price = Field(default_factory=Price.zero)

    model_config = {"frozen": True}

    @field_validator("guaranteed_usd", "global_long_size", "global_short_size")
    @classmethod
    def validate_non_negative_usd(cls, v: Usd) -> Usd:
        if v.value < 0:
            raise ValueError(f"must be non-negative, got {v.value}")
        return v

    @model_validator(mode="after")
    def validate_token_decimals(self) -> "PoolAggregate":
        for name in ("pool_amount", "reserved_amount", "fee_reserves"):
            if getattr(self, name).decimals != self.decimals:
                raise ValueError(f"{name} must use {self.decimals} decimals")
        return self

    @classmethod
    def empty(cls, pool_id: str, token: str, decimals: int) -> "PoolAggregate":
        """Новый агрегат с нулевыми значениями."""
        return cls(
            pool_id=pool_id,
            token=token,
            decimals=decimals,
            pool_amount=TokenAmount.zero(decimals),
            reserved_amount=TokenAmount.zero(decimals),
            fee_reserves=TokenAmount.zero(decimals),
        )

    def available_amount(self) -> TokenAmount:
        """Свободная ликвидность pool_amount - reserved_amount."""
        return self.pool_amount - self.reserved_amount

    def is_solvent(self) -> bool:
        return self.pool_amount >= self.reserved_amount and self.guaranteed_usd.value >= 0
