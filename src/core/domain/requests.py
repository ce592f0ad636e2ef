"""
Requests — Запросы к ledger (increase / decrease / liquidate)

Immutable Pydantic модели уже провалидированных роутером запросов.
Поля передаются в "проводном" виде (целые числа):
- size_delta, collateral_delta: USD в масштабе PRICE_PRECISION
- collateral_amount: нативные единицы токена-коллатерала

Конверсия в типизированные Usd/TokenAmount выполняется ledger'ом,
которому известны decimals токенов.
"""

from pydantic import BaseModel, Field

from src.core.domain.position import PositionKey


class _PositionRequest(BaseModel):
    """Общие поля ключа позиции."""

    account: str = Field(..., min_length=1, description="Владелец позиции")
    pool_id: str = Field(..., min_length=1, description="Идентификатор пула")
    collateral_asset: str = Field(..., min_length=1, description="Токен коллатерала")
    index_asset: str = Field(..., min_length=1, description="Индексный актив")
    is_long: bool = Field(..., description="Направление позиции")

    model_config = {"frozen": True}

    @property
    def key(self) -> PositionKey:
        return PositionKey(
            account=self.account,
            pool_id=self.pool_id,
            collateral_asset=self.collateral_asset,
            index_asset=self.index_asset,
            is_long=self.is_long,
        )


class IncreasePositionRequest(_PositionRequest):
    """Открытие/увеличение позиции и/или депозит коллатерала."""

    size_delta: int = Field(0, ge=0, description="Прирост размера (USD, 1e30)")
    collateral_amount: int = Field(
        0, ge=0, description="Полученный депозит коллатерала (нативные единицы)"
    )


class DecreasePositionRequest(_PositionRequest):
    """Уменьшение/закрытие позиции и/или вывод коллатерала."""

    size_delta: int = Field(0, ge=0, description="Уменьшение размера (USD, 1e30)")
    collateral_delta: int = Field(0, ge=0, description="Запрошенный вывод коллатерала (USD, 1e30)")
    receiver: str = Field(..., min_length=1, description="Получатель выплаты")


class LiquidatePositionRequest(_PositionRequest):
    """Ликвидация позиции."""

    fee_receiver: str = Field(..., min_length=1, description="Получатель liquidation fee")
