"""Конфигурация ledger.

Frozen dataclass-конфиги с значениями по умолчанию:
- LedgerConfig: комиссии, funding/skew ставки, лимиты позиции
- PoolTokenConfig: токен пула (decimals, stable/shortable флаги)
"""

from dataclasses import dataclass, field

from src.core.domain.units import Usd
from src.core.math.fixed_point import BASIS_POINTS_DIVISOR

# Абсолютный потолок плеча, который нельзя превысить конфигурацией
MAX_LEVERAGE_CAP_BPS = 500 * BASIS_POINTS_DIVISOR


@dataclass(frozen=True)
class PoolTokenConfig:
    """Конфигурация токена в пуле."""

    pool_id: str
    token: str
    decimals: int
    is_stable: bool = False
    is_shortable: bool = False

    def __post_init__(self) -> None:
        if not self.pool_id or not self.token:
            raise ValueError("pool_id and token must be non-empty")
        if not 0 <= self.decimals <= 36:
            raise ValueError(f"decimals out of range: {self.decimals}")
        if self.is_stable and self.is_shortable:
            raise ValueError(f"stable token {self.token} cannot be shortable")


@dataclass(frozen=True)
class LedgerConfig:
    """Конфигурация ledger.

    Ставки funding/skew задаются за один funding_interval в масштабе
    FUNDING_RATE_PRECISION (100 = 0.01% при 100% утилизации/дисбалансе).
    """

    # Taker комиссия на size_delta
    margin_fee_bps: int = 10

    # Funding
    funding_interval: int = 3600  # секунды
    funding_rate_factor: int = 100
    stable_funding_rate_factor: int = 100

    # Skew
    skew_rate_factor: int = 50

    # Лимиты позиции
    max_leverage_bps: int = 100 * BASIS_POINTS_DIVISOR  # 100x
    min_collateral_usd: Usd = field(default_factory=lambda: Usd.of(10))

    # Фиксированная плата ликвидатору (выплачивается в нативных единицах)
    liquidation_fee_usd: Usd = field(default_factory=lambda: Usd.of(5))

    def __post_init__(self) -> None:
        if not 0 <= self.margin_fee_bps <= 500:
            raise ValueError(f"margin_fee_bps out of range: {self.margin_fee_bps}")
        if self.funding_interval <= 0:
            raise ValueError(f"funding_interval must be positive: {self.funding_interval}")
        for name in ("funding_rate_factor", "stable_funding_rate_factor", "skew_rate_factor"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if not BASIS_POINTS_DIVISOR < self.max_leverage_bps <= MAX_LEVERAGE_CAP_BPS:
            raise ValueError(f"max_leverage_bps out of range: {self.max_leverage_bps}")
        if self.min_collateral_usd.value < 0 or self.liquidation_fee_usd.value < 0:
            raise ValueError("min_collateral_usd and liquidation_fee_usd cannot be negative")
