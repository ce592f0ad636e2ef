"""VaultAccountant — агрегаты пула.

Единственная точка изменения полей PoolAggregate:
- pool_amount, reserved_amount, fee_reserves (нативные единицы)
- guaranteed_usd (USD)
- synthetic_supply (синтетический stable)
- global_long_size, global_short_size (USD), global_short_average_price

Каждое уменьшение выбрасывает ArithmeticUnderflow вместо обрезания до нуля.
Рост reserved_amount сверх pool_amount и вывод ликвидности, нарушающий
pool_amount >= reserved_amount + amount, выбрасывают InsufficientFunds.
"""

import logging
from typing import Dict, Tuple

from src.core.domain.pool import PoolAggregate
from src.core.domain.units import (
    Price,
    TokenAmount,
    Usd,
    synthetic_to_usd,
    token_to_usd,
    usd_to_synthetic,
    usd_to_token,
)
from src.core.errors import InsufficientFunds, UnitMismatchError, UnknownToken
from src.core.math.fixed_point import checked_sub
from src.core.math.position_math import next_global_short_average_price
from src.ledger.config import PoolTokenConfig
from src.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


def _sub_tokens(current: TokenAmount, delta: TokenAmount, what: str) -> TokenAmount:
    if current.decimals != delta.decimals:
        raise UnitMismatchError(f"{what}: decimals {current.decimals} != {delta.decimals}")
    return TokenAmount(checked_sub(current.amount, delta.amount, what), current.decimals)


class VaultAccountant:
    def __init__(self, store: LedgerStore) -> None:
        self._store = store
        self._tokens: Dict[Tuple[str, str], PoolTokenConfig] = {}

    # -------------------------------------------------------------------------
    # Конфигурация
    # -------------------------------------------------------------------------

    def configure_token(self, config: PoolTokenConfig) -> PoolAggregate:
        """Регистрирует токен пула; агрегат создаётся один раз."""
        key = (config.pool_id, config.token)
        existing = self._tokens.get(key)
        if existing is not None and existing.decimals != config.decimals:
            raise ValueError(f"cannot change decimals of {config.token} in {config.pool_id}")
        self._tokens[key] = config

        pool = self._store.pools.get(key)
        if pool is None:
            pool = PoolAggregate.empty(config.pool_id, config.token, config.decimals)
            self._store.pools.put(key, pool)
            logger.info("Pool token configured: %s/%s", config.pool_id, config.token)
        return pool

    def token_config(self, pool_id: str, token: str) -> PoolTokenConfig:
        """
        Raises:
            UnknownToken: Если токен не сконфигурирован в пуле
        """
        try:
            return self._tokens[(pool_id, token)]
        except KeyError:
            raise UnknownToken(f"token {token} is not configured in pool {pool_id}") from None

    def pool(self, pool_id: str, token: str) -> PoolAggregate:
        return self._store.pool(pool_id, token)

    def _update(self, pool_id: str, token: str, **changes) -> PoolAggregate:
        pool = self._store.pool(pool_id, token).model_copy(update=changes)
        self._store.pools.put((pool_id, token), pool)
        return pool

    # -------------------------------------------------------------------------
    # pool_amount
    # -------------------------------------------------------------------------

    def increase_pool_amount(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        pool = self.pool(pool_id, token)
        self._update(pool_id, token, pool_amount=pool.pool_amount + amount)

    def decrease_pool_amount(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        pool = self.pool(pool_id, token)
        self._update(
            pool_id, token, pool_amount=_sub_tokens(pool.pool_amount, amount, "pool_amount")
        )

    def validate_withdrawal(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        """
        Проверка pool_amount >= reserved_amount + amount.

        Raises:
            InsufficientFunds: Если вывод затронул бы зарезервированную ликвидность
        """
        pool = self.pool(pool_id, token)
        if pool.pool_amount.amount < pool.reserved_amount.amount + amount.amount:
            raise InsufficientFunds(
                f"withdrawal of {amount.amount} from {pool_id}/{token} exceeds available "
                f"liquidity: pool={pool.pool_amount.amount}, reserved={pool.reserved_amount.amount}"
            )

    def withdraw(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        """Уменьшение pool_amount с проверкой резерва."""
        self.validate_withdrawal(pool_id, token, amount)
        self.decrease_pool_amount(pool_id, token, amount)

    # -------------------------------------------------------------------------
    # reserved_amount
    # -------------------------------------------------------------------------

    def increase_reserved_amount(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        pool = self.pool(pool_id, token)
        reserved = pool.reserved_amount + amount
        if reserved > pool.pool_amount:
            raise InsufficientFunds(
                f"reserve {reserved.amount} exceeds pool amount {pool.pool_amount.amount} "
                f"for {pool_id}/{token}"
            )
        self._update(pool_id, token, reserved_amount=reserved)

    def decrease_reserved_amount(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        pool = self.pool(pool_id, token)
        self._update(
            pool_id,
            token,
            reserved_amount=_sub_tokens(pool.reserved_amount, amount, "reserved_amount"),
        )

    # -------------------------------------------------------------------------
    # guaranteed_usd
    # -------------------------------------------------------------------------

    def increase_guaranteed_usd(self, pool_id: str, token: str, amount: Usd) -> None:
        pool = self.pool(pool_id, token)
        self._update(pool_id, token, guaranteed_usd=pool.guaranteed_usd + amount)

    def decrease_guaranteed_usd(self, pool_id: str, token: str, amount: Usd) -> None:
        pool = self.pool(pool_id, token)
        self._update(
            pool_id,
            token,
            guaranteed_usd=pool.guaranteed_usd.checked_sub(amount, "guaranteed_usd"),
        )

    # -------------------------------------------------------------------------
    # synthetic_supply
    # -------------------------------------------------------------------------

    def increase_synthetic_supply(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        pool = self.pool(pool_id, token)
        self._update(pool_id, token, synthetic_supply=pool.synthetic_supply + amount)

    def decrease_synthetic_supply(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        pool = self.pool(pool_id, token)
        self._update(
            pool_id,
            token,
            synthetic_supply=_sub_tokens(pool.synthetic_supply, amount, "synthetic_supply"),
        )

    # -------------------------------------------------------------------------
    # Глобальный открытый интерес
    # -------------------------------------------------------------------------

    def increase_global_long_size(self, pool_id: str, token: str, amount: Usd) -> None:
        pool = self.pool(pool_id, token)
        self._update(pool_id, token, global_long_size=pool.global_long_size + amount)

    def decrease_global_long_size(self, pool_id: str, token: str, amount: Usd) -> None:
        pool = self.pool(pool_id, token)
        self._update(
            pool_id,
            token,
            global_long_size=pool.global_long_size.checked_sub(amount, "global_long_size"),
        )

    def increase_global_short_size(self, pool_id: str, token: str, amount: Usd) -> None:
        pool = self.pool(pool_id, token)
        self._update(pool_id, token, global_short_size=pool.global_short_size + amount)

    def decrease_global_short_size(self, pool_id: str, token: str, amount: Usd) -> None:
        pool = self.pool(pool_id, token)
        self._update(
            pool_id,
            token,
            global_short_size=pool.global_short_size.checked_sub(amount, "global_short_size"),
        )

    def set_global_short_average_price(self, pool_id: str, token: str, price: Price) -> None:
        self._update(pool_id, token, global_short_average_price=price)

    def update_global_short_average_price(
        self, pool_id: str, token: str, fill_price: Price, size_delta: Usd
    ) -> Price:
        """Пересчёт средней цены шортов перед увеличением global_short_size."""
        pool = self.pool(pool_id, token)
        price = Price(
            next_global_short_average_price(
                pool.global_short_size.value,
                pool.global_short_average_price.value,
                fill_price.value,
                size_delta.value,
            )
        )
        self.set_global_short_average_price(pool_id, token, price)
        return price

    # -------------------------------------------------------------------------
    # Комиссии
    # -------------------------------------------------------------------------

    def collect_fee_reserves(self, pool_id: str, token: str, amount: TokenAmount) -> None:
        pool = self.pool(pool_id, token)
        self._update(pool_id, token, fee_reserves=pool.fee_reserves + amount)

    # -------------------------------------------------------------------------
    # Ликвидность пула
    # -------------------------------------------------------------------------

    def add_liquidity(
        self, pool_id: str, token: str, amount: TokenAmount, min_price: Price
    ) -> TokenAmount:
        """
        Депозит ликвидности: pool_amount += amount, выпуск synthetic по min цене.

        Returns:
            Выпущенный synthetic
        """
        synthetic = usd_to_synthetic(token_to_usd(amount, min_price))
        self.increase_pool_amount(pool_id, token, amount)
        self.increase_synthetic_supply(pool_id, token, synthetic)
        return synthetic

    def remove_liquidity(
        self, pool_id: str, token: str, synthetic: TokenAmount, max_price: Price
    ) -> TokenAmount:
        """
        Вывод ликвидности: сжигание synthetic, выдача токенов по max цене.

        Returns:
            Нативная сумма к выплате

        Raises:
            InsufficientFunds: Если вывод затронул бы reserved_amount
        """
        config = self.token_config(pool_id, token)
        amount_out = usd_to_token(synthetic_to_usd(synthetic), max_price, config.decimals)
        self.decrease_synthetic_supply(pool_id, token, synthetic)
        self.withdraw(pool_id, token, amount_out)
        return amount_out

    # -------------------------------------------------------------------------
    # Инварианты
    # -------------------------------------------------------------------------

    def ensure_solvent(self, pool: PoolAggregate) -> None:
        """
        Raises:
            InsufficientFunds: Если pool_amount < reserved_amount
        """
        if pool.pool_amount < pool.reserved_amount:
            raise InsufficientFunds(
                f"pool {pool.pool_id}/{pool.token} insolvent: "
                f"pool={pool.pool_amount.amount} < reserved={pool.reserved_amount.amount}"
            )
