"""AccrualIndex — накопительные funding и skew индексы.

Funding ведётся на агрегате токена-коллатерала:
    cumulative_funding_index += intervals * rate_factor * reserved / pool

Skew ведётся на агрегате индексного токена:
    rate = intervals * skew_rate_factor * |L - S| / (L + S)
    растёт индекс стороны большинства (long при L > S, short при S > L)

intervals = (now - last_time) // funding_interval. При intervals == 0
advance — no-op (идемпотентен в пределах timestamp и интервала).
Индексы монотонно не убывают.
"""

import logging
from typing import List, Optional, Tuple

from src.core.domain.events import AccrualUpdated
from src.core.domain.pool import PoolAggregate
from src.core.math.fixed_point import mul_div
from src.ledger.config import LedgerConfig
from src.ledger.store import LedgerStore
from src.ledger.vault import VaultAccountant

logger = logging.getLogger(__name__)


class AccrualIndex:
    def __init__(self, store: LedgerStore, vault: VaultAccountant, config: LedgerConfig) -> None:
        self._store = store
        self._vault = vault
        self._config = config

    def _floor_to_interval(self, now: int) -> int:
        interval = self._config.funding_interval
        return now // interval * interval

    def _elapsed_intervals(self, last_time: Optional[int], now: int) -> int:
        if last_time is None or now <= last_time:
            return 0
        return (now - last_time) // self._config.funding_interval

    # -------------------------------------------------------------------------
    # Ставки
    # -------------------------------------------------------------------------

    def next_funding_rate(self, pool: PoolAggregate, now: int) -> int:
        """Прирост funding индекса, который начислил бы advance(now)."""
        intervals = self._elapsed_intervals(pool.last_funding_time, now)
        if intervals == 0:
            return 0
        config = self._vault.token_config(pool.pool_id, pool.token)
        rate_factor = (
            self._config.stable_funding_rate_factor
            if config.is_stable
            else self._config.funding_rate_factor
        )
        return mul_div(
            rate_factor * intervals,
            pool.reserved_amount.amount,
            pool.pool_amount.amount,
            fallback=0,
        )

    def next_skew_rate(self, pool: PoolAggregate, now: int) -> Tuple[int, int]:
        """Приросты (long, short) skew индексов, которые начислил бы advance(now)."""
        intervals = self._elapsed_intervals(pool.last_skew_time, now)
        if intervals == 0:
            return 0, 0
        longs = pool.global_long_size.value
        shorts = pool.global_short_size.value
        rate = mul_div(
            self._config.skew_rate_factor * intervals,
            abs(longs - shorts),
            longs + shorts,
            fallback=0,
        )
        if longs > shorts:
            return rate, 0
        if shorts > longs:
            return 0, rate
        return 0, 0

    # -------------------------------------------------------------------------
    # Advance
    # -------------------------------------------------------------------------

    def advance(
        self, pool_id: str, collateral_token: str, index_token: str, now: int
    ) -> List[AccrualUpdated]:
        """
        Продвигает индексы пары до момента now.

        Должен вызываться до чтения индексов для расчёта комиссий и до
        любого изменения size/collateral по этой паре.

        Returns:
            События для изменённых агрегатов
        """
        events: List[AccrualUpdated] = []

        updated = self._advance_funding(pool_id, collateral_token, now)
        if updated is not None:
            events.append(self._event(updated))

        updated = self._advance_skew(pool_id, index_token, now)
        if updated is not None:
            if events and updated.token == collateral_token:
                events[0] = self._event(updated)
            else:
                events.append(self._event(updated))

        return events

    def _advance_funding(self, pool_id: str, token: str, now: int) -> Optional[PoolAggregate]:
        pool = self._store.pool(pool_id, token)

        if pool.last_funding_time is None:
            self._put(pool.model_copy(update={"last_funding_time": self._floor_to_interval(now)}))
            return None

        if self._elapsed_intervals(pool.last_funding_time, now) == 0:
            return None

        rate = self.next_funding_rate(pool, now)
        updated = pool.model_copy(
            update={
                "cumulative_funding_index": pool.cumulative_funding_index + rate,
                "last_funding_time": self._floor_to_interval(now),
            }
        )
        self._put(updated)
        logger.debug(
            "Funding advanced %s/%s: +%d -> %d",
            pool_id,
            token,
            rate,
            updated.cumulative_funding_index,
        )
        return updated

    def _advance_skew(self, pool_id: str, token: str, now: int) -> Optional[PoolAggregate]:
        pool = self._store.pool(pool_id, token)

        if pool.last_skew_time is None:
            self._put(pool.model_copy(update={"last_skew_time": self._floor_to_interval(now)}))
            return None

        if self._elapsed_intervals(pool.last_skew_time, now) == 0:
            return None

        long_rate, short_rate = self.next_skew_rate(pool, now)
        updated = pool.model_copy(
            update={
                "cumulative_long_skew_index": pool.cumulative_long_skew_index + long_rate,
                "cumulative_short_skew_index": pool.cumulative_short_skew_index + short_rate,
                "last_skew_time": self._floor_to_interval(now),
            }
        )
        self._put(updated)
        return updated

    def _put(self, pool: PoolAggregate) -> None:
        self._store.pools.put((pool.pool_id, pool.token), pool)

    @staticmethod
    def _event(pool: PoolAggregate) -> AccrualUpdated:
        return AccrualUpdated(
            pool_id=pool.pool_id,
            token=pool.token,
            cumulative_funding_index=pool.cumulative_funding_index,
            cumulative_long_skew_index=pool.cumulative_long_skew_index,
            cumulative_short_skew_index=pool.cumulative_short_skew_index,
        )
