"""LedgerStore — хранилище позиций и агрегатов пула.

Keyed in-memory хранилище с точным поиском по ключу (без range-запросов):
- positions: PositionKey.id → Position
- pools: (pool_id, token) → PoolAggregate
- claimable: (account, pool_id, token) → TokenAmount (skew rebates)
- referral_rebates: (referrer, pool_id, token) → TokenAmount

Атомарность: все записи выполняются только внутри transaction().
Каждая первая запись ключа журналируется; при исключении журнал
откатывается в обратном порядке и ни одна запись не остаётся видимой.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generic, Hashable, Iterator, List, Optional, Tuple, TypeVar

from src.core.domain.pool import PoolAggregate
from src.core.domain.position import Position
from src.core.domain.units import TokenAmount
from src.core.errors import UnknownToken

V = TypeVar("V")

_MISSING = object()


class _Table(Generic[V]):
    """Словарь с журналированием записей через владельца-хранилище."""

    def __init__(self, store: "LedgerStore", name: str) -> None:
        self._store = store
        self._name = name
        self._rows: Dict[Hashable, V] = {}

    def get(self, key: Hashable) -> Optional[V]:
        return self._rows.get(key)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"_Table({self._name}, rows={len(self._rows)})"

    def items(self) -> List[Tuple[Hashable, V]]:
        return list(self._rows.items())

    def put(self, key: Hashable, value: V) -> None:
        self._store._record(self, key)
        self._rows[key] = value

    def delete(self, key: Hashable) -> None:
        self._store._record(self, key)
        self._rows.pop(key, None)

    def _restore(self, key: Hashable, previous: Any) -> None:
        if previous is _MISSING:
            self._rows.pop(key, None)
        else:
            self._rows[key] = previous


class LedgerStore:
    def __init__(self) -> None:
        self.positions: _Table[Position] = _Table(self, "positions")
        self.pools: _Table[PoolAggregate] = _Table(self, "pools")
        self.claimable: _Table[TokenAmount] = _Table(self, "claimable")
        self.referral_rebates: _Table[TokenAmount] = _Table(self, "referral_rebates")

        self._journal: Optional[List[Tuple[_Table, Hashable, Any]]] = None
        self._touched: set = set()

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    def _record(self, table: _Table, key: Hashable) -> None:
        if self._journal is None:
            raise RuntimeError("ledger store writes require an active transaction")
        marker = (id(table), key)
        if marker in self._touched:
            return
        self._touched.add(marker)
        self._journal.append((table, key, table._rows.get(key, _MISSING)))

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        """
        Атомарная транзакция.

        Raises:
            RuntimeError: Если транзакция уже активна
        """
        if self._journal is not None:
            raise RuntimeError("nested ledger store transaction")
        self._journal = []
        self._touched = set()
        try:
            yield self
        except BaseException:
            for table, key, previous in reversed(self._journal):
                table._restore(key, previous)
            raise
        finally:
            self._journal = None
            self._touched = set()

    def touched_pools(self) -> List[PoolAggregate]:
        """Агрегаты пула, изменённые в текущей транзакции."""
        if self._journal is None:
            return []
        result = []
        for table, key, _ in self._journal:
            if table is self.pools:
                pool = self.pools.get(key)
                if pool is not None:
                    result.append(pool)
        return result

    # -------------------------------------------------------------------------
    # Чтение
    # -------------------------------------------------------------------------

    def pool(self, pool_id: str, token: str) -> PoolAggregate:
        """
        Raises:
            UnknownToken: Если агрегат не сконфигурирован
        """
        pool = self.pools.get((pool_id, token))
        if pool is None:
            raise UnknownToken(f"token {token} is not configured in pool {pool_id}")
        return pool

    def position(self, key_id: str) -> Optional[Position]:
        return self.positions.get(key_id)
