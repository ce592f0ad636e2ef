"""Per-operation mutual-exclusion guard.

Мутирующие точки входа ledger выполняются под guard'ом на всё время
операции. Повторный вход (например, из side-effect перевода активов)
отклоняется ReentrancyError. Guard освобождается на любом выходе,
включая исключение.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from src.core.errors import ReentrancyError


class OperationGuard:
    def __init__(self) -> None:
        self._active: Optional[str] = None

    @property
    def active(self) -> Optional[str]:
        """Имя выполняющейся операции (None если guard свободен)."""
        return self._active

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if self._active is not None:
            raise ReentrancyError(
                f"re-entrant call to {operation} while {self._active} is in progress"
            )
        self._active = operation
        try:
            yield
        finally:
            self._active = None
