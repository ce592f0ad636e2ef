"""
Ledger Errors — Таксономия ошибок ядра

Все ошибки наследуются от LedgerError. Любая ошибка внутри операции
(increase/decrease/liquidate) означает полный откат: ни одна промежуточная
запись не становится наблюдаемой.

Группы:
- ValidationError: запрос отклонён до любого изменения состояния
- InsufficientFunds: не хватает коллатерала или ликвидности пула
- PositionRejected: итоговая позиция нарушает лимиты
- ArithmeticUnderflow: агрегат ушёл бы в минус (нарушение инварианта)
- NotLiquidatable / EmptyPosition: предусловия ликвидации не выполнены
"""


class LedgerError(Exception):
    """Базовая ошибка ядра."""


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(LedgerError):
    """Некорректный запрос: неизвестная пара, закрытый рынок, плохие поля."""


class Unauthorized(ValidationError):
    """У вызывающего нет capability для операции."""


class MarketClosed(ValidationError):
    """Торговая сессия для index asset закрыта."""


class UnknownToken(ValidationError):
    """Токен не сконфигурирован в пуле."""


class InvalidTokenPair(ValidationError):
    """Комбинация collateral/index/side не разрешена."""


# =============================================================================
# FUNDS
# =============================================================================


class InsufficientFunds(LedgerError):
    """Не хватает средств (пул или позиция)."""


class InsufficientCollateralForFees(InsufficientFunds):
    """Коллатерал после депозита не покрывает комиссии."""


# =============================================================================
# POSITION LIMITS
# =============================================================================


class PositionRejected(LedgerError):
    """Итоговая позиция нарушает лимиты."""


class InvalidPositionSize(PositionRejected):
    pass


class CollateralExceedsSize(PositionRejected):
    pass


class CollateralBelowMinimum(PositionRejected):
    pass


class LeverageExceeded(PositionRejected):
    pass


class PositionLiquidatable(PositionRejected):
    """Позиция после операции сразу подлежала бы ликвидации."""


# =============================================================================
# INVARIANTS / LIQUIDATION / GUARD
# =============================================================================


class ArithmeticUnderflow(LedgerError):
    """
    Уменьшение агрегата ниже нуля.

    Нарушение инварианта: значение никогда не обрезается до нуля молча,
    операция целиком отклоняется.
    """


class NotLiquidatable(LedgerError):
    pass


class EmptyPosition(LedgerError):
    pass


class ReentrancyError(LedgerError):
    """Повторный вход в мутирующую операцию во время активной операции."""


class UnitMismatchError(LedgerError, TypeError):
    """Арифметика над значениями разных единиц/масштабов без конвертера."""
