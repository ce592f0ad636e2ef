"""Capabilities — явная таблица полномочий операции.

Решения governance приходят в ядро уже вычисленными: таблица
caller → множество Capability передаётся в каждую операцию через
OperationContext и не читается из глобального состояния.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping

from src.core.errors import Unauthorized


class Capability(str, Enum):
    """Полномочие вызывающего."""

    INCREASE_POSITION = "increase_position"
    DECREASE_POSITION = "decrease_position"
    LIQUIDATE_POSITION = "liquidate_position"
    # Роутер/плагин, действующий от имени аккаунта
    ACT_FOR_ACCOUNT = "act_for_account"
    MANAGE_LIQUIDITY = "manage_liquidity"


TRADER_CAPABILITIES: FrozenSet[Capability] = frozenset(
    {Capability.INCREASE_POSITION, Capability.DECREASE_POSITION}
)


@dataclass(frozen=True)
class CapabilityTable:
    """Immutable таблица caller → capabilities."""

    grants: Mapping[str, FrozenSet[Capability]] = field(default_factory=dict)

    @classmethod
    def build(cls, grants: Mapping[str, Iterable[Capability]]) -> "CapabilityTable":
        table: Dict[str, FrozenSet[Capability]] = {
            caller: frozenset(caps) for caller, caps in grants.items()
        }
        return cls(grants=table)

    def allows(self, caller: str, capability: Capability) -> bool:
        return capability in self.grants.get(caller, frozenset())


@dataclass(frozen=True)
class OperationContext:
    """
    Контекст одной операции ledger.

    Attributes:
        caller: Идентификатор вызывающего
        now: Текущее время операции (Unix timestamp, секунды)
        capabilities: Таблица полномочий
    """

    caller: str
    now: int
    capabilities: CapabilityTable

    def __post_init__(self) -> None:
        if self.now < 0:
            raise ValueError(f"now must be non-negative, got {self.now}")

    def require(self, capability: Capability) -> None:
        """
        Raises:
            Unauthorized: Если у caller нет capability
        """
        if not self.capabilities.allows(self.caller, capability):
            raise Unauthorized(f"{self.caller} lacks capability {capability.value}")

    def require_account(self, account: str, capability: Capability) -> None:
        """Caller должен обладать capability и быть владельцем либо роутером."""
        self.require(capability)
        if self.caller != account and not self.capabilities.allows(
            self.caller, Capability.ACT_FOR_ACCOUNT
        ):
            raise Unauthorized(f"{self.caller} cannot act for account {account}")
