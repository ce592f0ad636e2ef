"""
Contract Validation Module

Модуль для валидации JSON контрактов запросов ledger.
"""

from .validators import (
    ContractValidator,
    DecreaseRequestValidator,
    IncreaseRequestValidator,
    LiquidateRequestValidator,
    SchemaLoader,
    parse_decrease_request,
    parse_increase_request,
    parse_liquidate_request,
    validate_decrease_request,
    validate_increase_request,
    validate_liquidate_request,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "IncreaseRequestValidator",
    "DecreaseRequestValidator",
    "LiquidateRequestValidator",
    # Functions
    "validate_increase_request",
    "validate_decrease_request",
    "validate_liquidate_request",
    "parse_increase_request",
    "parse_decrease_request",
    "parse_liquidate_request",
]
