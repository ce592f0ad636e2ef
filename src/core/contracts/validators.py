"""
JSON Schema Contract Validators

Валидация входящих запросов ledger до построения типизированных моделей.
Использует библиотеку jsonschema для проверки соответствия данных схемам.

Схемы (src/core/contracts/schema/):
- increase_request.json
- decrease_request.json
- liquidate_request.json

parse_* функции: schema-валидация → pydantic модель запроса.
Любое несоответствие выбрасывается как доменный ValidationError, чтобы
вызывающий код обрабатывал один тип ошибки входных данных.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterator

import jsonschema
from jsonschema import Draft202012Validator
from jsonschema import ValidationError as SchemaValidationError
from pydantic import ValidationError as ModelValidationError

from src.core.domain.requests import (
    DecreasePositionRequest,
    IncreasePositionRequest,
    LiquidatePositionRequest,
)
from src.core.errors import ValidationError


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы поставляются вместе с пакетом в contracts/schema/.
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'increase_request')

        Returns:
            Загруженная схема как dict

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если схема не проходит meta-validation
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}")

        self._schemas[schema_name] = schema
        return schema


# Глобальный экземпляр загрузчика
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """Валидация данных против одной JSON Schema."""

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Raises:
            jsonschema.ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]) -> Iterator[SchemaValidationError]:
        return self.validator.iter_errors(data)


class IncreaseRequestValidator(ContractValidator):
    def __init__(self):
        super().__init__("increase_request")


class DecreaseRequestValidator(ContractValidator):
    def __init__(self):
        super().__init__("decrease_request")


class LiquidateRequestValidator(ContractValidator):
    def __init__(self):
        super().__init__("liquidate_request")


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validate_increase_request(data: Dict[str, Any]) -> None:
    IncreaseRequestValidator().validate(data)


def validate_decrease_request(data: Dict[str, Any]) -> None:
    DecreaseRequestValidator().validate(data)


def validate_liquidate_request(data: Dict[str, Any]) -> None:
    LiquidateRequestValidator().validate(data)


def _parse(validator: ContractValidator, model: type, data: Dict[str, Any]):
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        details = "; ".join(
            f"{'/'.join(str(p) for p in e.absolute_path) or '<root>'}: {e.message}"
            for e in errors
        )
        raise ValidationError(f"{validator.schema_name} contract violated: {details}")
    try:
        return model(**data)
    except ModelValidationError as e:
        raise ValidationError(f"{validator.schema_name} rejected: {e}") from e


def parse_increase_request(data: Dict[str, Any]) -> IncreasePositionRequest:
    """
    Payload → IncreasePositionRequest.

    Raises:
        ValidationError: Если payload не соответствует контракту
    """
    return _parse(IncreaseRequestValidator(), IncreasePositionRequest, data)


def parse_decrease_request(data: Dict[str, Any]) -> DecreasePositionRequest:
    """
    Payload → DecreasePositionRequest.

    Raises:
        ValidationError: Если payload не соответствует контракту
    """
    return _parse(DecreaseRequestValidator(), DecreasePositionRequest, data)


def parse_liquidate_request(data: Dict[str, Any]) -> LiquidatePositionRequest:
    """
    Payload → LiquidatePositionRequest.

    Raises:
        ValidationError: Если payload не соответствует контракту
    """
    return _parse(LiquidateRequestValidator(), LiquidatePositionRequest, data)
