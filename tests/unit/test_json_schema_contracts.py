"""
Tests for JSON Schema Contract Validators

Комплексное тестирование контрактов запросов ledger:
- Валидность самих схем
- Валидация правильных данных
- Детекция нарушений required полей и типов
- Отклонение отрицательных сумм и лишних полей
- parse_* → типизированные модели запросов / доменный ValidationError
"""

import copy

import pytest
from jsonschema import ValidationError as SchemaValidationError

from src.core.contracts import (
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
from src.core.domain import DecreasePositionRequest, IncreasePositionRequest, PositionKey
from src.core.errors import ValidationError

USD = 10**30


# =============================================================================
# FIXTURES - VALID DATA SAMPLES
# =============================================================================


@pytest.fixture
def valid_increase():
    """Валидный increase запрос."""
    return {
        "account": "alice",
        "pool_id": "main",
        "collateral_asset": "USDC",
        "index_asset": "ETH",
        "is_long": True,
        "size_delta": 1000 * USD,
        "collateral_amount": 100 * 10**6,
    }


@pytest.fixture
def valid_decrease():
    """Валидный decrease запрос."""
    return {
        "account": "alice",
        "pool_id": "main",
        "collateral_asset": "USDC",
        "index_asset": "ETH",
        "is_long": False,
        "size_delta": 500 * USD,
        "collateral_delta": 10 * USD,
        "receiver": "alice",
    }


@pytest.fixture
def valid_liquidate():
    """Валидный liquidate запрос."""
    return {
        "account": "alice",
        "pool_id": "main",
        "collateral_asset": "ETH",
        "index_asset": "ETH",
        "is_long": True,
        "fee_receiver": "keeper",
    }


# =============================================================================
# TESTS - SCHEMA LOADING
# =============================================================================


def test_schema_loader_loads_all_schemas():
    """Проверка загрузки всех схем."""
    loader = SchemaLoader()

    for name in ("increase_request", "decrease_request", "liquidate_request"):
        schema = loader.load_schema(name)
        assert schema["additionalProperties"] is False
        assert "account" in schema["required"]


def test_schema_loader_caches_schemas():
    """Проверка кэширования схем."""
    loader = SchemaLoader()

    schema1 = loader.load_schema("increase_request")
    schema2 = loader.load_schema("increase_request")

    # Должен вернуть тот же объект (кэш)
    assert schema1 is schema2


def test_schema_loader_raises_on_missing_schema():
    """Проверка ошибки при отсутствующей схеме."""
    loader = SchemaLoader()

    with pytest.raises(FileNotFoundError):
        loader.load_schema("non_existent_schema")


def test_schema_loader_rejects_missing_directory(tmp_path):
    with pytest.raises(RuntimeError, match="not found"):
        SchemaLoader(tmp_path / "absent")


def test_schema_loader_rejects_invalid_schema(tmp_path):
    """Схема, не проходящая meta-validation, отклоняется."""
    (tmp_path / "broken.json").write_text('{"type": 42}', encoding="utf-8")
    loader = SchemaLoader(tmp_path)

    with pytest.raises(ValueError, match="broken.json"):
        loader.load_schema("broken")


# =============================================================================
# TESTS - INCREASE REQUEST
# =============================================================================


def test_increase_validator_accepts_valid_data(valid_increase):
    validator = IncreaseRequestValidator()
    validator.validate(valid_increase)  # Не должно выбросить исключение
    assert validator.is_valid(valid_increase)


def test_increase_validate_function(valid_increase):
    validate_increase_request(valid_increase)


def test_increase_accepts_deposit_only(valid_increase):
    """size_delta опционален: чистый депозит коллатерала."""
    data = copy.deepcopy(valid_increase)
    del data["size_delta"]

    validate_increase_request(data)


def test_increase_rejects_missing_required_field(valid_increase):
    data = copy.deepcopy(valid_increase)
    del data["index_asset"]

    with pytest.raises(SchemaValidationError) as exc_info:
        validate_increase_request(data)
    assert "'index_asset' is a required property" in str(exc_info.value)


def test_increase_rejects_float_amount(valid_increase):
    """Суммы передаются только целыми числами фиксированной точки."""
    data = copy.deepcopy(valid_increase)
    data["collateral_amount"] = 100.5

    with pytest.raises(SchemaValidationError) as exc_info:
        validate_increase_request(data)
    assert "is not of type 'integer'" in str(exc_info.value)


def test_increase_rejects_negative_size(valid_increase):
    data = copy.deepcopy(valid_increase)
    data["size_delta"] = -1

    with pytest.raises(SchemaValidationError):
        validate_increase_request(data)


def test_increase_rejects_unknown_field(valid_increase):
    data = copy.deepcopy(valid_increase)
    data["leverage"] = 10

    with pytest.raises(SchemaValidationError):
        validate_increase_request(data)


def test_increase_rejects_string_direction(valid_increase):
    data = copy.deepcopy(valid_increase)
    data["is_long"] = "long"

    with pytest.raises(SchemaValidationError):
        validate_increase_request(data)


# =============================================================================
# TESTS - DECREASE REQUEST
# =============================================================================


def test_decrease_validator_accepts_valid_data(valid_decrease):
    validator = DecreaseRequestValidator()
    validator.validate(valid_decrease)
    assert validator.is_valid(valid_decrease)


def test_decrease_validate_function(valid_decrease):
    validate_decrease_request(valid_decrease)


def test_decrease_requires_receiver(valid_decrease):
    data = copy.deepcopy(valid_decrease)
    del data["receiver"]

    with pytest.raises(SchemaValidationError) as exc_info:
        validate_decrease_request(data)
    assert "'receiver' is a required property" in str(exc_info.value)


def test_decrease_rejects_empty_receiver(valid_decrease):
    data = copy.deepcopy(valid_decrease)
    data["receiver"] = ""  # minLength: 1

    with pytest.raises(SchemaValidationError):
        validate_decrease_request(data)


def test_decrease_rejects_negative_collateral_delta(valid_decrease):
    data = copy.deepcopy(valid_decrease)
    data["collateral_delta"] = -USD

    with pytest.raises(SchemaValidationError):
        validate_decrease_request(data)


# =============================================================================
# TESTS - LIQUIDATE REQUEST
# =============================================================================


def test_liquidate_validator_accepts_valid_data(valid_liquidate):
    validator = LiquidateRequestValidator()
    validator.validate(valid_liquidate)
    assert validator.is_valid(valid_liquidate)


def test_liquidate_validate_function(valid_liquidate):
    validate_liquidate_request(valid_liquidate)


def test_liquidate_rejects_size_field(valid_liquidate):
    """Ликвидация всегда по всей позиции: size_delta не принимается."""
    data = copy.deepcopy(valid_liquidate)
    data["size_delta"] = USD

    with pytest.raises(SchemaValidationError):
        validate_liquidate_request(data)


def test_liquidate_requires_fee_receiver(valid_liquidate):
    data = copy.deepcopy(valid_liquidate)
    del data["fee_receiver"]

    with pytest.raises(SchemaValidationError):
        validate_liquidate_request(data)


# =============================================================================
# TESTS - PARSE INTO MODELS
# =============================================================================


def test_parse_increase_builds_model(valid_increase):
    request = parse_increase_request(valid_increase)

    assert isinstance(request, IncreasePositionRequest)
    assert request.size_delta == 1000 * USD
    assert request.collateral_amount == 100 * 10**6
    assert request.key == PositionKey(
        account="alice",
        pool_id="main",
        collateral_asset="USDC",
        index_asset="ETH",
        is_long=True,
    )


def test_parse_increase_defaults_missing_amounts(valid_increase):
    data = copy.deepcopy(valid_increase)
    del data["size_delta"]
    del data["collateral_amount"]

    request = parse_increase_request(data)

    assert request.size_delta == 0
    assert request.collateral_amount == 0


def test_parse_decrease_builds_model(valid_decrease):
    request = parse_decrease_request(valid_decrease)

    assert isinstance(request, DecreasePositionRequest)
    assert request.receiver == "alice"
    assert not request.key.is_long


def test_parse_liquidate_builds_model(valid_liquidate):
    request = parse_liquidate_request(valid_liquidate)

    assert request.fee_receiver == "keeper"
    assert request.key.collateral_asset == "ETH"


def test_parse_raises_domain_error(valid_decrease):
    """Нарушение контракта → доменный ValidationError с путём поля."""
    data = copy.deepcopy(valid_decrease)
    data["size_delta"] = -5

    with pytest.raises(ValidationError, match="decrease_request contract violated") as exc_info:
        parse_decrease_request(data)
    assert "size_delta" in str(exc_info.value)


def test_parse_reports_all_errors(valid_increase):
    """Все нарушения собираются в одно сообщение."""
    data = copy.deepcopy(valid_increase)
    data["account"] = ""
    data["size_delta"] = -1
    data["extra"] = True

    with pytest.raises(ValidationError) as exc_info:
        parse_increase_request(data)

    message = str(exc_info.value)
    assert "account" in message
    assert "size_delta" in message
    assert "<root>" in message


def test_request_model_is_frozen(valid_liquidate):
    request = parse_liquidate_request(valid_liquidate)

    with pytest.raises(Exception):
        request.fee_receiver = "mallory"  # type: ignore[misc]
