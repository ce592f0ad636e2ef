"""
Position Math — PnL и средняя цена позиции

Модуль вычисляет:
- delta: нереализованный PnL позиции в USD (модуль + знак)
- next_average_price: delta-нейтральное обновление средней цены
- next_global_short_average_price: то же на уровне агрегата шортов

Все функции чистые и работают с int в масштабе PRICE_PRECISION (USD и цены).

Delta-нейтральность: новая средняя цена подбирается так, чтобы PnL позиции
по цене исполнения до сделки (старый размер, старая средняя) совпадал с PnL
после сделки (новый размер, новая средняя). Само обновление средней не
создаёт и не уничтожает PnL.

LONG:
    pnl = size * (price - avg) / avg
    new_avg = price * next_size / (next_size + delta)   (в прибыли)
    new_avg = price * next_size / (next_size - delta)   (в убытке)

SHORT:
    pnl = size * (avg - price) / avg
    new_avg = price * next_size / (next_size - delta)   (в прибыли)
    new_avg = price * next_size / (next_size + delta)   (в убытке)
"""

from src.core.math.fixed_point import BASIS_POINTS_DIVISOR


def get_delta(size: int, average_price: int, price: int, is_long: bool) -> tuple[bool, int]:
    """
    Нереализованный PnL позиции.

    Args:
        size: Размер позиции (USD)
        average_price: Средняя цена входа
        price: Текущая цена
        is_long: Направление позиции

    Returns:
        (has_profit, delta) — флаг прибыли и модуль PnL (USD, floor)

    Raises:
        ValueError: Если average_price <= 0
    """
    if average_price <= 0:
        raise ValueError(f"average_price must be positive, got {average_price}")

    price_delta = abs(average_price - price)
    delta = size * price_delta // average_price

    if is_long:
        has_profit = price > average_price
    else:
        has_profit = average_price > price

    return has_profit, delta


def signed_pnl(size: int, average_price: int, price: int, is_long: bool) -> int:
    """PnL со знаком: +delta в прибыли, -delta в убытке."""
    has_profit, delta = get_delta(size, average_price, price, is_long)
    return delta if has_profit else -delta


def next_average_price(
    size: int,
    average_price: int,
    next_price: int,
    size_delta: int,
    is_long: bool,
) -> int:
    """
    Средняя цена после увеличения позиции на size_delta по next_price.

    При size == 0 средняя цена устанавливается равной цене исполнения.

    Args:
        size: Текущий размер (USD)
        average_price: Текущая средняя цена
        next_price: Цена исполнения увеличения
        size_delta: Прирост размера (USD)
        is_long: Направление позиции

    Returns:
        Новая средняя цена
    """
    if size == 0:
        return next_price

    has_profit, delta = get_delta(size, average_price, next_price, is_long)
    next_size = size + size_delta

    if is_long:
        divisor = next_size + delta if has_profit else next_size - delta
    else:
        divisor = next_size - delta if has_profit else next_size + delta

    if divisor <= 0:
        raise ValueError(
            f"average price divisor must be positive: next_size={next_size}, delta={delta}"
        )

    return next_price * next_size // divisor


def next_global_short_average_price(
    global_short_size: int,
    global_short_average_price: int,
    next_price: int,
    size_delta: int,
) -> int:
    """
    Средняя цена агрегата шортов после увеличения на size_delta.

    Та же формула, что для отдельной SHORT позиции, применённая к агрегату:
    PnL шортов пула отслеживается без перебора позиций.
    """
    if global_short_size == 0 or global_short_average_price == 0:
        return next_price

    return next_average_price(
        global_short_size,
        global_short_average_price,
        next_price,
        size_delta,
        is_long=False,
    )


def leverage_bps(size: int, collateral: int) -> int:
    """Плечо size / collateral в basis points (collateral > 0)."""
    if collateral <= 0:
        raise ValueError(f"collateral must be positive, got {collateral}")
    return size * BASIS_POINTS_DIVISOR // collateral
