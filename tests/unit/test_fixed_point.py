"""
Тесты для fixed_point и position_math

Проверяет:
1. mul_div / apply_bps / checked_sub
2. get_delta для LONG и SHORT
3. Delta-нейтральность next_average_price (PnL не создаётся формулой)
4. Среднюю цену агрегата шортов
"""

import pytest

from src.core.errors import ArithmeticUnderflow
from src.core.math.fixed_point import (
    PRICE_PRECISION,
    apply_bps,
    checked_sub,
    mul_div,
)
from src.core.math.position_math import (
    get_delta,
    leverage_bps,
    next_average_price,
    next_global_short_average_price,
    signed_pnl,
)

P = PRICE_PRECISION


class TestFixedPoint:
    """Целочисленные примитивы"""

    def test_mul_div_floors(self) -> None:
        assert mul_div(10, 3, 4) == 7

    def test_mul_div_zero_denominator(self) -> None:
        with pytest.raises(ValueError, match="division by zero"):
            mul_div(1, 1, 0)
        assert mul_div(1, 1, 0, fallback=0) == 0

    def test_mul_div_rejects_negative(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            mul_div(-1, 1, 1)

    def test_apply_bps(self) -> None:
        assert apply_bps(1000, 10) == 1
        assert apply_bps(999, 10) == 0

    def test_checked_sub(self) -> None:
        assert checked_sub(5, 5) == 0
        with pytest.raises(ArithmeticUnderflow, match="reserved"):
            checked_sub(1, 2, "reserved")


class TestDelta:
    """Нереализованный PnL"""

    def test_long_profit(self) -> None:
        """LONG 1000 от 100 до 110 = +100"""
        assert get_delta(1000 * P, 100 * P, 110 * P, True) == (True, 100 * P)

    def test_long_loss(self) -> None:
        """LONG 1000 от 100 до 90.4 = -96"""
        has_profit, delta = get_delta(1000 * P, 100 * P, 904 * P // 10, True)
        assert not has_profit
        assert delta == 96 * P

    def test_short_profit(self) -> None:
        """SHORT 1000 от 100 до 90 = +100"""
        assert get_delta(1000 * P, 100 * P, 90 * P, False) == (True, 100 * P)

    def test_signed_pnl(self) -> None:
        assert signed_pnl(1000 * P, 100 * P, 95 * P, True) == -50 * P
        assert signed_pnl(1000 * P, 100 * P, 95 * P, False) == 50 * P

    def test_zero_average_price_rejected(self) -> None:
        with pytest.raises(ValueError, match="average_price"):
            get_delta(1000 * P, 0, 100 * P, True)

    def test_leverage_bps(self) -> None:
        assert leverage_bps(1000 * P, 100 * P) == 100_000
        with pytest.raises(ValueError):
            leverage_bps(1000 * P, 0)


class TestAveragePrice:
    """Delta-нейтральное обновление средней цены"""

    @pytest.mark.parametrize(
        "is_long,next_price",
        [
            (True, 110 * P),
            (True, 93 * P),
            (False, 110 * P),
            (False, 93 * P),
        ],
    )
    def test_pnl_unchanged_by_update(self, is_long: bool, next_price: int) -> None:
        """PnL по цене исполнения до и после обновления совпадает"""
        size, average, size_delta = 1000 * P, 100 * P, 700 * P

        before = signed_pnl(size, average, next_price, is_long)
        new_average = next_average_price(size, average, next_price, size_delta, is_long)
        after = signed_pnl(size + size_delta, new_average, next_price, is_long)

        # Округление средней цены вниз даёт погрешность в младших разрядах
        assert abs(after - before) <= P // 10**6

    def test_first_fill_sets_price(self) -> None:
        assert next_average_price(0, 0, 123 * P, 1000 * P, True) == 123 * P

    def test_same_price_keeps_average(self) -> None:
        assert next_average_price(1000 * P, 100 * P, 100 * P, 500 * P, True) == 100 * P

    def test_sequence_of_increases(self) -> None:
        """Размер = сумма size_delta, PnL сохраняется на каждом шаге"""
        size, average = 0, 0
        fills = [(100 * P, 500 * P), (105 * P, 300 * P), (98 * P, 200 * P)]
        for price, size_delta in fills:
            if size:
                before = signed_pnl(size, average, price, True)
            average = next_average_price(size, average, price, size_delta, True)
            if size:
                after = signed_pnl(size + size_delta, average, price, True)
                assert abs(after - before) <= P // 10**6
            size += size_delta

        assert size == 1000 * P


class TestGlobalShortAveragePrice:
    def test_empty_aggregate_takes_fill_price(self) -> None:
        assert next_global_short_average_price(0, 0, 100 * P, 1000 * P) == 100 * P

    def test_equal_fill_keeps_average(self) -> None:
        assert next_global_short_average_price(1000 * P, 100 * P, 100 * P, 1000 * P) == 100 * P

    def test_matches_position_formula(self) -> None:
        assert next_global_short_average_price(
            1000 * P, 100 * P, 90 * P, 500 * P
        ) == next_average_price(1000 * P, 100 * P, 90 * P, 500 * P, False)
