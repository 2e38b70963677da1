from dataclasses import dataclass

import pytest

from storefront.payments.schemas import AppliedPromo
from storefront.pricing import (
    calculate_discount,
    calculate_final_amount,
    format_discount,
    format_rubles,
    to_yookassa_value,
)


@dataclass
class Promo:
    discount_percent: float | None = 0
    discount_amount: int | None = 0


def test_no_promo_keeps_base_amount():
    assert calculate_final_amount(169900) == 169900
    assert calculate_final_amount(169900, None) == 169900


def test_percent_discount_is_rounded_half_up():
    assert calculate_final_amount(169900, Promo(discount_percent=15)) == 144415
    # 999 * 0.5 = 499.5 -> 500
    assert calculate_final_amount(999, Promo(discount_percent=50)) == 499
    # 1 * 0.5 = 0.5 -> 1
    assert calculate_final_amount(1, Promo(discount_percent=50)) == 0


def test_fractional_percent():
    # 10000 * 12.5% = 1250
    assert calculate_final_amount(10000, Promo(discount_percent=12.5)) == 8750


def test_fixed_amount_discount():
    assert calculate_final_amount(109900, Promo(discount_amount=50000)) == 59900


def test_fixed_amount_never_goes_below_zero():
    assert calculate_final_amount(50000, Promo(discount_amount=999999)) == 0
    assert calculate_discount(50000, Promo(discount_amount=999999)) == 50000


def test_percent_wins_over_fixed_amount():
    promo = Promo(discount_percent=10, discount_amount=50000)
    assert calculate_final_amount(100000, promo) == 90000


def test_hundred_percent_is_free():
    assert calculate_final_amount(149900, Promo(discount_percent=100)) == 0


def test_empty_discount_changes_nothing():
    assert calculate_final_amount(149900, Promo()) == 149900
    assert calculate_final_amount(149900, Promo(None, None)) == 149900


def test_works_with_applied_promo_model():
    promo = AppliedPromo(id="p1", code="SPRING15", discount_percent=15, discount_amount=0)
    assert calculate_final_amount(169900, promo) == 144415
    assert calculate_discount(169900, promo) == 25485


@pytest.mark.parametrize("base", [0, 1, 99, 149900, 10_000_000])
@pytest.mark.parametrize(
    "promo",
    [Promo(discount_percent=p) for p in (1, 15, 33.3, 99)]
    + [Promo(discount_amount=a) for a in (1, 500, 150000)],
)
def test_final_amount_bounds(base, promo):
    final = calculate_final_amount(base, promo)
    assert 0 <= final <= base
    # расчёт детерминирован
    assert calculate_final_amount(base, promo) == final


def test_format_discount():
    assert format_discount(Promo(discount_percent=15)) == "-15%"
    assert format_discount(Promo(discount_percent=12.5)) == "-12.5%"
    assert format_discount(Promo(discount_amount=50000)) == "-500 ₽"
    assert format_discount(Promo()) == "Скидка"


def test_format_rubles():
    assert format_rubles(149900) == "1 499"
    assert format_rubles(144415) == "1 444,15"
    assert format_rubles(0) == "0"


def test_to_yookassa_value():
    assert to_yookassa_value(109900) == "1099.00"
    assert to_yookassa_value(144415) == "1444.15"
    assert to_yookassa_value(5) == "0.05"
