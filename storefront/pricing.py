"""
Расчёт скидки по промокоду.

Все суммы в копейках (целые числа). Общий код для сервера (сверка суммы
платежа) и клиента оформления заказа.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol


class Discount(Protocol):
    """Форма скидки промокода: процент или фиксированная сумма."""

    discount_percent: float | None
    discount_amount: int | None


def _percent_discount(base_amount: int, percent: float) -> int:
    raw = Decimal(base_amount) * Decimal(str(percent)) / Decimal(100)
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def calculate_final_amount(base_amount: int, promo: Discount | None = None) -> int:
    """
    Итоговая сумма к оплате.

    Процент имеет приоритет над фиксированной суммой, если заданы оба.
    Округляется сама скидка (half-up), итог не бывает меньше нуля.

    Args:
        base_amount: Сумма без скидки, копейки
        promo: Применённый промокод или None

    Returns:
        Сумма к оплате, копейки
    """
    if promo is None:
        return base_amount

    percent = promo.discount_percent or 0
    amount = promo.discount_amount or 0

    if percent > 0:
        discount = _percent_discount(base_amount, percent)
    elif amount > 0:
        discount = amount
    else:
        discount = 0

    return max(0, base_amount - discount)


def calculate_discount(base_amount: int, promo: Discount | None = None) -> int:
    """Фактически предоставленная скидка (с учётом ограничения нулём)."""
    return base_amount - calculate_final_amount(base_amount, promo)


def format_discount(promo: Discount) -> str:
    """Подпись скидки для интерфейса: -15%, -500 ₽ или просто «Скидка»."""
    percent = promo.discount_percent or 0
    amount = promo.discount_amount or 0
    if percent > 0:
        return f"-{percent:g}%"
    if amount > 0:
        return f"-{format_rubles(amount)} ₽"
    return "Скидка"


def format_rubles(amount: int) -> str:
    """Копейки -> рубли с пробелом между разрядами, без нулевых копеек."""
    rubles, kopecks = divmod(amount, 100)
    text = f"{rubles:,}".replace(",", " ")
    if kopecks:
        text += f",{kopecks:02d}"
    return text


def to_yookassa_value(amount: int) -> str:
    """Копейки -> строка рублей с двумя знаками ("1099.00")."""
    rubles, kopecks = divmod(amount, 100)
    return f"{rubles}.{kopecks:02d}"
