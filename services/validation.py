"""Проверка суммы ставки"""
from decimal import Decimal
from typing import Optional
from services.errors import ValidationReason


def to_minor_units(amount: Decimal) -> Optional[int]:
    """Перевести сумму в центы. None, если у суммы есть доли цента"""
    cents = Decimal(amount) * 100
    if cents != cents.to_integral_value():
        return None
    return int(cents)


def minimum_acceptable(
    start_price: Decimal,
    current_high: Optional[Decimal],
    increment: Decimal
) -> Decimal:
    """Минимальная допустимая ставка.

    Без ставок минимум равен стартовой цене: первая ставка может быть
    ровно стартовой. Дальше каждая ставка должна превышать текущую
    максимальную хотя бы на шаг.
    """
    if current_high is None:
        return Decimal(start_price)
    return Decimal(current_high) + Decimal(increment)


def validate_amount(
    submitted: Decimal,
    minimum: Decimal,
    increment: Decimal
) -> Optional[ValidationReason]:
    """Проверить сумму ставки. Возвращает причину отказа или None.

    Кратность шагу проверяется в центах относительно минимума: минимум
    сам лежит на сетке стартовая цена + k * шаг, поэтому принятые
    суммы всегда остаются на этой сетке.
    """
    submitted = Decimal(submitted)
    if submitted <= 0:
        return ValidationReason.NON_POSITIVE

    if submitted < Decimal(minimum):
        return ValidationReason.BELOW_MINIMUM

    submitted_cents = to_minor_units(submitted)
    minimum_cents = to_minor_units(Decimal(minimum))
    increment_cents = to_minor_units(Decimal(increment))
    if submitted_cents is None or minimum_cents is None:
        return ValidationReason.NOT_ON_INCREMENT
    if increment_cents and (submitted_cents - minimum_cents) % increment_cents != 0:
        return ValidationReason.NOT_ON_INCREMENT

    return None
