from decimal import Decimal

import pytest

from services.errors import ValidationReason
from services.validation import minimum_acceptable, to_minor_units, validate_amount

INCREMENT = Decimal("5")


@pytest.mark.parametrize("start_price", ["0", "12", "20", "99.50"])
def test_minimum_without_bids_is_start_price(start_price) -> None:
    assert minimum_acceptable(Decimal(start_price), None, INCREMENT) == Decimal(start_price)


@pytest.mark.parametrize("high", ["20", "25", "101.50"])
def test_minimum_with_high_bid_adds_increment(high) -> None:
    assert minimum_acceptable(Decimal("20"), Decimal(high), INCREMENT) == Decimal(high) + INCREMENT


def test_first_bid_equal_to_start_price_is_valid() -> None:
    minimum = minimum_acceptable(Decimal("20"), None, INCREMENT)
    assert validate_amount(Decimal("20"), minimum, INCREMENT) is None


def test_bid_equal_to_existing_bid_is_rejected() -> None:
    minimum = minimum_acceptable(Decimal("20"), Decimal("20"), INCREMENT)
    assert validate_amount(Decimal("20"), minimum, INCREMENT) == ValidationReason.BELOW_MINIMUM


def test_below_minimum() -> None:
    assert validate_amount(Decimal("22"), Decimal("25"), INCREMENT) == ValidationReason.BELOW_MINIMUM


def test_not_on_increment() -> None:
    assert validate_amount(Decimal("27"), Decimal("25"), INCREMENT) == ValidationReason.NOT_ON_INCREMENT
    assert validate_amount(Decimal("25.01"), Decimal("25"), INCREMENT) == ValidationReason.NOT_ON_INCREMENT


def test_jump_bids_on_increment_are_valid() -> None:
    assert validate_amount(Decimal("40"), Decimal("25"), INCREMENT) is None
    assert validate_amount(Decimal("40.00"), Decimal("25.00"), INCREMENT) is None


def test_grid_is_relative_to_start_price() -> None:
    # Стартовая цена 12: допустимы 12, 17, 22...
    assert validate_amount(Decimal("17"), Decimal("12"), INCREMENT) is None
    assert validate_amount(Decimal("20"), Decimal("12"), INCREMENT) == ValidationReason.NOT_ON_INCREMENT


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_non_positive(amount) -> None:
    assert validate_amount(Decimal(amount), Decimal("0"), INCREMENT) == ValidationReason.NON_POSITIVE


def test_fractional_cents_are_rejected() -> None:
    assert to_minor_units(Decimal("5.001")) is None
    assert to_minor_units(Decimal("5.00")) == 500
    assert validate_amount(Decimal("25.005"), Decimal("25"), INCREMENT) == ValidationReason.NOT_ON_INCREMENT
