"""Tests for the Decimal parsing and rounding helpers in db.types."""

from decimal import Decimal

import pytest

from docpost_kernel.db.types import in_storage_range, round_money, to_decimal


@pytest.mark.parametrize(
    "value,expected",
    [
        ("1.234,50 kr", Decimal("1234.50")),
        ("1,234.50", Decimal("1234.50")),
        ("12,5", Decimal("12.5")),
        (7, Decimal("7")),
        (2.5, Decimal("2.5")),
        ("9" * 29, Decimal("9" * 29)),
    ],
)
def test_to_decimal_accepts(value, expected):
    assert to_decimal(value) == expected


@pytest.mark.parametrize(
    "value",
    [None, True, "", "n/a", "-", "9" * 30, Decimal("1E+29"), 1e40, float("inf"), float("nan")],
)
def test_to_decimal_rejects(value):
    assert to_decimal(value) is None


def test_storage_range_boundary():
    """Numeric(38, 9) holds 29 integer digits."""
    assert in_storage_range(Decimal("9" * 29 + ".999999999"))
    assert not in_storage_range(Decimal("1" + "0" * 29))
    assert in_storage_range(Decimal("0E-50"))
    assert not in_storage_range(Decimal("Infinity"))


def test_round_money_half_up():
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("-2.345")) == Decimal("-2.35")


def test_round_money_wider_than_default_context():
    """Values past 28 significant digits still round instead of raising."""
    assert round_money(Decimal("9" * 28 + ".125")) == Decimal("9" * 28 + ".13")
