"""
Unit tests for Money, decimal coercion and rounding.

Verifies:
- Float prohibition
- Currency validation and normalization
- Same-currency arithmetic
- to_decimal() coercion of importer values
"""

from decimal import Decimal

import pytest

from procurement_kernel.db.types import (
    InvalidCurrencyError,
    is_valid_currency,
    round_money,
    round_percent,
    validate_currency,
)
from procurement_kernel.domain.values import Money, commission_due, to_decimal


class TestMoney:
    def test_of_accepts_str_and_int(self):
        assert Money.of("1500000", "VND").amount == Decimal("1500000")
        assert Money.of(1500000, "vnd").currency == "VND"

    def test_float_amount_rejected(self):
        with pytest.raises(TypeError):
            Money(amount=1.5, currency="USD")

    def test_unknown_currency_rejected(self):
        with pytest.raises(InvalidCurrencyError):
            Money.of("1", "XYZ")

    def test_addition_same_currency(self):
        total = Money.of("20000000", "VND") + Money.of("30000000", "VND")
        assert total == Money.of("50000000", "VND")

    def test_mixed_currency_addition_raises(self):
        with pytest.raises(ValueError, match="different currencies"):
            Money.of("1", "VND") + Money.of("1", "USD")

    def test_multiplication_by_quantity(self):
        assert Money.of("95000", "VND") * Decimal("100") == Money.of("9500000", "VND")
        assert 3 * Money.of("2.50", "USD") == Money.of("7.50", "USD")

    def test_round_uses_currency_minor_units(self):
        assert Money.of("1234.5", "VND").round().amount == Decimal("1235")
        assert Money.of("10.005", "USD").round().amount == Decimal("10.01")

    def test_comparison(self):
        assert Money.of("1", "VND") < Money.of("2", "VND")
        assert Money.zero("VND").is_zero
        assert Money.of("-1", "VND").is_negative


class TestToDecimal:
    @pytest.mark.parametrize("value,expected", [
        ("100", Decimal("100")),
        (" 12.5 ", Decimal("12.5")),
        (7, Decimal("7")),
        (Decimal("0.001"), Decimal("0.001")),
    ])
    def test_accepts_importer_values(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize("value", [1.5, True, "abc", "NaN", "Infinity", ""])
    def test_rejects_bad_values(self, value):
        with pytest.raises(ValueError):
            to_decimal(value, "amount")


class TestRounding:
    def test_round_money_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(Decimal("2.5"), 0) == Decimal("3")

    def test_round_percent_four_places(self):
        assert round_percent(Decimal("33.333333")) == Decimal("33.3333")


class TestCurrency:
    def test_validate_normalizes(self):
        assert validate_currency(" usd ") == "USD"

    def test_is_valid_currency(self):
        assert is_valid_currency("VND")
        assert not is_valid_currency("ZZZ")
        assert not is_valid_currency("")


class TestCommissionDue:
    @pytest.mark.parametrize("total,expected", [
        ("50000000", "500000"),
        ("48000000", "480000"),
        ("12345678", "124000"),
        ("50000", "1000"),
        ("1", "1000"),
    ])
    def test_one_percent_rounded_up_to_thousands(self, total, expected):
        due = commission_due(Decimal(total), Decimal("0.01"), Decimal("1000"))
        assert due == Decimal(expected)
