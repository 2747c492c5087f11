"""
Unit tests for actual-vs-contract variance.

Sign convention: positive = over contract, negative = under, contract
quantity zero -> undefined (None).
"""

from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from procurement_kernel.domain.variance import (
    VarianceDirection,
    compute_variance,
    variance_amount,
    variance_direction,
    variance_percent,
)

quantities = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("1000000"), places=3)
prices = st.decimals(min_value=Decimal("0"), max_value=Decimal("10000000"), places=0)


class TestVariancePercent:
    def test_over_contract(self):
        assert variance_percent(Decimal("100"), Decimal("120")) == Decimal("20.0000")

    def test_under_contract(self):
        assert variance_percent(Decimal("100"), Decimal("75")) == Decimal("-25.0000")

    def test_on_target(self):
        assert variance_percent(Decimal("100"), Decimal("100")) == Decimal("0")

    def test_zero_contract_quantity_is_undefined(self):
        assert variance_percent(Decimal("0"), Decimal("5")) is None

    def test_no_actual_recorded(self):
        assert variance_percent(Decimal("10"), None) is None

    def test_rounded_to_four_places(self):
        assert variance_percent(Decimal("3"), Decimal("4")) == Decimal("33.3333")


class TestVarianceAmount:
    def test_amount_follows_quantity_delta(self):
        assert variance_amount(Decimal("95000"), Decimal("100"), Decimal("110")) == Decimal("950000")
        assert variance_amount(Decimal("95000"), Decimal("100"), Decimal("90")) == Decimal("-950000")

    def test_amount_defined_for_zero_contract(self):
        assert variance_amount(Decimal("1000"), Decimal("0"), Decimal("2")) == Decimal("2000")


class TestComputeVariance:
    def test_full_result(self):
        result = compute_variance(Decimal("18000"), Decimal("500"), Decimal("550"))
        assert result.percent == Decimal("10.0000")
        assert result.amount == Decimal("900000")
        assert result.direction == VarianceDirection.OVER

    def test_zero_contract_direction_undefined(self):
        result = compute_variance(Decimal("1"), Decimal("0"), Decimal("1"))
        assert result.direction == VarianceDirection.UNDEFINED


class TestSignConvention:
    @given(contract=quantities, actual=quantities)
    def test_sign_matches_direction_of_deviation(self, contract, actual):
        percent = variance_percent(contract, actual)
        if actual > contract:
            assert percent >= 0
        elif actual < contract:
            assert percent <= 0
        else:
            assert percent == 0

    @given(contract=quantities, actual=quantities, price=prices)
    def test_amount_sign_agrees_with_percent(self, contract, actual, price):
        result = compute_variance(price, contract, actual)
        if result.amount > 0:
            assert result.direction in (VarianceDirection.OVER, VarianceDirection.ON_TARGET)
        if result.amount < 0:
            assert result.direction in (VarianceDirection.UNDER, VarianceDirection.ON_TARGET)

    def test_direction_of_none(self):
        assert variance_direction(None) == VarianceDirection.UNDEFINED
