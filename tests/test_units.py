"""Tests for minor-unit arithmetic."""

from decimal import Decimal

import pytest

from knowledgedist.units import (
    clamp_percent,
    from_minor,
    percent_of,
    quantize_points,
    to_decimal,
    to_minor,
)


class TestToDecimal:
    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "Infinity", object()])
    def test_invalid_values_fall_back(self, value):
        assert to_decimal(value, fallback=Decimal(7)) == Decimal(7)

    def test_floats_go_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")


class TestMinorUnits:
    def test_to_minor_rounds_half_up(self):
        assert to_minor(Decimal("1.005")) == 101
        assert to_minor(Decimal("1.004")) == 100

    def test_to_minor_never_negative(self):
        assert to_minor(Decimal("-3.50")) == 0

    def test_from_minor_two_places(self):
        assert from_minor(6667) == Decimal("66.67")
        assert str(from_minor(500)) == "5.00"

    def test_quantize_points(self):
        assert quantize_points(Decimal("1.3333")) == Decimal("1.33")
        assert quantize_points(Decimal("2.675")) == Decimal("2.68")


class TestPercentMath:
    @pytest.mark.parametrize(
        "value,expected",
        [(150, Decimal(100)), (-5, Decimal(0)), ("42.5", Decimal("42.5")), ("x", Decimal(0))],
    )
    def test_clamp_percent(self, value, expected):
        assert clamp_percent(value) == expected

    def test_percent_of_floors(self):
        assert percent_of(2000, Decimal(100) / 3) == 666
        assert percent_of(10000, Decimal(20)) == 2000

    def test_percent_of_custom_base(self):
        assert percent_of(10000, Decimal(60), base=Decimal(120)) == 5000

    @pytest.mark.parametrize("amount,percent", [(0, Decimal(50)), (100, Decimal(0)), (-10, Decimal(50))])
    def test_percent_of_zero_cases(self, amount, percent):
        assert percent_of(amount, percent) == 0
