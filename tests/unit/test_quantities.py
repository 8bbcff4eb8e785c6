import pytest

from plantledger.domain.errors import InvalidQuantity
from plantledger.domain.quantities import (
    UnitPolicy,
    format_quantity,
    is_integer_unit,
    normalize_quantity,
)


class TestNormalize:
    def test_integer_unit_rounds_half_up(self):
        assert normalize_quantity("UN", "2.5") == 3
        assert normalize_quantity("UN", "2.49") == 2

    def test_fractional_unit_keeps_three_decimals(self):
        assert normalize_quantity("KG", "1.23456") == pytest.approx(1.235)
        assert normalize_quantity("KG", "0.0005") == pytest.approx(0.001)

    def test_comma_decimal_separator(self):
        assert normalize_quantity("KG", "1,5") == pytest.approx(1.5)
        assert normalize_quantity("KG", " 12,250 ") == pytest.approx(12.25)

    def test_unit_match_is_case_insensitive(self):
        assert is_integer_unit("un")
        assert not is_integer_unit("KG")

    @pytest.mark.parametrize("raw", ["", "abc", "nan", "inf", "-inf", "1..2"])
    def test_rejects_unparsable_or_non_finite(self, raw):
        with pytest.raises(InvalidQuantity):
            normalize_quantity("KG", raw)

    @pytest.mark.parametrize("raw", ["0", "-1", "0.0001"])
    def test_rejects_non_positive_when_required(self, raw):
        with pytest.raises(InvalidQuantity):
            normalize_quantity("KG", raw)

    def test_zero_allowed_when_not_required(self):
        assert normalize_quantity("KG", "0", require_positive=False) == 0

    def test_integer_unit_rejects_negative_even_when_not_required(self):
        with pytest.raises(InvalidQuantity):
            normalize_quantity("UN", "-3", require_positive=False)

    def test_fractional_negative_allowed_when_not_required(self):
        assert normalize_quantity("KG", "-1,5", require_positive=False) == pytest.approx(-1.5)

    def test_numeric_input(self):
        assert normalize_quantity("UN", 7.0) == 7
        with pytest.raises(InvalidQuantity):
            normalize_quantity("KG", float("inf"))


class TestFormat:
    @pytest.mark.parametrize("value", [0, 1, 12.7, 999999, 1234567.5])
    def test_integer_unit_has_no_decimals(self, value):
        text = format_quantity("UN", value)
        assert "," not in text

    @pytest.mark.parametrize("value", [0, 0.1, 2, 1234.5678, 999999.9994])
    def test_fractional_unit_has_exactly_three_decimals(self, value):
        text = format_quantity("KG", value)
        whole, decimals = text.split(",")
        assert len(decimals) == 3

    def test_grouping_uses_configured_separators(self):
        assert format_quantity("KG", 1234.5) == "1.234,500"
        assert format_quantity("UN", 1234567) == "1.234.567"

    def test_custom_separators(self):
        policy = UnitPolicy(decimal_separator=".", group_separator=",")
        assert policy.format("KG", 1234.5) == "1,234.500"

    def test_negative_and_zero(self):
        assert format_quantity("KG", -2.5) == "-2,500"
        assert format_quantity("UN", -0.2) == "0"
