"""
Tests for amount parsing and rupee formatting
"""

import pytest
from decimal import Decimal

from kodbank.currency import (
    format_inr, from_minor_units, has_minor_unit_precision, parse_amount, to_minor_units
)


class TestParseAmount:
    """Client amounts become Decimal without passing through float arithmetic"""
    
    def test_parses_strings_ints_and_floats(self):
        assert parse_amount("250") == Decimal("250")
        assert parse_amount(" 12.50 ") == Decimal("12.50")
        assert parse_amount(500) == Decimal("500")
        assert parse_amount(0.1) == Decimal("0.1")
    
    @pytest.mark.parametrize("value", [None, "", "abc", "NaN", "Infinity", True, [], {}])
    def test_rejects_non_numbers(self, value):
        assert parse_amount(value) is None


class TestMinorUnits:
    """Conversion between Decimal amounts and integer paise"""
    
    def test_to_and_from_minor_units(self):
        assert to_minor_units(Decimal("100000")) == 10000000
        assert to_minor_units(Decimal("0.01")) == 1
        assert from_minor_units(9950000) == Decimal("99500.00")
    
    def test_sub_paise_amounts_are_rejected(self):
        assert not has_minor_unit_precision(Decimal("1.005"))
        with pytest.raises(ValueError):
            to_minor_units(Decimal("1.005"))


class TestFormatInr:
    """Indian digit grouping for messages"""
    
    @pytest.mark.parametrize("amount,expected", [
        (Decimal("250"), "₹250"),
        (Decimal("1000"), "₹1,000"),
        (Decimal("100000"), "₹1,00,000"),
        (Decimal("1000000"), "₹10,00,000"),
        (Decimal("12345678.5"), "₹1,23,45,678.50"),
    ])
    def test_format(self, amount, expected):
        assert format_inr(amount) == expected
