"""Tests for money conversion and formatting helpers."""

import pytest
from decimal import Decimal

from splitledger.core.errors import InputIntegrityError
from splitledger.core.money import (
    format_currency,
    from_cents,
    quantize_amount,
    to_cents,
    to_decimal,
)


class TestConversion:
    """Tests for Decimal <-> cents conversion."""
    
    def test_to_cents_from_string(self):
        assert to_cents("12.34") == 1234
    
    def test_to_cents_rounds_half_away_from_zero(self):
        """Half a cent rounds away from zero in both directions."""
        assert to_cents("0.005") == 1
        assert to_cents("-0.005") == -1
        assert to_cents("2.675") == 268
    
    def test_float_goes_through_its_repr(self):
        """2.675 as a float is 2.67499..., but we read it as typed."""
        assert to_cents(2.675) == 268
    
    def test_from_cents_has_two_places(self):
        assert from_cents(333) == Decimal("3.33")
        assert str(from_cents(1000)) == "10.00"
    
    def test_quantize_amount(self):
        assert quantize_amount("3.335") == Decimal("3.34")
        assert quantize_amount(7) == Decimal("7.00")
    
    @pytest.mark.parametrize("bad", [None, True, "abc", "NaN", "Infinity"])
    def test_rejects_non_numbers(self, bad):
        with pytest.raises(InputIntegrityError):
            to_decimal(bad)


class TestFormatting:
    """Tests for display formatting."""
    
    def test_known_symbol(self):
        assert format_currency(Decimal("1234.5"), "USD") == "$1,234.50"
    
    def test_negative_amount(self):
        assert format_currency("-3.33", "eur") == "-€3.33"
    
    def test_unknown_currency_uses_code(self):
        assert format_currency(5, "CHF") == "CHF 5.00"
