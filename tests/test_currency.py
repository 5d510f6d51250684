"""Tests for price formatting."""

import pytest

from receiptscan.currency import currency_for_region, format_price


class TestFormatPrice:
    def test_us_default(self):
        assert format_price(1500.5, "en-US") == "$1,500.50"

    def test_us_whole_amount(self):
        assert format_price(2500, "en-US") == "$2,500"

    def test_chile_separators(self):
        assert format_price(12990, "es-CL") == "$12.990"
        assert format_price(1234.5, "es-CL") == "$1.234,50"

    def test_peru_symbol(self):
        assert format_price(25.9, "es-PE") == "S/25.90"

    def test_explicit_currency_overrides_region(self):
        assert format_price(10, "en-US", "PEN") == "S/10"

    def test_unknown_currency_uses_dollar(self):
        assert format_price(10, "en-US", "EUR") == "$10"

    @pytest.mark.parametrize("amount", [None, float("nan")])
    def test_missing_renders_zero(self, amount):
        assert format_price(amount, "en-US") == "$0"

    def test_negative(self):
        assert format_price(-12.5, "en-US") == "-$12.50"


def test_currency_for_region():
    assert currency_for_region("es-CL") == "CLP"
    assert currency_for_region("fr-FR") == "USD"
    assert currency_for_region(None) == "USD"
