from decimal import Decimal

import pytest

from stockroom.formatting import format_money, format_quantity, money_times_quantity


@pytest.mark.parametrize("cents, expected", [
    (0, "₹0.00"),
    (5, "₹0.05"),
    (99900, "₹999.00"),
    (12345678, "₹1,23,456.78"),
    (1000000000, "₹1,00,00,000.00"),
    (-2550, "-₹25.50"),
    (None, None),
])
def test_format_money_indian_grouping(app, cents, expected):
    assert format_money(cents) == expected


def test_format_money_western_grouping(app):
    app.config["CURRENCY_SYMBOL"] = "$"
    app.config["CURRENCY_GROUPING"] = "western"
    try:
        assert format_money(12345678) == "$123,456.78"
    finally:
        app.config["CURRENCY_SYMBOL"] = "₹"
        app.config["CURRENCY_GROUPING"] = "indian"


@pytest.mark.parametrize("value, expected", [
    (Decimal("12.500"), "12.5"),
    (Decimal("20.000"), "20"),
    (Decimal("0.000"), "0"),
    (Decimal("0.125"), "0.125"),
    (Decimal("100"), "100"),
    (None, None),
])
def test_format_quantity(value, expected):
    assert format_quantity(value) == expected


def test_money_times_quantity_rounds_half_up():
    assert money_times_quantity(1999, Decimal("2.5")) == 4998
    assert money_times_quantity(333, Decimal("0.5")) == 167
    assert money_times_quantity(100, Decimal("0.001")) == 0
