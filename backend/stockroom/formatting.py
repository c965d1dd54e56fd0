# Overview: Display helpers for money and stock quantities.

"""
Money is stored and transmitted as integer minor units (paise/cents).
Quantities are Decimal (fractional units such as grams or millilitres are allowed).

The *_formatted strings produced here are presentation only; every response
that carries one also carries the raw value.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app, has_app_context

DEFAULT_SYMBOL = "₹"
DEFAULT_GROUPING = "indian"


def _group_digits(digits: str, grouping: str) -> str:
    if grouping == "indian" and len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        parts = []
        while len(head) > 2:
            parts.insert(0, head[-2:])
            head = head[:-2]
        if head:
            parts.insert(0, head)
        return ",".join(parts + [tail])
    return f"{int(digits):,}"


def format_money(cents: int | None) -> str | None:
    """Format integer minor units, e.g. 12345678 -> "₹1,23,456.78"."""
    if cents is None:
        return None

    symbol, grouping = DEFAULT_SYMBOL, DEFAULT_GROUPING
    if has_app_context():
        symbol = current_app.config.get("CURRENCY_SYMBOL", DEFAULT_SYMBOL)
        grouping = current_app.config.get("CURRENCY_GROUPING", DEFAULT_GROUPING)

    sign = "-" if cents < 0 else ""
    major, minor = divmod(abs(int(cents)), 100)
    return f"{sign}{symbol}{_group_digits(str(major), grouping)}.{minor:02d}"


def format_quantity(value: Decimal | None) -> str | None:
    """Render a stored quantity without trailing zeros: Decimal("12.500") -> "12.5"."""
    if value is None:
        return None
    d = Decimal(value)
    if d == d.to_integral_value():
        return str(d.quantize(Decimal(1)))
    return format(d.normalize(), "f")


def money_times_quantity(cents: int, quantity: Decimal) -> int:
    """cents * quantity rounded half-up to whole minor units."""
    return int((Decimal(cents) * Decimal(quantity)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
