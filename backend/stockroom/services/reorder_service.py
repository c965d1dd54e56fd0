# Overview: Read-only reorder suggestions over the catalog.

from __future__ import annotations

from decimal import Decimal

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Product
from stockroom.formatting import format_money, format_quantity, money_times_quantity

URGENCY_CRITICAL = "critical"
URGENCY_LOW = "low"

FALLBACK_DEFAULT_QUANTITY = Decimal("10")


def _default_quantity(default_quantity) -> Decimal:
    if default_quantity is not None:
        return Decimal(default_quantity)
    if has_app_context():
        return Decimal(current_app.config.get("REORDER_DEFAULT_QUANTITY", FALLBACK_DEFAULT_QUANTITY))
    return FALLBACK_DEFAULT_QUANTITY


def suggested_quantity(product: Product, default_quantity: Decimal) -> Decimal:
    """reorder_quantity, else max(1, maximum - current), else the default."""
    if product.reorder_quantity:
        return product.reorder_quantity
    if product.maximum_stock:
        return max(Decimal("1"), product.maximum_stock - (product.current_stock or Decimal("0")))
    return default_quantity


def suggest_reorders(business_id: int, *, default_quantity=None) -> list[dict]:
    """
    Active stock-tracked products at or below their reorder threshold.

    Critical (out of stock) entries come first, then low ones; inside a tier
    the most depleted product comes first. No writes.
    """
    default = _default_quantity(default_quantity)

    products = (
        db.session.query(Product)
        .filter(
            Product.business_id == business_id,
            Product.is_active.is_(True),
            Product.track_stock.is_(True),
        )
        .all()
    )

    rows = []
    for product in products:
        current = product.current_stock or Decimal("0")
        threshold = product.reorder_threshold
        if current > threshold:
            continue

        urgency = URGENCY_CRITICAL if current == 0 else URGENCY_LOW
        quantity = suggested_quantity(product, default)
        unit_cost = product.cost_price_cents or 0
        estimated = money_times_quantity(unit_cost, quantity)

        rows.append((urgency, current, product, {
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "unit": product.unit,
            "current_stock": format_quantity(current),
            "reorder_threshold": format_quantity(threshold),
            "minimum_stock": format_quantity(product.minimum_stock),
            "maximum_stock": format_quantity(product.maximum_stock),
            "suggested_quantity": format_quantity(quantity),
            "urgency": urgency,
            "vendor_id": product.vendor_id,
            "vendor_name": product.vendor.name if product.vendor else None,
            "lead_time_days": product.lead_time_days,
            "unit_cost_cents": unit_cost,
            "estimated_cost_cents": estimated,
            "estimated_cost_formatted": format_money(estimated),
        }))

    rows.sort(key=lambda r: (0 if r[0] == URGENCY_CRITICAL else 1, r[1], r[2].name, r[2].id))
    return [r[3] for r in rows]
