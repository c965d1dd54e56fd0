# Overview: Dashboard aggregates over the catalog and the stock ledger; read-only.

from __future__ import annotations

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app, has_app_context
from sqlalchemy import func

from ..extensions import db
from ..models import Category, Product, PurchaseOrder, StockMovement, Vendor
from ..models.catalog import STOCK_LOW, STOCK_OUT
from ..models.ledger import INBOUND_TYPES, MOVEMENT_USAGE, OUTBOUND_TYPES
from ..models.purchasing import PO_OPEN_STATUSES
from ..validation import ValidationError
from stockroom.formatting import format_money, format_quantity, money_times_quantity
from stockroom.time_utils import to_utc_z, utcnow

PERIOD_DAYS = {"week": 7, "month": 30}
WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
RECENT_CHANGES_LIMIT = 10
TOP_PRODUCTS_LIMIT = 5

ZERO = Decimal("0")


def _expiry_window_days() -> int:
    if has_app_context():
        return int(current_app.config.get("EXPIRY_WARNING_DAYS", 30))
    return 30


def inventory_stats(business_id: int) -> dict:
    """
    Headline numbers for the inventory dashboard.

    Stock value and stock-status counts cover active, stock-tracked products.
    """
    products = db.session.query(Product).filter(Product.business_id == business_id).all()

    today = utcnow().date()
    expiry_cutoff = today + timedelta(days=_expiry_window_days())

    total_value = 0
    low = out = reorder_needed = expiring = 0
    active = 0
    for product in products:
        if not product.is_active:
            continue
        active += 1

        if product.expiry_date is not None and today <= product.expiry_date <= expiry_cutoff:
            expiring += 1

        if not product.track_stock:
            continue

        current = product.current_stock or ZERO
        total_value += money_times_quantity(product.cost_price_cents or 0, current)

        status = product.stock_status
        if status == STOCK_OUT:
            out += 1
        elif status == STOCK_LOW:
            low += 1

        if 0 < current <= product.reorder_threshold:
            reorder_needed += 1

    category_count = (
        db.session.query(func.count(Category.id))
        .filter(Category.business_id == business_id, Category.is_active.is_(True))
        .scalar()
    )
    vendor_count = (
        db.session.query(func.count(Vendor.id))
        .filter(Vendor.business_id == business_id, Vendor.status == "active")
        .scalar()
    )
    pending_orders = (
        db.session.query(func.count(PurchaseOrder.id))
        .filter(PurchaseOrder.business_id == business_id, PurchaseOrder.status.in_(PO_OPEN_STATUSES))
        .scalar()
    )

    return {
        "total_products": len(products),
        "active_products": active,
        "total_stock_value_cents": total_value,
        "total_stock_value_formatted": format_money(total_value),
        "low_stock_count": low,
        "out_of_stock_count": out,
        "reorder_needed_count": reorder_needed,
        "expiring_count": expiring,
        "category_count": category_count or 0,
        "vendor_count": vendor_count or 0,
        "pending_orders_count": pending_orders or 0,
    }


def inventory_analytics(business_id: int, *, period: str = "week") -> dict:
    """
    Movement trends over the last 7 (week) or 30 (month) days.

    turnover_rate = stock out / average current stock per product, one decimal.
    """
    if period not in PERIOD_DAYS:
        raise ValidationError(f"period must be one of: {', '.join(PERIOD_DAYS)}")

    since = utcnow() - timedelta(days=PERIOD_DAYS[period])
    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.business_id == business_id, StockMovement.created_at >= since)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .all()
    )

    stock_in = ZERO
    stock_out = ZERO
    by_day = {label: {"inbound": ZERO, "outbound": ZERO} for label in WEEKDAY_LABELS}
    usage: dict[int, dict] = {}

    for m in movements:
        day = by_day[WEEKDAY_LABELS[m.created_at.weekday()]]
        if m.type in INBOUND_TYPES:
            stock_in += m.quantity
            day["inbound"] += m.quantity
        elif m.type in OUTBOUND_TYPES:
            stock_out += m.quantity
            day["outbound"] += m.quantity

        if m.type == MOVEMENT_USAGE:
            entry = usage.setdefault(m.product_id, {
                "product_id": m.product_id,
                "name": m.product.name if m.product else None,
                "sku": m.product.sku if m.product else None,
                "units": ZERO,
                "value_cents": 0,
            })
            entry["units"] += m.quantity
            entry["value_cents"] += m.total_cost_cents or 0

    stock_levels = [
        p.current_stock or ZERO
        for p in db.session.query(Product).filter(Product.business_id == business_id).all()
    ]
    average_stock = sum(stock_levels, ZERO) / len(stock_levels) if stock_levels else ZERO
    turnover = ZERO
    if average_stock > 0:
        turnover = (stock_out / average_stock).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

    top = sorted(usage.values(), key=lambda e: (-e["units"], e["product_id"]))[:TOP_PRODUCTS_LIMIT]

    return {
        "period": period,
        "since": to_utc_z(since),
        "trend_summary": {
            "stock_in": format_quantity(stock_in),
            "stock_out": format_quantity(stock_out),
            "turnover_rate": float(turnover),
        },
        "stock_trends": [
            {
                "day": label,
                "inbound": format_quantity(by_day[label]["inbound"]),
                "outbound": format_quantity(by_day[label]["outbound"]),
            }
            for label in WEEKDAY_LABELS
        ],
        "recent_changes": [m.to_dict() for m in movements[:RECENT_CHANGES_LIMIT]],
        "top_products": [
            {
                "product_id": e["product_id"],
                "name": e["name"],
                "sku": e["sku"],
                "units": format_quantity(e["units"]),
                "value_cents": e["value_cents"],
                "value_formatted": format_money(e["value_cents"]),
            }
            for e in top
        ],
    }
