# Overview: Physical count reconciliation; turns counted quantities into ledger adjustments.

"""
Stocktake Service

A reconcile call compares each counted quantity with the stock the system
believes in. Exact matches write nothing to the ledger. Every discrepancy is
settled with one `adjustment` movement whose quantity is the counted level,
so the absolute-set rule of the ledger does the arithmetic.

The whole submission is one transaction: every product is resolved and
checked before the first adjustment is written, and a failure on any line
leaves the ledger untouched. A Stocktake header with one StocktakeLine per
counted product is kept as the count sheet.
"""
from __future__ import annotations

import secrets
import string
from decimal import Decimal

from ..extensions import db
from ..models import Stocktake, StocktakeLine
from ..models.ledger import MOVEMENT_ADJUSTMENT, REFERENCE_STOCKTAKE
from ..validation import ConflictError, ValidationError, parse_int, parse_quantity
from .concurrency import run_with_retry
from .inventory_service import StockNotTrackedError, apply_movement_in_transaction, get_product_for_business
from stockroom.formatting import format_quantity
from stockroom.time_utils import utcnow

REASON_SURPLUS = "Stocktake adjustment: surplus"
REASON_SHORTAGE = "Stocktake adjustment: shortage"


def generate_reference_number(business_id: int) -> str:
    prefix = f"ST-{utcnow():%y%m%d}-"
    alphabet = string.ascii_uppercase + string.digits
    for _ in range(10):
        candidate = prefix + "".join(secrets.choice(alphabet) for _ in range(4))
        taken = (
            db.session.query(Stocktake.id)
            .filter_by(business_id=business_id, reference_number=candidate)
            .first()
        )
        if not taken:
            return candidate
    raise ConflictError("Could not allocate a unique stocktake reference")


def _parse_counts(counts) -> list[dict]:
    if not isinstance(counts, list) or not counts:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    seen = set()
    for idx, raw in enumerate(counts):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if "product_id" not in raw:
            raise ValidationError(f"items[{idx}].product_id is required")
        product_id = parse_int(raw["product_id"], f"items[{idx}].product_id")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} is counted more than once")
        seen.add(product_id)

        counted = parse_quantity(raw.get("counted_quantity"), f"items[{idx}].counted_quantity")
        if counted < 0:
            raise ValidationError(f"items[{idx}].counted_quantity cannot be negative")

        parsed.append({"product_id": product_id, "counted": counted, "notes": raw.get("notes")})
    return parsed


def reconcile(
    *,
    business_id: int,
    counts,
    notes: str | None = None,
    counted_by_user_id: int | None = None,
) -> tuple[Stocktake, list[dict]]:
    """
    Apply a physical count.

    Args:
        counts: [{product_id, counted_quantity, notes?}, ...]; a line without
            notes takes the count's notes on its movement

    Returns:
        (stocktake, adjustments) where adjustments holds one entry per
        discrepancy: {product_id, product_name, previous_stock,
        counted_quantity, discrepancy, movement_id}

    Raises:
        ValidationError: malformed counts, or a product that does not track stock
        ProductNotFoundError: product not in this business
    """
    parsed = sorted(_parse_counts(counts), key=lambda c: c["product_id"])

    def _op():
        products = {}
        for count in parsed:
            product = get_product_for_business(business_id, count["product_id"], lock=True)
            if not product.track_stock:
                raise StockNotTrackedError(f"Product {product.sku} does not track stock")
            products[product.id] = product

        stocktake = Stocktake(
            business_id=business_id,
            reference_number=generate_reference_number(business_id),
            notes=notes,
            counted_by_user_id=counted_by_user_id,
            lines_counted=len(parsed),
            adjustments_made=0,
        )
        db.session.add(stocktake)
        db.session.flush()

        adjustments = []
        for count in parsed:
            product = products[count["product_id"]]
            previous = product.current_stock or Decimal("0")
            discrepancy = count["counted"] - previous

            line = StocktakeLine(
                stocktake_id=stocktake.id,
                product_id=product.id,
                expected_quantity=previous,
                counted_quantity=count["counted"],
                discrepancy=discrepancy,
                notes=count["notes"],
            )
            db.session.add(line)

            if discrepancy == 0:
                continue

            result = apply_movement_in_transaction(
                product=product,
                movement_type=MOVEMENT_ADJUSTMENT,
                quantity=count["counted"],
                reason=REASON_SURPLUS if discrepancy > 0 else REASON_SHORTAGE,
                notes=count["notes"] or notes,
                reference_type=REFERENCE_STOCKTAKE,
                reference_id=stocktake.id,
                reference=stocktake.reference_number,
                performed_by_user_id=counted_by_user_id,
            )
            line.movement_id = result.movement.id

            adjustments.append({
                "product_id": product.id,
                "product_name": product.name,
                "previous_stock": format_quantity(previous),
                "counted_quantity": format_quantity(count["counted"]),
                "discrepancy": format_quantity(discrepancy),
                "movement_id": result.movement.id,
            })

        stocktake.adjustments_made = len(adjustments)
        db.session.commit()
        return stocktake, adjustments

    return run_with_retry(_op)
