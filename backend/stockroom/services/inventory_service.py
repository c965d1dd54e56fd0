# Overview: Stock ledger; the only code path that writes Product.current_stock.

"""
Stock Ledger Invariants (authoritative)

- Every change to Product.current_stock is paired with exactly one appended
  StockMovement carrying previous_stock / new_stock snapshots.
- Movements are never updated or deleted.
- current_stock never goes below zero.

Delta rule by movement type:
    receive, return          new = previous + quantity
    usage, damage, expired   new = max(0, previous - quantity)   (clamped)
    transfer                 new = previous - quantity           (rejected if < 0)
    adjustment               new = quantity                      (absolute level)

quantity must be > 0, except for adjustment where it is the new absolute
level and may be 0.

Concurrency:
- The product row is read with SELECT ... FOR UPDATE where supported.
- Product.version_id makes a stale write fail with StaleDataError.
- The whole read-compute-append-write unit is retried by run_with_retry,
  so two concurrent movements on one product serialize and both deltas land.
- Movements on different products never contend.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from ..extensions import db
from ..models import Product, StockMovement
from ..models.ledger import (
    INBOUND_TYPES,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER,
    MOVEMENT_TYPES,
    OUTBOUND_TYPES,
    REFERENCE_INITIAL_STOCK,
    REFERENCE_MANUAL,
)
from ..validation import ConflictError, NotFoundError, ValidationError, parse_quantity
from .concurrency import lock_for_update, run_with_retry
from stockroom.formatting import format_quantity, money_times_quantity

ZERO = Decimal("0")


class ProductNotFoundError(NotFoundError):
    """Product does not exist in this business."""


class QuantityNotPositiveError(ValidationError):
    """Movement quantity must be > 0 (>= 0 for adjustment)."""


class InsufficientStockError(ConflictError):
    """A transfer out would take stock below zero."""


class StockNotTrackedError(ValidationError):
    """The product has track_stock disabled; the ledger is not consulted for it."""


@dataclass
class MovementResult:
    movement: StockMovement
    previous_stock: Decimal
    new_stock: Decimal

    def to_dict(self) -> dict:
        return {
            "movement": self.movement.to_dict(),
            "previous_stock": format_quantity(self.previous_stock),
            "new_stock": format_quantity(self.new_stock),
        }


def validate_movement_quantity(movement_type: str, quantity) -> Decimal:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type. Must be one of: {', '.join(MOVEMENT_TYPES)}")

    qty = parse_quantity(quantity)
    if movement_type == MOVEMENT_ADJUSTMENT:
        if qty < 0:
            raise QuantityNotPositiveError("adjustment quantity (new stock level) cannot be negative")
    elif qty <= 0:
        raise QuantityNotPositiveError("quantity must be > 0")
    return qty


def compute_new_stock(movement_type: str, previous: Decimal, quantity: Decimal) -> Decimal:
    """Pure delta rule; see module docstring."""
    if movement_type in INBOUND_TYPES:
        return previous + quantity
    if movement_type in OUTBOUND_TYPES:
        return max(ZERO, previous - quantity)
    if movement_type == MOVEMENT_TRANSFER:
        return previous - quantity
    if movement_type == MOVEMENT_ADJUSTMENT:
        return quantity
    raise ValidationError(f"Invalid movement type: {movement_type}")


def get_product_for_business(
    business_id: int,
    product_id: int,
    *,
    require_active: bool = False,
    lock: bool = False,
) -> Product:
    """
    Tenant-scoped product lookup.

    A product owned by another business is reported exactly like a missing one.
    """
    query = db.session.query(Product).filter_by(id=product_id, business_id=business_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found")
    if require_active and not product.is_active:
        raise ValidationError("Product is inactive")
    return product


def apply_movement_in_transaction(
    *,
    product: Product,
    movement_type: str,
    quantity: Decimal,
    reference_type: str,
    reference_id: int | None = None,
    reference: str | None = None,
    unit_cost_cents: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    performed_by_user_id: int | None = None,
) -> MovementResult:
    """Core ledger write without locking, retry, or commit.

    Callers must already hold the product row (locked where supported) inside
    the transaction that will commit this movement.
    """
    if not product.track_stock:
        raise StockNotTrackedError(f"Product {product.sku} does not track stock")

    previous = product.current_stock if product.current_stock is not None else ZERO
    new = compute_new_stock(movement_type, previous, quantity)
    if new < 0:
        raise InsufficientStockError(
            f"{movement_type} of {quantity} would take {product.sku} below zero (on hand {previous})"
        )

    total_cost_cents = None
    if unit_cost_cents is not None:
        total_cost_cents = money_times_quantity(unit_cost_cents, quantity)

    movement = StockMovement(
        business_id=product.business_id,
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        unit=product.unit,
        unit_cost_cents=unit_cost_cents,
        total_cost_cents=total_cost_cents,
        previous_stock=previous,
        new_stock=new,
        reason=reason,
        notes=notes,
        batch_number=batch_number,
        expiry_date=expiry_date,
        reference_type=reference_type,
        reference_id=reference_id,
        reference=reference,
        performed_by_user_id=performed_by_user_id,
    )
    db.session.add(movement)

    product.current_stock = new
    if batch_number:
        product.batch_number = batch_number
    if expiry_date:
        product.expiry_date = expiry_date

    db.session.flush()
    return MovementResult(movement=movement, previous_stock=previous, new_stock=new)


def apply_movement(
    *,
    business_id: int,
    product_id: int,
    movement_type: str,
    quantity,
    unit_cost_cents: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    reference_type: str = REFERENCE_MANUAL,
    reference_id: int | None = None,
    reference: str | None = None,
    performed_by_user_id: int | None = None,
) -> MovementResult:
    """
    Apply one stock movement atomically and commit.

    Unit cost defaults to the product's cost price for every type except
    adjustment (whose quantity is an absolute level, not an amount moved).

    Raises:
        ValidationError / QuantityNotPositiveError: bad type or quantity (no write)
        ProductNotFoundError: product missing in this business (no write)
        StockNotTrackedError: product has track_stock disabled (no write)
        InsufficientStockError: transfer would go negative (no write)
    """
    qty = validate_movement_quantity(movement_type, quantity)
    if unit_cost_cents is not None and unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents must be >= 0")

    def _op():
        product = get_product_for_business(business_id, product_id, lock=True)

        cost = unit_cost_cents
        if cost is None and movement_type != MOVEMENT_ADJUSTMENT:
            cost = product.cost_price_cents

        result = apply_movement_in_transaction(
            product=product,
            movement_type=movement_type,
            quantity=qty,
            unit_cost_cents=cost,
            reason=reason,
            notes=notes,
            batch_number=batch_number,
            expiry_date=expiry_date,
            reference_type=reference_type,
            reference_id=reference_id,
            reference=reference,
            performed_by_user_id=performed_by_user_id,
        )
        db.session.commit()
        return result

    return run_with_retry(_op)


def record_initial_stock(
    product: Product,
    quantity: Decimal,
    *,
    performed_by_user_id: int | None = None,
) -> MovementResult:
    """
    Synthetic receive for a product created with opening stock.

    Runs inside the catalog's create transaction (no commit) so the product
    and its first movement land together.
    """
    return apply_movement_in_transaction(
        product=product,
        movement_type="receive",
        quantity=quantity,
        unit_cost_cents=product.cost_price_cents,
        reason="Initial stock",
        reference_type=REFERENCE_INITIAL_STOCK,
        performed_by_user_id=performed_by_user_id,
    )


def list_movements(
    business_id: int,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
) -> list[StockMovement]:
    """Movement history, newest first. start/end are inclusive."""
    q = db.session.query(StockMovement).filter(StockMovement.business_id == business_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Invalid movement type. Must be one of: {', '.join(MOVEMENT_TYPES)}")
        q = q.filter(StockMovement.type == movement_type)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)

    return (
        q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def replay_stock(business_id: int, product_id: int) -> tuple[Decimal, list[int]]:
    """
    Rebuild a product's stock level from its ledger alone.

    Returns (replayed_level, ids_of_broken_movements) where a movement is
    broken if its previous_stock does not match the running level or its
    new_stock does not follow the delta rule.
    """
    movements = (
        db.session.query(StockMovement)
        .filter_by(business_id=business_id, product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
    level = ZERO
    broken: list[int] = []
    for m in movements:
        expected = compute_new_stock(m.type, level, m.quantity)
        if m.previous_stock != level or m.new_stock != expected:
            broken.append(m.id)
        level = m.new_stock
    return level, broken


def verify_ledger(business_id: int) -> list[dict]:
    """Products whose stored stock disagrees with their ledger replay."""
    problems = []
    products = (
        db.session.query(Product)
        .filter_by(business_id=business_id, track_stock=True)
        .order_by(Product.id.asc())
        .all()
    )
    for product in products:
        level, broken = replay_stock(business_id, product.id)
        if level != product.current_stock or broken:
            problems.append({
                "product_id": product.id,
                "sku": product.sku,
                "current_stock": product.current_stock,
                "replayed_stock": level,
                "broken_movement_ids": broken,
            })
    return problems
