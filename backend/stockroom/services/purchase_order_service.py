# Overview: Service-layer operations for purchase orders; encapsulates business logic and database work.

"""
Purchase Order Service

LIFECYCLE (explicit transition table, anything else is rejected):
    draft     -> sent | cancelled
    sent      -> confirmed | cancelled
    confirmed -> received | cancelled
    received  -> (terminal)
    cancelled -> (terminal)

`received` is never set by a status change request. It is reached only by
receive_items() once every item has received_quantity >= quantity.

SNAPSHOT: item unit and unit cost are copied from the product at creation.

RECEIVING:
- Only confirmed orders can be received; partial receipts keep the order
  confirmed and accumulate received_quantity per item.
- The whole receipt is one transaction. Every line is validated before the
  first movement is written; any failure rolls back every line.
- Over-receipt (received_quantity going above the ordered quantity) is
  rejected with OverReceiptError.
- Products are locked and updated in ascending product id order.
"""
from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem
from ..models.ledger import MOVEMENT_RECEIVE, REFERENCE_PURCHASE_ORDER
from ..models.purchasing import (
    PO_CANCELLED,
    PO_CONFIRMED,
    PO_DRAFT,
    PO_RECEIVED,
    PO_SENT,
    PO_STATUSES,
)
from ..validation import (
    MAX_PRICE_CENTS,
    ConflictError,
    NotFoundError,
    ValidationError,
    parse_date_field,
    parse_int,
    parse_money,
    parse_quantity,
)
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import MovementResult, apply_movement_in_transaction, get_product_for_business
from .vendor_service import require_active_vendor
from stockroom.formatting import format_quantity, money_times_quantity
from stockroom.time_utils import utcnow

TRANSITIONS: dict[str, frozenset[str]] = {
    PO_DRAFT: frozenset({PO_SENT, PO_CANCELLED}),
    PO_SENT: frozenset({PO_CONFIRMED, PO_CANCELLED}),
    PO_CONFIRMED: frozenset({PO_RECEIVED, PO_CANCELLED}),
    PO_RECEIVED: frozenset(),
    PO_CANCELLED: frozenset(),
}

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
ORDER_NUMBER_SUFFIX_LENGTH = 4
ORDER_NUMBER_ATTEMPTS = 10


class PurchaseOrderNotFoundError(NotFoundError):
    pass


class InvalidStatusTransitionError(ConflictError):
    """Requested status change is not in the transition table."""


class OverReceiptError(ValidationError):
    """A receipt would take an item's received quantity above its ordered quantity."""


@dataclass
class ReceivedLine:
    item: PurchaseOrderItem
    quantity: Decimal
    movement: MovementResult | None

    def to_dict(self) -> dict:
        return {
            "item_id": self.item.id,
            "product_id": self.item.product_id,
            "received_quantity": format_quantity(self.quantity),
            "total_received": format_quantity(self.item.received_quantity),
            "movement_id": self.movement.movement.id if self.movement else None,
            "previous_stock": format_quantity(self.movement.previous_stock) if self.movement else None,
            "new_stock": format_quantity(self.movement.new_stock) if self.movement else None,
        }


def generate_order_number(business_id: int, *, today: date | None = None) -> str:
    """
    PO-YYMM-XXXX with a random uppercase alphanumeric suffix.

    Checked against existing numbers of this business; a few retries make a
    collision practically impossible.
    """
    today = today or utcnow().date()
    prefix = f"PO-{today:%y%m}-"
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(ORDER_NUMBER_SUFFIX_LENGTH))
        candidate = prefix + suffix
        taken = (
            db.session.query(PurchaseOrder.id)
            .filter_by(business_id=business_id, order_number=candidate)
            .first()
        )
        if not taken:
            return candidate
    raise ConflictError("Could not allocate a unique order number")


def get_purchase_order(business_id: int, order_id: int, *, lock: bool = False) -> PurchaseOrder:
    q = db.session.query(PurchaseOrder).filter_by(id=order_id, business_id=business_id)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if not order:
        raise PurchaseOrderNotFoundError(f"Purchase order {order_id} not found")
    return order


def list_purchase_orders(
    business_id: int,
    *,
    status: str | None = None,
    vendor_id: int | None = None,
    limit: int = 50,
) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder).filter(PurchaseOrder.business_id == business_id)
    if status:
        if status not in PO_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PO_STATUSES)}")
        q = q.filter(PurchaseOrder.status == status)
    if vendor_id is not None:
        q = q.filter(PurchaseOrder.vendor_id == vendor_id)
    return q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).limit(limit).all()


def _parse_order_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    seen_products = set()
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if "product_id" not in raw:
            raise ValidationError(f"items[{idx}].product_id is required")
        product_id = parse_int(raw["product_id"], f"items[{idx}].product_id")
        if product_id in seen_products:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen_products.add(product_id)

        quantity = parse_quantity(raw.get("quantity"), f"items[{idx}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be > 0")

        unit_cost = raw.get("unit_cost_cents")
        if unit_cost is not None:
            unit_cost = parse_money(unit_cost, f"items[{idx}].unit_cost_cents")

        parsed.append({"product_id": product_id, "quantity": quantity, "unit_cost_cents": unit_cost})
    return parsed


def create_purchase_order(
    *,
    business_id: int,
    vendor_id: int,
    items,
    expected_delivery_date=None,
    notes: str | None = None,
    internal_notes: str | None = None,
    tax_cents=0,
    shipping_cents=0,
    discount_cents=0,
    total_cents=None,
    created_by_user_id: int | None = None,
) -> PurchaseOrder:
    """
    Create a draft purchase order.

    Each item's unit and unit cost come from the product at this moment unless
    the line supplies unit_cost_cents explicitly. subtotal is the sum of item
    totals; total = subtotal + tax + shipping - discount unless overridden.

    Raises:
        ValidationError: bad lines, amounts, or inactive vendor
        VendorNotFoundError / ProductNotFoundError: reference outside this business
    """
    lines = _parse_order_lines(items)
    expected = parse_date_field(expected_delivery_date, "expected_delivery_date")
    tax = parse_money(tax_cents or 0, "tax_cents")
    shipping = parse_money(shipping_cents or 0, "shipping_cents")
    discount = parse_money(discount_cents or 0, "discount_cents")

    vendor = require_active_vendor(business_id, vendor_id)

    order_items = []
    subtotal = 0
    for line in lines:
        product = get_product_for_business(business_id, line["product_id"], require_active=True)
        unit_cost = line["unit_cost_cents"]
        if unit_cost is None:
            unit_cost = product.cost_price_cents or 0
        line_total = money_times_quantity(unit_cost, line["quantity"])
        subtotal += line_total
        order_items.append(PurchaseOrderItem(
            product_id=product.id,
            quantity=line["quantity"],
            unit=product.unit,
            unit_cost_cents=unit_cost,
            total_cost_cents=line_total,
            received_quantity=Decimal("0"),
        ))

    if total_cents is None:
        total = subtotal + tax + shipping - discount
    else:
        total = parse_money(total_cents, "total_cents")
    if total < 0:
        raise ValidationError("total cannot be negative (discount exceeds order value)")
    if subtotal > MAX_PRICE_CENTS or total > MAX_PRICE_CENTS:
        raise ValidationError(f"order total cannot exceed {MAX_PRICE_CENTS}")

    order = PurchaseOrder(
        business_id=business_id,
        vendor_id=vendor.id,
        order_number=generate_order_number(business_id),
        status=PO_DRAFT,
        order_date=utcnow(),
        expected_delivery_date=expected,
        subtotal_cents=subtotal,
        tax_cents=tax,
        shipping_cents=shipping,
        discount_cents=discount,
        total_cents=total,
        notes=notes,
        internal_notes=internal_notes,
        created_by_user_id=created_by_user_id,
    )
    order.items = order_items

    db.session.add(order)
    db.session.commit()
    return order


def change_status(
    *,
    business_id: int,
    order_id: int,
    status: str,
    user_id: int | None = None,
    reason: str | None = None,
) -> PurchaseOrder:
    """
    Move an order along the transition table.

    sent stamps sent_at; confirmed records the approving user; received
    stamps the delivery date and receiver without writing stock movements;
    cancelled records who, when and why.

    Raises:
        ValidationError: unknown status
        PurchaseOrderNotFoundError: not in this business
        InvalidStatusTransitionError: transition not allowed
    """
    if status not in PO_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PO_STATUSES)}")

    def _op():
        order = get_purchase_order(business_id, order_id, lock=True)

        if status not in TRANSITIONS[order.status]:
            raise InvalidStatusTransitionError(f"Cannot change status from {order.status} to {status}")

        now = utcnow()
        if status == PO_SENT:
            order.sent_at = now
        elif status == PO_CONFIRMED:
            order.approved_by_user_id = user_id
            order.approved_at = now
        elif status == PO_RECEIVED:
            order.actual_delivery_date = now
            order.received_by_user_id = user_id
        elif status == PO_CANCELLED:
            order.cancelled_by_user_id = user_id
            order.cancelled_at = now
            order.cancellation_reason = reason

        order.status = status
        db.session.commit()
        return order

    return run_with_retry(_op)


def _parse_receipt_lines(lines) -> list[dict]:
    if not isinstance(lines, list) or not lines:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    seen_items = set()
    for idx, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if "item_id" not in raw:
            raise ValidationError(f"items[{idx}].item_id is required")
        item_id = parse_int(raw["item_id"], f"items[{idx}].item_id")
        if item_id in seen_items:
            raise ValidationError(f"Item {item_id} appears more than once")
        seen_items.add(item_id)

        quantity = parse_quantity(raw.get("received_quantity"), f"items[{idx}].received_quantity")
        if quantity < 0:
            raise ValidationError(f"items[{idx}].received_quantity cannot be negative")

        batch_number = raw.get("batch_number")
        if batch_number is not None:
            batch_number = str(batch_number).strip() or None

        parsed.append({
            "item_id": item_id,
            "quantity": quantity,
            "batch_number": batch_number,
            "expiry_date": parse_date_field(raw.get("expiry_date"), f"items[{idx}].expiry_date"),
        })

    if not any(line["quantity"] > 0 for line in parsed):
        raise ValidationError("Nothing to receive: every received_quantity is zero")
    return parsed


def receive_items(
    *,
    business_id: int,
    order_id: int,
    lines,
    received_by_user_id: int | None = None,
) -> tuple[PurchaseOrder, list[ReceivedLine]]:
    """
    Receive goods against a confirmed order in one transaction.

    Each line is {item_id, received_quantity, batch_number?, expiry_date?}.
    Zero-quantity lines are accepted and ignored. For stock-tracked products
    a receive movement is written at the item's snapshotted unit cost; for
    untracked products only received_quantity advances.

    Returns:
        (order, received_lines)

    Raises:
        ValidationError: malformed lines or item not on this order
        OverReceiptError: a line exceeds the outstanding quantity
        PurchaseOrderNotFoundError: not in this business
        InvalidStatusTransitionError: order is not confirmed
    """
    parsed = _parse_receipt_lines(lines)

    def _op():
        order = get_purchase_order(business_id, order_id, lock=True)
        if order.status != PO_CONFIRMED:
            raise InvalidStatusTransitionError(
                f"Cannot receive a {order.status} order. Only confirmed orders can be received."
            )

        items_by_id = {item.id: item for item in order.items}
        plan = []
        for line in parsed:
            item = items_by_id.get(line["item_id"])
            if item is None:
                raise ValidationError(f"Item {line['item_id']} is not on order {order.order_number}")
            if line["quantity"] == 0:
                continue
            if line["quantity"] > item.outstanding_quantity:
                raise OverReceiptError(
                    f"Item {item.id}: receiving {line['quantity']} exceeds outstanding "
                    f"{item.outstanding_quantity} (ordered {item.quantity})"
                )
            plan.append((item, line))

        # Resolve every product before the first write.
        products = {
            item.product_id: get_product_for_business(business_id, item.product_id, lock=True)
            for item, _ in sorted(plan, key=lambda entry: entry[0].product_id)
        }

        received = []
        for item, line in sorted(plan, key=lambda entry: entry[0].product_id):
            product = products[item.product_id]
            result = None
            if product.track_stock:
                result = apply_movement_in_transaction(
                    product=product,
                    movement_type=MOVEMENT_RECEIVE,
                    quantity=line["quantity"],
                    unit_cost_cents=item.unit_cost_cents,
                    reason=f"Received against {order.order_number}",
                    batch_number=line["batch_number"],
                    expiry_date=line["expiry_date"],
                    reference_type=REFERENCE_PURCHASE_ORDER,
                    reference_id=order.id,
                    reference=order.order_number,
                    performed_by_user_id=received_by_user_id,
                )
            item.received_quantity = (item.received_quantity or Decimal("0")) + line["quantity"]
            received.append(ReceivedLine(item=item, quantity=line["quantity"], movement=result))

        # Untracked lines touch no product row; the order row carries the version check.
        order.updated_at = utcnow()

        if order.is_fully_received:
            order.status = PO_RECEIVED
            order.actual_delivery_date = utcnow()
            order.received_by_user_id = received_by_user_id

        db.session.commit()
        return order, received

    return run_with_retry(_op)
