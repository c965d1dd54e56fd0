from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from .catalog import QUANTITY
from stockroom.formatting import format_money, format_quantity
from stockroom.time_utils import to_iso_date, to_utc_z, utcnow

PO_DRAFT = "draft"
PO_SENT = "sent"
PO_CONFIRMED = "confirmed"
PO_RECEIVED = "received"
PO_CANCELLED = "cancelled"

PO_STATUSES = (PO_DRAFT, PO_SENT, PO_CONFIRMED, PO_RECEIVED, PO_CANCELLED)
PO_OPEN_STATUSES = (PO_DRAFT, PO_SENT, PO_CONFIRMED)


class PurchaseOrder(db.Model):
    """
    Order placed with a vendor.

    LIFECYCLE (services/purchase_order_service.py owns the transition table):
        draft -> sent -> confirmed -> received
        draft | sent | confirmed -> cancelled

    Orders are never deleted; cancel instead. Money is in minor units and
    total = subtotal + tax + shipping - discount unless explicitly overridden.

    version_id guards concurrent receipts: every receipt bumps the order row,
    so a stale second writer fails with StaleDataError and is retried.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("business_id", "order_number", name="uq_purchase_orders_business_number"),
        db.Index("ix_purchase_orders_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)

    order_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PO_DRAFT, index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expected_delivery_date = db.Column(db.Date, nullable=True)
    actual_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)

    # Lifecycle user attribution
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Lifecycle timestamps
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    vendor = db.relationship("Vendor", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.order_number!r} status={self.status}>"

    @property
    def is_fully_received(self) -> bool:
        return bool(self.items) and all(item.is_fully_received for item in self.items)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor.name if self.vendor else None,
            "order_number": self.order_number,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "actual_delivery_date": to_utc_z(self.actual_delivery_date) if self.actual_delivery_date else None,
            "subtotal_cents": self.subtotal_cents,
            "subtotal_formatted": format_money(self.subtotal_cents),
            "tax_cents": self.tax_cents,
            "tax_formatted": format_money(self.tax_cents),
            "shipping_cents": self.shipping_cents,
            "shipping_formatted": format_money(self.shipping_cents),
            "discount_cents": self.discount_cents,
            "discount_formatted": format_money(self.discount_cents),
            "total_cents": self.total_cents,
            "total_formatted": format_money(self.total_cents),
            "notes": self.notes,
            "internal_notes": self.internal_notes,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """
    One product line on a purchase order.

    unit and unit_cost_cents are snapshotted at creation so later catalog
    price changes never rewrite historical orders. received_quantity only
    grows, accumulating across partial receipts, and never exceeds quantity.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_items_order_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(32), nullable=True)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)

    received_quantity = db.Column(QUANTITY, nullable=False, default=Decimal("0"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    @property
    def outstanding_quantity(self) -> Decimal:
        remaining = (self.quantity or Decimal("0")) - (self.received_quantity or Decimal("0"))
        return max(Decimal("0"), remaining)

    @property
    def is_fully_received(self) -> bool:
        return (self.received_quantity or Decimal("0")) >= self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "quantity": format_quantity(self.quantity),
            "unit": self.unit,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_cost_formatted": format_money(self.unit_cost_cents),
            "total_cost_cents": self.total_cost_cents,
            "total_cost_formatted": format_money(self.total_cost_cents),
            "received_quantity": format_quantity(self.received_quantity),
            "outstanding_quantity": format_quantity(self.outstanding_quantity),
        }
