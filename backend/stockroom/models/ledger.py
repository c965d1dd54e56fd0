from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from .catalog import QUANTITY
from stockroom.formatting import format_money, format_quantity
from stockroom.time_utils import to_iso_date, to_utc_z, utcnow

MOVEMENT_RECEIVE = "receive"
MOVEMENT_USAGE = "usage"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TRANSFER = "transfer"
MOVEMENT_DAMAGE = "damage"
MOVEMENT_RETURN = "return"
MOVEMENT_EXPIRED = "expired"

MOVEMENT_TYPES = (
    MOVEMENT_RECEIVE,
    MOVEMENT_USAGE,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER,
    MOVEMENT_DAMAGE,
    MOVEMENT_RETURN,
    MOVEMENT_EXPIRED,
)

INBOUND_TYPES = (MOVEMENT_RECEIVE, MOVEMENT_RETURN)
OUTBOUND_TYPES = (MOVEMENT_USAGE, MOVEMENT_DAMAGE, MOVEMENT_EXPIRED)

REFERENCE_INITIAL_STOCK = "initial_stock"
REFERENCE_MANUAL = "manual_adjustment"
REFERENCE_PURCHASE_ORDER = "purchase_order"
REFERENCE_STOCKTAKE = "stocktake"


class ImmutableMovementError(RuntimeError):
    """Raised when code tries to update or delete a ledger row."""


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    previous_stock / new_stock snapshot the product level around this movement;
    new_stock always equals the delta rule for `type` applied to previous_stock.
    Rows are never updated or deleted (enforced by ORM listeners below).

    reference_type / reference_id point at the originating document:
    purchase_order -> purchase_orders.id, stocktake -> stocktakes.id,
    manual_adjustment and initial_stock have none.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_business_product_created", "business_id", "product_id", "created_at"),
        db.Index("ix_movements_business_type_created", "business_id", "type", "created_at"),
        db.Index("ix_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(32), nullable=True)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    previous_stock = db.Column(QUANTITY, nullable=False)
    new_stock = db.Column(QUANTITY, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    reference = db.Column(db.String(64), nullable=True)  # human-readable, e.g. PO number

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")
    performed_by = db.relationship("User")

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} type={self.type} "
            f"{self.previous_stock}->{self.new_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "type": self.type,
            "quantity": format_quantity(self.quantity),
            "unit": self.unit,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_cost_formatted": format_money(self.unit_cost_cents),
            "total_cost_cents": self.total_cost_cents,
            "total_cost_formatted": format_money(self.total_cost_cents),
            "previous_stock": format_quantity(self.previous_stock),
            "new_stock": format_quantity(self.new_stock),
            "reason": self.reason,
            "notes": self.notes,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "reference": self.reference,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_by_name": self.performed_by.name if self.performed_by else None,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _block_movement_update(mapper, connection, target):
    raise ImmutableMovementError(f"Stock movement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(f"Stock movement {target.id} cannot be deleted")


class Stocktake(db.Model):
    """
    Header for one physical count submission.

    Lines record what the system believed, what was counted, and the
    adjustment movement written for each discrepancy (null on exact match).
    """
    __tablename__ = "stocktakes"
    __table_args__ = (
        db.UniqueConstraint("business_id", "reference_number", name="uq_stocktakes_business_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    reference_number = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    lines_counted = db.Column(db.Integer, nullable=False, default=0)
    adjustments_made = db.Column(db.Integer, nullable=False, default=0)

    counted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    lines = db.relationship("StocktakeLine", backref="stocktake", lazy=True, order_by="StocktakeLine.id")

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "lines_counted": self.lines_counted,
            "adjustments_made": self.adjustments_made,
            "counted_by_user_id": self.counted_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class StocktakeLine(db.Model):
    __tablename__ = "stocktake_lines"
    __table_args__ = (
        db.UniqueConstraint("stocktake_id", "product_id", name="uq_stocktake_lines_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stocktake_id = db.Column(db.Integer, db.ForeignKey("stocktakes.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    expected_quantity = db.Column(QUANTITY, nullable=False)
    counted_quantity = db.Column(QUANTITY, nullable=False)
    discrepancy = db.Column(QUANTITY, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stocktake_id": self.stocktake_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "expected_quantity": format_quantity(self.expected_quantity),
            "counted_quantity": format_quantity(self.counted_quantity),
            "discrepancy": format_quantity(self.discrepancy),
            "notes": self.notes,
            "movement_id": self.movement_id,
        }
