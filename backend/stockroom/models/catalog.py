from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from stockroom.formatting import format_money, format_quantity
from stockroom.time_utils import to_iso_date, to_utc_z

QUANTITY = db.Numeric(12, 3, asdecimal=True)

STOCK_OUT = "out"
STOCK_LOW = "low"
STOCK_OVERSTOCK = "overstock"
STOCK_GOOD = "good"
STOCK_STATUSES = (STOCK_OUT, STOCK_LOW, STOCK_OVERSTOCK, STOCK_GOOD)

VENDOR_STATUSES = ("active", "inactive", "suspended")


class Category(db.Model):
    """
    Product category, optionally nested under a parent category.

    A category cannot be deleted while an active product references it.
    """
    __tablename__ = "product_categories"
    __table_args__ = (
        db.Index("ix_categories_business_sort", "business_id", "sort_order", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    parent_category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("Category", remote_side=[id])

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "description": self.description,
            "parent_category_id": self.parent_category_id,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Vendor(db.Model):
    """
    Supplier of products; referenced by Product and PurchaseOrder.

    Vendors are never deleted. status is one of active / inactive / suspended
    and only active vendors can be sent new purchase orders.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.Index("ix_vendors_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)

    # Contact information
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    zip_code = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(120), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    # Commercial
    tax_id = db.Column(db.String(64), nullable=True)
    payment_terms = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Vendor id={self.id} name={self.name!r} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "website": self.website,
            "tax_id": self.tax_id,
            "payment_terms": self.payment_terms,
            "notes": self.notes,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data with its current stock level.

    SKU is unique per business across active AND inactive products:
    UniqueConstraint("business_id", "sku"). Products are never hard-deleted.

    current_stock, batch_number and expiry_date are written ONLY by the stock
    ledger (services/inventory_service.py). Every change to current_stock has
    a matching StockMovement row.

    version_id is an optimistic-lock column: a stale read-modify-write of the
    stock level fails at flush with StaleDataError and the ledger retries.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
        db.Index("ix_products_business_name", "business_id", "name"),
        db.Index("ix_products_business_active", "business_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(128), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    brand = db.Column(db.String(120), nullable=True)
    size = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="piece")

    # Authoritative storage in minor units (paise/cents)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=True)
    retail_price_cents = db.Column(db.Integer, nullable=True)

    # Stock levels (decimal-capable: grams, millilitres, ...)
    current_stock = db.Column(QUANTITY, nullable=False, default=Decimal("0"))
    minimum_stock = db.Column(QUANTITY, nullable=False, default=Decimal("0"))
    maximum_stock = db.Column(QUANTITY, nullable=True)
    reorder_point = db.Column(QUANTITY, nullable=True)
    reorder_quantity = db.Column(QUANTITY, nullable=True)
    lead_time_days = db.Column(db.Integer, nullable=False, default=7)

    # Latest received batch (maintained by the ledger)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    location = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    track_stock = db.Column(db.Boolean, nullable=False, default=True)
    low_stock_alert = db.Column(db.Boolean, nullable=False, default=True)

    # Retail shelf
    available_for_retail = db.Column(db.Boolean, nullable=False, default=False)
    retail_stock_allocated = db.Column(QUANTITY, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    vendor = db.relationship("Vendor", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} business_id={self.business_id}>"

    @property
    def stock_status(self) -> str:
        """
        Derived, never stored:
        out (== 0), low (<= minimum), overstock (> maximum, when set), else good.
        """
        current = self.current_stock or Decimal("0")
        if current == 0:
            return STOCK_OUT
        if current <= (self.minimum_stock or Decimal("0")):
            return STOCK_LOW
        if self.maximum_stock and current > self.maximum_stock:
            return STOCK_OVERSTOCK
        return STOCK_GOOD

    @property
    def reorder_threshold(self) -> Decimal:
        """Reorder point, falling back to minimum stock (an unset or zero value falls through)."""
        return self.reorder_point or self.minimum_stock or Decimal("0")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor.name if self.vendor else None,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "brand": self.brand,
            "size": self.size,
            "unit": self.unit,
            "cost_price_cents": self.cost_price_cents,
            "cost_price_formatted": format_money(self.cost_price_cents),
            "selling_price_cents": self.selling_price_cents,
            "selling_price_formatted": format_money(self.selling_price_cents),
            "retail_price_cents": self.retail_price_cents,
            "retail_price_formatted": format_money(self.retail_price_cents),
            "current_stock": format_quantity(self.current_stock),
            "minimum_stock": format_quantity(self.minimum_stock),
            "maximum_stock": format_quantity(self.maximum_stock),
            "reorder_point": format_quantity(self.reorder_point),
            "reorder_quantity": format_quantity(self.reorder_quantity),
            "lead_time_days": self.lead_time_days,
            "stock_status": self.stock_status,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "location": self.location,
            "is_active": self.is_active,
            "track_stock": self.track_stock,
            "low_stock_alert": self.low_stock_alert,
            "available_for_retail": self.available_for_retail,
            "retail_stock_allocated": format_quantity(self.retail_stock_allocated),
            "notes": self.notes,
            "tags": list(self.tags or []),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
