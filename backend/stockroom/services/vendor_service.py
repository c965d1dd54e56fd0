# Overview: Service-layer operations for vendors; encapsulates business logic and database work.

"""
Vendor Service

MULTI-TENANT: Vendors are scoped to businesses via business_id. A vendor of
another business is reported exactly like a missing one.

LIFECYCLE: Vendors are never deleted. status moves between active,
inactive and suspended; only active vendors can receive new purchase orders.
"""

from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import Product, PurchaseOrder, Vendor
from ..models.catalog import VENDOR_STATUSES
from ..models.purchasing import PO_CANCELLED
from ..validation import NotFoundError, ValidationError
from stockroom.formatting import format_money

RECENT_ORDERS_LIMIT = 10


class VendorNotFoundError(NotFoundError):
    """Raised when a vendor is not found in the caller's business."""


def get_vendor(business_id: int, vendor_id: int) -> Vendor:
    vendor = db.session.query(Vendor).filter_by(id=vendor_id, business_id=business_id).first()
    if not vendor:
        raise VendorNotFoundError(f"Vendor {vendor_id} not found")
    return vendor


def require_active_vendor(business_id: int, vendor_id: int) -> Vendor:
    """
    Validate that a vendor can be used for a new purchase order.

    Raises:
        VendorNotFoundError: If vendor doesn't exist in this business
        ValidationError: If vendor is not active
    """
    vendor = get_vendor(business_id, vendor_id)
    if vendor.status != "active":
        raise ValidationError(f"Vendor '{vendor.name}' is {vendor.status}")
    return vendor


def _check_status(status) -> None:
    if status is not None and status not in VENDOR_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(VENDOR_STATUSES)}")


def create_vendor(*, business_id: int, patch: dict) -> Vendor:
    """
    Create a vendor from a validated patch.

    Raises:
        ValidationError: If name is blank or status is unknown
    """
    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("Vendor name is required")
    _check_status(patch.get("status"))

    vendor = Vendor(business_id=business_id)
    for key, value in patch.items():
        setattr(vendor, key, value)
    vendor.name = name
    if not vendor.status:
        vendor.status = "active"

    db.session.add(vendor)
    db.session.commit()
    return vendor


def update_vendor(*, business_id: int, vendor_id: int, patch: dict) -> Vendor:
    """
    Update vendor fields present in the patch.

    Raises:
        VendorNotFoundError: If vendor not found
        ValidationError: If name would become blank or status is unknown
    """
    vendor = get_vendor(business_id, vendor_id)

    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise ValidationError("Vendor name cannot be empty")
        patch = {**patch, "name": name}
    _check_status(patch.get("status"))

    for key, value in patch.items():
        setattr(vendor, key, value)

    db.session.commit()
    return vendor


def list_vendors(
    business_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
) -> list[dict]:
    """
    Vendors with aggregate counts, ordered by name.

    total_ordered_cents excludes cancelled orders.
    """
    _check_status(status)

    product_counts = (
        db.session.query(Product.vendor_id, func.count(Product.id).label("product_count"))
        .filter(Product.business_id == business_id, Product.is_active.is_(True))
        .group_by(Product.vendor_id)
        .subquery()
    )
    order_stats = (
        db.session.query(
            PurchaseOrder.vendor_id,
            func.count(PurchaseOrder.id).label("order_count"),
            func.coalesce(
                func.sum(case((PurchaseOrder.status != PO_CANCELLED, PurchaseOrder.total_cents), else_=0)),
                0,
            ).label("total_ordered"),
        )
        .filter(PurchaseOrder.business_id == business_id)
        .group_by(PurchaseOrder.vendor_id)
        .subquery()
    )

    q = (
        db.session.query(
            Vendor,
            func.coalesce(product_counts.c.product_count, 0),
            func.coalesce(order_stats.c.order_count, 0),
            func.coalesce(order_stats.c.total_ordered, 0),
        )
        .outerjoin(product_counts, product_counts.c.vendor_id == Vendor.id)
        .outerjoin(order_stats, order_stats.c.vendor_id == Vendor.id)
        .filter(Vendor.business_id == business_id)
    )

    if status:
        q = q.filter(Vendor.status == status)

    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Vendor.name.ilike(pattern),
            Vendor.contact_person.ilike(pattern),
            Vendor.email.ilike(pattern),
        ))

    rows = q.order_by(Vendor.name.asc(), Vendor.id.asc()).all()

    results = []
    for vendor, product_count, order_count, total_ordered in rows:
        data = vendor.to_dict()
        data["product_count"] = int(product_count)
        data["order_count"] = int(order_count)
        data["total_ordered_cents"] = int(total_ordered)
        data["total_ordered_formatted"] = format_money(int(total_ordered))
        results.append(data)
    return results


def get_vendor_detail(business_id: int, vendor_id: int) -> dict:
    """Vendor with its active products and most recent purchase orders."""
    vendor = get_vendor(business_id, vendor_id)

    products = (
        db.session.query(Product)
        .filter(
            Product.business_id == business_id,
            Product.vendor_id == vendor.id,
            Product.is_active.is_(True),
        )
        .order_by(Product.name.asc())
        .all()
    )
    orders = (
        db.session.query(PurchaseOrder)
        .filter(PurchaseOrder.business_id == business_id, PurchaseOrder.vendor_id == vendor.id)
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .limit(RECENT_ORDERS_LIMIT)
        .all()
    )

    data = vendor.to_dict()
    data["products"] = [p.to_dict() for p in products]
    data["recent_orders"] = [o.to_dict() for o in orders]
    return data
