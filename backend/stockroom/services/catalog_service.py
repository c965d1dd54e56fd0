# Overview: Service-layer operations for products and categories; encapsulates business logic and database work.

"""
Catalog Service

MULTI-TENANT: Every product and category belongs to one business. Lookups
filter on business_id so another tenant's rows look missing (404).

Products:
- SKU is unique per business across active and inactive products.
- Products are never hard-deleted; deactivate instead.
- current_stock is never written here. Opening stock goes through the ledger
  as one "Initial stock" receive movement in the same transaction.

Categories:
- Cannot be deleted while an active product references it.
- Parent must be another category of the same business (no cycles).
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product
from ..models.catalog import STOCK_GOOD, STOCK_LOW, STOCK_OUT, STOCK_OVERSTOCK, STOCK_STATUSES
from ..validation import ConflictError, NotFoundError, ValidationError, enforce_rules_product
from .concurrency import run_with_retry
from .inventory_service import get_product_for_business, list_movements, record_initial_stock
from .vendor_service import get_vendor

RECENT_MOVEMENTS_LIMIT = 20
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

PRODUCT_SORT_COLUMNS = {
    "name": Product.name,
    "sku": Product.sku,
    "current_stock": Product.current_stock,
    "created_at": Product.created_at,
}

# Fields the ledger owns; catalog edits must never carry them.
LEDGER_OWNED_FIELDS = {"current_stock", "version_id"}


class DuplicateSkuError(ConflictError):
    """Another product of this business (active or not) already holds the SKU."""


class CategoryNotFoundError(NotFoundError):
    pass


class CategoryInUseError(ConflictError):
    """An active product still references the category."""


def get_category(business_id: int, category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id, business_id=business_id).first()
    if not category:
        raise CategoryNotFoundError(f"Category {category_id} not found")
    return category


def _check_references(business_id: int, patch: dict) -> None:
    """category_id / vendor_id must point at rows of the same business."""
    if patch.get("category_id") is not None:
        get_category(business_id, patch["category_id"])
    if patch.get("vendor_id") is not None:
        get_vendor(business_id, patch["vendor_id"])


def _check_sku_free(business_id: int, sku: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.business_id == business_id, Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise DuplicateSkuError(f"SKU '{sku}' already exists")


def _reject_ledger_fields(patch: dict) -> None:
    owned = sorted(LEDGER_OWNED_FIELDS & set(patch))
    if owned:
        raise ValidationError(f"Field not allowed: {owned[0]} (stock is changed through stock movements)")


def create_product(
    *,
    business_id: int,
    patch: dict,
    initial_stock: Decimal | None = None,
    created_by_user_id: int | None = None,
) -> Product:
    """
    Create a product from a validated patch.

    A nonzero initial_stock is recorded as exactly one receive movement with
    reason "Initial stock"; product and movement commit together.

    Raises:
        ValidationError: bad references, rules, or initial stock on an untracked product
        DuplicateSkuError: SKU already used in this business
        CategoryNotFoundError / VendorNotFoundError: reference outside this business
    """
    _reject_ledger_fields(patch)
    enforce_rules_product(patch)
    _check_references(business_id, patch)

    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required")
    _check_sku_free(business_id, sku)

    if initial_stock is not None and initial_stock < 0:
        raise ValidationError("initial_stock must be >= 0")
    if initial_stock and patch.get("track_stock") is False:
        raise ValidationError("initial_stock requires track_stock")

    product = Product(business_id=business_id)
    for key, value in patch.items():
        setattr(product, key, value)
    if product.tags is None:
        product.tags = []

    try:
        db.session.add(product)
        db.session.flush()

        if initial_stock:
            record_initial_stock(product, initial_stock, performed_by_user_id=created_by_user_id)

        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent create of the same SKU.
        db.session.rollback()
        raise DuplicateSkuError(f"SKU '{sku}' already exists")

    return product


def update_product(*, business_id: int, product_id: int, patch: dict) -> Product:
    """
    Apply a validated patch to a product (everything except stock).

    Raises:
        ProductNotFoundError: not in this business
        ValidationError: rules or ledger-owned fields
        DuplicateSkuError: SKU change collides
    """
    _reject_ledger_fields(patch)

    def _op():
        product = get_product_for_business(business_id, product_id)
        enforce_rules_product(patch, existing=product)
        _check_references(business_id, patch)

        if "sku" in patch and patch["sku"] != product.sku:
            _check_sku_free(business_id, patch["sku"], exclude_id=product.id)

        for key, value in patch.items():
            setattr(product, key, value)

        db.session.commit()
        return product

    try:
        return run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        raise DuplicateSkuError(f"SKU '{patch.get('sku')}' already exists")


def deactivate_product(*, business_id: int, product_id: int) -> Product:
    """Soft delete. Idempotent; history and references are preserved."""
    def _op():
        product = get_product_for_business(business_id, product_id)
        if product.is_active:
            product.is_active = False
            db.session.commit()
        return product

    return run_with_retry(_op)


def get_product_detail(business_id: int, product_id: int) -> dict:
    product = get_product_for_business(business_id, product_id)
    data = product.to_dict()
    data["recent_movements"] = [
        m.to_dict()
        for m in list_movements(business_id, product_id=product.id, limit=RECENT_MOVEMENTS_LIMIT)
    ]
    return data


def stock_status_clause(status: str):
    """SQL filter matching Product.stock_status for one status value."""
    current = Product.current_stock
    minimum = func.coalesce(Product.minimum_stock, 0)
    has_max = and_(Product.maximum_stock.isnot(None), Product.maximum_stock > 0)

    if status == STOCK_OUT:
        return current == 0
    if status == STOCK_LOW:
        return and_(current > 0, current <= minimum)
    if status == STOCK_OVERSTOCK:
        return and_(current > 0, current > minimum, has_max, current > Product.maximum_stock)
    if status == STOCK_GOOD:
        return and_(
            current > 0,
            current > minimum,
            or_(~has_max, current <= Product.maximum_stock),
        )
    raise ValidationError(f"stock_status must be one of: {', '.join(STOCK_STATUSES)}")


def list_products(
    business_id: int,
    *,
    search: str | None = None,
    category_id: int | None = None,
    vendor_id: int | None = None,
    is_active: bool | None = None,
    is_retail: bool | None = None,
    stock_status: str | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    limit: int | None = None,
    offset: int = 0,
) -> dict:
    """
    Filtered, sorted, paginated product listing.

    Returns:
        {"items": [...], "count": n_on_page, "total": n_matching, "limit": l, "offset": o}
    """
    if sort_by not in PRODUCT_SORT_COLUMNS:
        raise ValidationError(f"sort_by must be one of: {', '.join(PRODUCT_SORT_COLUMNS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'")

    limit = min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be >= 1 and offset >= 0")

    q = db.session.query(Product).filter(Product.business_id == business_id)

    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.brand.ilike(pattern),
        ))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if vendor_id is not None:
        q = q.filter(Product.vendor_id == vendor_id)
    if is_active is not None:
        q = q.filter(Product.is_active.is_(is_active))
    if is_retail is not None:
        q = q.filter(Product.available_for_retail.is_(is_retail))
    if stock_status:
        q = q.filter(stock_status_clause(stock_status))

    total = q.count()

    column = PRODUCT_SORT_COLUMNS[sort_by]
    ordering = column.desc() if sort_order == "desc" else column.asc()
    products = q.order_by(ordering, Product.id.asc()).offset(offset).limit(limit).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "total": total,
        "limit": limit,
        "offset": offset,
    }


# -- Categories ---------------------------------------------------------------

def _check_parent(business_id: int, parent_id: int | None, *, category_id: int | None = None) -> None:
    if parent_id is None:
        return
    if category_id is not None and parent_id == category_id:
        raise ValidationError("A category cannot be its own parent")

    parent = get_category(business_id, parent_id)
    # Walk up from the new parent; meeting category_id would close a loop.
    seen = set()
    node = parent
    while node is not None and node.id not in seen:
        if category_id is not None and node.id == category_id:
            raise ValidationError("parent_category_id would create a cycle")
        seen.add(node.id)
        node = node.parent


def list_categories(business_id: int, *, include_inactive: bool = False) -> list[dict]:
    """Categories ordered by sort_order then name, with active product counts."""
    counts = (
        db.session.query(Product.category_id, func.count(Product.id).label("product_count"))
        .filter(Product.business_id == business_id, Product.is_active.is_(True))
        .group_by(Product.category_id)
        .subquery()
    )
    q = (
        db.session.query(Category, func.coalesce(counts.c.product_count, 0))
        .outerjoin(counts, counts.c.category_id == Category.id)
        .filter(Category.business_id == business_id)
    )
    if not include_inactive:
        q = q.filter(Category.is_active.is_(True))

    rows = q.order_by(Category.sort_order.asc(), Category.name.asc(), Category.id.asc()).all()

    results = []
    for category, product_count in rows:
        data = category.to_dict()
        data["product_count"] = int(product_count)
        results.append(data)
    return results


def create_category(*, business_id: int, patch: dict) -> Category:
    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    _check_parent(business_id, patch.get("parent_category_id"))

    category = Category(business_id=business_id)
    for key, value in patch.items():
        setattr(category, key, value)
    category.name = name
    if category.sort_order is None:
        category.sort_order = 0

    db.session.add(category)
    db.session.commit()
    return category


def update_category(*, business_id: int, category_id: int, patch: dict) -> Category:
    category = get_category(business_id, category_id)

    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        patch = {**patch, "name": name}
    if "parent_category_id" in patch:
        _check_parent(business_id, patch["parent_category_id"], category_id=category.id)

    for key, value in patch.items():
        setattr(category, key, value)

    db.session.commit()
    return category


def delete_category(*, business_id: int, category_id: int) -> None:
    """
    Hard-delete a category no active product uses.

    Inactive products and child categories referencing it are detached
    (their category_id / parent_category_id become null).

    Raises:
        CategoryNotFoundError: not in this business
        CategoryInUseError: an active product references it
    """
    category = get_category(business_id, category_id)

    in_use = (
        db.session.query(func.count(Product.id))
        .filter(
            Product.business_id == business_id,
            Product.category_id == category.id,
            Product.is_active.is_(True),
        )
        .scalar()
    )
    if in_use:
        raise CategoryInUseError(
            f"Category '{category.name}' is used by {in_use} active product(s)"
        )

    for product in db.session.query(Product).filter_by(business_id=business_id, category_id=category.id):
        product.category_id = None
    for child in db.session.query(Category).filter_by(business_id=business_id, parent_category_id=category.id):
        child.parent_category_id = None

    db.session.delete(category)
    db.session.commit()
