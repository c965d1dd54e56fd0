# Overview: Flask API routes for products; parses input and returns JSON responses.

"""
Product routes.

MULTI-TENANT: Every operation is scoped to g.business_id (set by @require_auth).
A product of another business answers 404.

DELETE is a soft delete (is_active=false). current_stock is read-only here;
it changes only through stock movements.
"""
from decimal import Decimal

from flask import Blueprint, request, g, current_app, jsonify

from ..models import Product
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    parse_quantity,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth

PRODUCT_WRITABLE_FIELDS = {
    "sku",
    "barcode",
    "name",
    "description",
    "brand",
    "size",
    "unit",
    "category_id",
    "vendor_id",
    "cost_price_cents",
    "selling_price_cents",
    "retail_price_cents",
    "minimum_stock",
    "maximum_stock",
    "reorder_point",
    "reorder_quantity",
    "lead_time_days",
    "location",
    "is_active",
    "track_stock",
    "low_stock_alert",
    "available_for_retail",
    "retail_stock_allocated",
    "notes",
    "tags",
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_WRITABLE_FIELDS,
    required_on_create={"sku", "name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/inventory/products")


def parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products for the caller's business.

    Query params:
    - search: matches name, SKU, barcode or brand
    - category_id, vendor_id: int
    - is_active, is_retail: true/false
    - stock_status: out | low | overstock | good
    - sort_by: name | sku | current_stock | created_at (default name)
    - sort_order: asc | desc
    - limit (default 50, max 200), offset
    """
    try:
        result = catalog_service.list_products(
            g.business_id,
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            vendor_id=request.args.get("vendor_id", type=int),
            is_active=parse_bool_arg("is_active"),
            is_retail=parse_bool_arg("is_retail"),
            stock_status=request.args.get("stock_status") or None,
            sort_by=request.args.get("sort_by", "name"),
            sort_order=request.args.get("sort_order", "asc"),
            limit=request.args.get("limit", type=int),
            offset=request.args.get("offset", 0, type=int),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to list products")
        return {"error": "Internal server error"}, 500

    return jsonify(result)


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Create a product.

    Body: product fields plus optional initial_stock (decimal). A nonzero
    initial_stock is recorded as an "Initial stock" receive movement.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    payload = dict(payload)
    raw_initial = payload.pop("initial_stock", None)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        initial_stock = parse_quantity(raw_initial, "initial_stock") if raw_initial is not None else Decimal("0")
        product = catalog_service.create_product(
            business_id=g.business_id,
            patch=patch,
            initial_stock=initial_stock,
            created_by_user_id=g.current_user.id,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}, 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    """Product with its 20 most recent stock movements."""
    try:
        data = catalog_service.get_product_detail(g.business_id, product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"product": data}


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if isinstance(payload, dict) and "current_stock" in payload:
        return {"error": "current_stock cannot be edited; record a stock movement instead"}, 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = catalog_service.update_product(
            business_id=g.business_id,
            product_id=product_id,
            patch=patch,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated, never removed."""
    try:
        product = catalog_service.deactivate_product(business_id=g.business_id, product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return {"error": "Internal server error"}, 500

    return {"ok": True, "product": product.to_dict()}
