# Overview: Flask API routes for product categories; parses input and returns JSON responses.

from flask import Blueprint, request, g, current_app, jsonify

from ..models import Category
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_auth

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "parent_category_id", "is_active", "sort_order"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/inventory/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    """Categories ordered by sort_order, then name; ?include_inactive=true shows all."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    categories = catalog_service.list_categories(g.business_id, include_inactive=include_inactive)
    return jsonify({"items": categories, "count": len(categories)})


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        category = catalog_service.get_category(g.business_id, category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"category": category.to_dict()}


@categories_bp.post("")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(business_id=g.business_id, patch=patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500

    return {"category": category.to_dict()}, 201


@categories_bp.put("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(
            business_id=g.business_id,
            category_id=category_id,
            patch=patch,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update category")
        return {"error": "Internal server error"}, 500

    return {"category": category.to_dict()}


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    """Fails with 409 while an active product uses the category."""
    try:
        catalog_service.delete_category(business_id=g.business_id, category_id=category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return {"error": "Internal server error"}, 500

    return {"ok": True}
