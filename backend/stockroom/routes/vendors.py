# Overview: Flask API routes for vendor operations; parses input and returns JSON responses.

"""
Vendor Routes

Vendors are scoped to businesses (multi-tenant) and are never deleted;
set status to inactive or suspended instead.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..models import Vendor
from ..services import vendor_service
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, NotFoundError

VENDOR_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "contact_person",
        "email",
        "phone",
        "address",
        "city",
        "state",
        "zip_code",
        "country",
        "website",
        "tax_id",
        "payment_terms",
        "notes",
        "status",
    },
    required_on_create={"name"},
)

vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/inventory/vendors")


@vendors_bp.get("")
@require_auth
def list_vendors_route():
    """
    List vendors for the caller's business.

    Query parameters:
    - status: active | inactive | suspended
    - search: matches name, contact person or email

    Returns:
        {items: Vendor[] (with product_count, order_count, total_ordered_cents), count: int}
    """
    try:
        vendors = vendor_service.list_vendors(
            g.business_id,
            status=request.args.get("status") or None,
            search=request.args.get("search"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"items": vendors, "count": len(vendors)})


@vendors_bp.get("/<int:vendor_id>")
@require_auth
def get_vendor_route(vendor_id: int):
    """Vendor detail with its active products and 10 most recent orders."""
    try:
        vendor = vendor_service.get_vendor_detail(g.business_id, vendor_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"vendor": vendor})


@vendors_bp.post("")
@require_auth
def create_vendor_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Vendor, payload=payload, policy=VENDOR_POLICY, partial=False)
        vendor = vendor_service.create_vendor(business_id=g.business_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create vendor")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"vendor": vendor.to_dict()}), 201


@vendors_bp.put("/<int:vendor_id>")
@require_auth
def update_vendor_route(vendor_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Vendor, payload=payload, policy=VENDOR_POLICY, partial=True)
        vendor = vendor_service.update_vendor(business_id=g.business_id, vendor_id=vendor_id, patch=patch)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update vendor")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"vendor": vendor.to_dict()})
