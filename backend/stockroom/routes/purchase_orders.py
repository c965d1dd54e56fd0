# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

"""
Purchase order routes.

LIFECYCLE: draft -> sent -> confirmed -> received, cancel from any open state.
PUT /<id>/status drives the transition table, including a manual `received`
that writes no stock. POST /<id>/receive also marks the order received once
every item is fully received.
"""
from flask import Blueprint, request, g, current_app, jsonify

from ..services import purchase_order_service
from ..validation import ValidationError, ConflictError, NotFoundError, parse_int
from ..decorators import require_auth

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/inventory/purchase-orders")


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders_route():
    """Query params: status, vendor_id, limit (default 50, max 200). Newest first."""
    limit = max(1, min(request.args.get("limit", 50, type=int), 200))
    try:
        orders = purchase_order_service.list_purchase_orders(
            g.business_id,
            status=request.args.get("status") or None,
            vendor_id=request.args.get("vendor_id", type=int),
            limit=limit,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
def get_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.get_purchase_order(g.business_id, order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    data = order.to_dict(include_items=True)
    data["vendor"] = order.vendor.to_dict() if order.vendor else None
    return jsonify({"purchase_order": data})


@purchase_orders_bp.post("")
@require_auth
def create_purchase_order_route():
    """
    Create a draft order.

    Body:
    {
        "vendor_id": 1,                          // required, must be active
        "items": [{"product_id": 1, "quantity": 10, "unit_cost_cents": 250}],
        "expected_delivery_date": "2024-05-01",  // optional
        "notes", "internal_notes",               // optional
        "tax_cents", "shipping_cents", "discount_cents", "total_cents"  // optional
    }
    unit_cost_cents defaults to the product's current cost price.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    if payload.get("vendor_id") is None:
        return jsonify({"error": "Missing required fields: vendor_id"}), 400

    try:
        order = purchase_order_service.create_purchase_order(
            business_id=g.business_id,
            vendor_id=parse_int(payload["vendor_id"], "vendor_id"),
            items=payload.get("items"),
            expected_delivery_date=payload.get("expected_delivery_date"),
            notes=payload.get("notes"),
            internal_notes=payload.get("internal_notes"),
            tax_cents=payload.get("tax_cents", 0),
            shipping_cents=payload.get("shipping_cents", 0),
            discount_cents=payload.get("discount_cents", 0),
            total_cents=payload.get("total_cents"),
            created_by_user_id=g.current_user.id,
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"purchase_order": order.to_dict(include_items=True)}), 201


@purchase_orders_bp.put("/<int:order_id>/status")
@require_auth
def change_status_route(order_id: int):
    """Body: {"status": "sent" | "confirmed" | "received" | "cancelled", "reason"?: str}"""
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict) or not payload.get("status"):
        return jsonify({"error": "Missing required fields: status"}), 400

    try:
        order = purchase_order_service.change_status(
            business_id=g.business_id,
            order_id=order_id,
            status=str(payload["status"]),
            user_id=g.current_user.id,
            reason=payload.get("reason"),
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change purchase order status")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"purchase_order": order.to_dict()})


@purchase_orders_bp.post("/<int:order_id>/receive")
@require_auth
def receive_route(order_id: int):
    """
    Receive goods against a confirmed order.

    Body: {"items": [{"item_id", "received_quantity", "batch_number"?, "expiry_date"?}]}

    All lines succeed or none do. Re-submitting an applied receipt receives
    the goods twice (or is refused once it would exceed the ordered quantity).
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        order, received = purchase_order_service.receive_items(
            business_id=g.business_id,
            order_id=order_id,
            lines=payload.get("items"),
            received_by_user_id=g.current_user.id,
        )
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to receive purchase order items")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "purchase_order": order.to_dict(include_items=True),
        "received": [line.to_dict() for line in received],
    })
