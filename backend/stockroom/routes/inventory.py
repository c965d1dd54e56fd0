# Overview: Flask API routes for stock movements, stocktakes, reorder advice and dashboards.

"""
Inventory routes.

All stock changes go through the stock ledger (services/inventory_service.py);
these handlers only parse input and map service exceptions to status codes:
ValidationError 400, NotFoundError 404, ConflictError 409.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive.
- start_date / end_date filters are inclusive. A date-only end_date covers
  that whole day.
"""
from datetime import timedelta

from flask import Blueprint, request, g, current_app, jsonify

from ..services import inventory_service, reorder_service, reporting_service, stocktake_service
from stockroom.time_utils import parse_iso_datetime
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    parse_date_field,
    parse_int,
    parse_money,
    parse_quantity,
)
from ..decorators import require_auth

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MAX_MOVEMENT_LIMIT = 500


def _optional_text(payload: dict, key: str):
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_range_arg(name: str, *, end_of_day: bool = False):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        dt = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")
    if end_of_day and len(raw.strip()) == 10:
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


@inventory_bp.post("/stock-adjustment")
@require_auth
def stock_adjustment_route():
    """
    Record a manual stock movement.

    Body:
        product_id (int), type (receive|usage|adjustment|transfer|damage|return|expired),
        quantity (decimal; for adjustment the new absolute level),
        reason?, notes?, unit_cost_cents? (defaults to product cost),
        batch_number?, expiry_date?
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    missing = sorted(k for k in ("product_id", "type", "quantity") if payload.get(k) is None)
    if missing:
        return {"error": f"Missing required fields: {', '.join(missing)}"}, 400

    try:
        unit_cost = payload.get("unit_cost_cents")
        result = inventory_service.apply_movement(
            business_id=g.business_id,
            product_id=parse_int(payload["product_id"], "product_id"),
            movement_type=str(payload["type"]),
            quantity=parse_quantity(payload["quantity"]),
            unit_cost_cents=parse_money(unit_cost, "unit_cost_cents") if unit_cost is not None else None,
            reason=_optional_text(payload, "reason"),
            notes=_optional_text(payload, "notes"),
            batch_number=_optional_text(payload, "batch_number"),
            expiry_date=parse_date_field(payload.get("expiry_date"), "expiry_date"),
            performed_by_user_id=g.current_user.id,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return {"error": "Internal server error"}, 500

    data = result.to_dict()
    data["product"] = result.movement.product.to_dict()
    return data, 201


@inventory_bp.get("/stock-movements")
@require_auth
def list_stock_movements_route():
    """
    Movement history, newest first.

    Query params: product_id, type, start_date, end_date, limit (default 50, max 500)
    """
    try:
        limit = request.args.get("limit", 50, type=int)
        limit = max(1, min(limit, MAX_MOVEMENT_LIMIT))
        movements = inventory_service.list_movements(
            g.business_id,
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("type") or None,
            start=_parse_range_arg("start_date"),
            end=_parse_range_arg("end_date", end_of_day=True),
            limit=limit,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)})


@inventory_bp.post("/stocktake")
@require_auth
def stocktake_route():
    """
    Submit a physical count.

    Body: {"items": [{"product_id", "counted_quantity", "notes"?}], "notes"?}
    Only discrepancies produce adjustment movements.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        stocktake, adjustments = stocktake_service.reconcile(
            business_id=g.business_id,
            counts=payload.get("items"),
            notes=_optional_text(payload, "notes"),
            counted_by_user_id=g.current_user.id,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to reconcile stocktake")
        return {"error": "Internal server error"}, 500

    return {
        "stocktake": stocktake.to_dict(include_lines=True),
        "adjustments": adjustments,
        "adjustments_made": len(adjustments),
    }, 201


@inventory_bp.get("/reorder-suggestions")
@require_auth
def reorder_suggestions_route():
    """Products at or below their reorder threshold; ?default_quantity= overrides the fallback."""
    raw_default = request.args.get("default_quantity")
    try:
        default_quantity = None
        if raw_default:
            default_quantity = parse_quantity(raw_default, "default_quantity")
            if default_quantity <= 0:
                raise ValidationError("default_quantity must be > 0")
        suggestions = reorder_service.suggest_reorders(g.business_id, default_quantity=default_quantity)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return jsonify({"items": suggestions, "count": len(suggestions)})


@inventory_bp.get("/stats")
@require_auth
def stats_route():
    try:
        stats = reporting_service.inventory_stats(g.business_id)
    except Exception:
        current_app.logger.exception("Failed to compute inventory stats")
        return {"error": "Internal server error"}, 500
    return {"stats": stats}


@inventory_bp.get("/analytics")
@require_auth
def analytics_route():
    """?period=week (default) or month."""
    try:
        analytics = reporting_service.inventory_analytics(
            g.business_id,
            period=request.args.get("period", "week"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to compute inventory analytics")
        return {"error": "Internal server error"}, 500
    return analytics
