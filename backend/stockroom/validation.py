from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from stockroom.time_utils import parse_iso_date, parse_iso_datetime


# Maximum price: 9,999,999.99 in major units (999,999,999 minor units)
MAX_PRICE_CENTS = 999_999_999

# Stock quantities are stored as Numeric(12, 3)
QUANTITY_SCALE = 3
MAX_QUANTITY = Decimal("999999999.999")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class NotFoundError(LookupError):
    """404-level tenant-scoped lookup miss."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_quantity(value: Any, field: str = "quantity") -> Decimal:
    """
    Coerce JSON input to a Decimal quantity.

    Accepts ints, floats and numeric strings; rejects booleans, NaN/Infinity
    and more than three decimal places.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
    else:
        raise ValidationError(f"{field} must be a number")

    try:
        qty = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")

    if not qty.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if abs(qty) > MAX_QUANTITY:
        raise ValidationError(f"{field} is too large")
    if qty.as_tuple().exponent < -QUANTITY_SCALE and qty != qty.quantize(Decimal(1).scaleb(-QUANTITY_SCALE)):
        raise ValidationError(f"{field} allows at most {QUANTITY_SCALE} decimal places")
    return qty


def parse_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_money(value: Any, field: str) -> int:
    cents = parse_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def parse_date_field(value: Any, field: str) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date")
    raise ValidationError(f"{field} must be an ISO-8601 date")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Numeric):
        return parse_quantity(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # the mobile client sends 0/1 flags
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        return parse_date_field(value, col.key)

    if isinstance(coltype, JSON):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"{col.key} must be a list of strings")
        return [v.strip() for v in value if v.strip()]

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


PRODUCT_PRICE_FIELDS = ("cost_price_cents", "selling_price_cents", "retail_price_cents")
PRODUCT_LEVEL_FIELDS = (
    "current_stock",
    "minimum_stock",
    "maximum_stock",
    "reorder_point",
    "reorder_quantity",
    "retail_stock_allocated",
)


def enforce_rules_product(patch: dict, *, existing=None) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    `existing` is the current Product on update so cross-field checks see merged values.
    """
    for field in PRODUCT_PRICE_FIELDS:
        price = patch.get(field)
        if price is None:
            continue
        if price < 0:
            raise ValidationError(f"{field} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")

    for field in PRODUCT_LEVEL_FIELDS:
        level = patch.get(field)
        if level is not None and level < 0:
            raise ValidationError(f"{field} must be >= 0")

    lead = patch.get("lead_time_days")
    if lead is not None and lead < 0:
        raise ValidationError("lead_time_days must be >= 0")

    def merged(field):
        if field in patch:
            return patch[field]
        return getattr(existing, field, None) if existing is not None else None

    minimum = merged("minimum_stock")
    maximum = merged("maximum_stock")
    if minimum is not None and maximum is not None and maximum < minimum:
        raise ValidationError("maximum_stock must be >= minimum_stock")
