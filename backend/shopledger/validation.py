from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from shopledger.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999,999.99 (fits Numeric(12, 2))
MAX_PRICE = Decimal("9999999999.99")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for create
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """
    Coerce a JSON-ish number to Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans, blanks and
    non-finite values are rejected.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not stripped.lstrip("-").isdigit():
                raise ValidationError(f"{col.key} must be an integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    # Decimals (money and quantities)
    if isinstance(coltype, Numeric):
        return to_decimal(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
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

    # Calendar dates (expiry)
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                return parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def _clean_field(col, raw: Any):
    """Coerce one value and apply the column's null/blank/length limits."""
    if raw is None:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be null")
        return None

    value = _coerce_value(col, raw)
    if isinstance(value, str) and isinstance(col.type, (String, Text)):
        if value == "" and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        length = getattr(col.type, "length", None)
        if length and len(value) > length:
            raise ValidationError(f"{col.key} exceeds max length {length}")
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean an incoming dict against a model's columns and a field policy.

    partial=False: create semantics, every required_on_create key must be present
    partial=True: patch semantics, only the keys given are checked

    Returns a patch holding only writable fields, coerced to column types.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted((policy.required_on_create or set()) - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    for key in payload:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in cols:
            raise ValidationError(f"Unknown field: {key}")

    return {key: _clean_field(cols[key], raw) for key, raw in payload.items()}


def enforce_rules_stock_item(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("price", "cost_price"):
        value = patch.get(field)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{field} must be >= 0")
        if value > MAX_PRICE:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")

    for field in ("quantity", "low_stock_alert"):
        value = patch.get(field)
        if value is not None and value < 0:
            raise ValidationError(f"{field} must be >= 0")


def require_shop_id(shop_id: Any) -> str:
    """Every record is scoped to a shop; an absent shop id is malformed input."""
    if shop_id is None or isinstance(shop_id, bool):
        raise ValidationError("shop_id is required")
    value = str(shop_id).strip()
    if not value:
        raise ValidationError("shop_id is required")
    return value
