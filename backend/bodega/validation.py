from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .models import (
    PRODUCT_TYPES,
    SUB_WAREHOUSE_TYPES,
    USER_ROLES,
    WAREHOUSE_TYPES,
)


# Maximum unit price: 9,999,999,999.99 fits Numeric(12, 2)
MAX_PRICE = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level missing entity."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU or barcode)."""


class ForbiddenError(ValueError):
    """403-level: authenticated but not allowed to act on this entity."""


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


def coerce_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            # str() first so 0.1 stays 0.1 instead of its binary expansion
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number")
    return result.quantize(Decimal("0.01"))


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Numeric):
        return coerce_decimal(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, JSON):
        if not isinstance(value, list):
            raise ValidationError(f"{col.key} must be a list")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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

    # Reject unknown / non-writable fields
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

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Blank optional strings are stored as NULL
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_fields(payload: dict, *fields: str) -> None:
    """Presence check for ad-hoc payloads that do not map onto one model."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def require_positive_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0")
    return number


def validate_price(value: Any, field: str = "price") -> Decimal | None:
    if value is None:
        return None
    price = coerce_decimal(value, field)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
    return price


def validate_serial_numbers(value: Any) -> list[str]:
    """Normalize a serial number list: strings, stripped, non-blank."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("serial_numbers must be a list")
    serials = []
    for raw in value:
        if not isinstance(raw, (str, int)) or isinstance(raw, bool):
            raise ValidationError("serial_numbers must contain strings")
        serial = str(raw).strip()
        if not serial:
            raise ValidationError("serial_numbers cannot contain blank values")
        serials.append(serial)
    return serials


def enforce_rules_product(patch: dict, *, current: dict | None = None) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.

    current: existing values for a partial update, so min/max are compared
    against what the row will hold after the patch.
    """
    merged = dict(current or {})
    merged.update(patch)

    if "product_type" in patch and patch["product_type"] not in PRODUCT_TYPES:
        raise ValidationError(f"product_type must be one of: {', '.join(PRODUCT_TYPES)}")

    min_stock = merged.get("min_stock")
    max_stock = merged.get("max_stock")
    if min_stock is not None and min_stock < 0:
        raise ValidationError("min_stock must be >= 0")
    if max_stock is not None and max_stock < 0:
        raise ValidationError("max_stock must be >= 0")
    if min_stock is not None and max_stock is not None and max_stock < min_stock:
        raise ValidationError("max_stock must be >= min_stock")

    if merged.get("product_type") == "intangible" and merged.get("requires_serial"):
        raise ValidationError("intangible products cannot require serial numbers")


def enforce_rules_warehouse(patch: dict, *, current: dict | None = None) -> None:
    merged = dict(current or {})
    merged.update(patch)

    warehouse_type = merged.get("warehouse_type") or "sub"
    if warehouse_type not in WAREHOUSE_TYPES:
        raise ValidationError(f"warehouse_type must be one of: {', '.join(WAREHOUSE_TYPES)}")

    sub_type = merged.get("sub_warehouse_type")
    if warehouse_type == "main" and sub_type is not None:
        raise ValidationError("main warehouses cannot have a sub_warehouse_type")
    if sub_type is not None and sub_type not in SUB_WAREHOUSE_TYPES:
        raise ValidationError(f"sub_warehouse_type must be one of: {', '.join(SUB_WAREHOUSE_TYPES)}")
    if warehouse_type == "main" and merged.get("parent_warehouse_id") is not None:
        raise ValidationError("main warehouses cannot have a parent warehouse")


def enforce_rules_user(patch: dict) -> None:
    if "role" in patch and patch["role"] not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    if "managed_warehouses" in patch and patch["managed_warehouses"] is not None:
        patch["managed_warehouses"] = [
            coerce_int(w, "managed_warehouses") for w in patch["managed_warehouses"]
        ]

    if "permissions" in patch and patch["permissions"] is not None:
        from .permissions import ALL_PERMISSIONS

        unknown = [p for p in patch["permissions"] if not isinstance(p, str) or p not in ALL_PERMISSIONS]
        if unknown:
            raise ValidationError(f"Unknown permissions: {', '.join(map(str, unknown))}")
        # de-duplicate, keep client order
        patch["permissions"] = list(dict.fromkeys(patch["permissions"]))
