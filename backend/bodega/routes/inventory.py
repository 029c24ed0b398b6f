# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/bodega/routes/inventory.py
"""
Inventory routes.

- /api/inventory: materialized balances (read only)
- /api/inventory-movements: the ledger; POST appends one movement
- /api/product-entry, /api/stock-entry: receiving stock, with serial
  validation for serial-tracked products and optional monthly price

Balances are never written directly; every change goes through a movement.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..models import Product
from ..services import inventory_service, products_service, warehouse_service
from ..services.products_service import PRODUCT_POLICY
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    require_fields,
    require_positive_int,
    validate_payload,
    validate_price,
    validate_serial_numbers,
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")
movements_bp = Blueprint("inventory_movements", __name__, url_prefix="/api/inventory-movements")
entries_bp = Blueprint("entries", __name__, url_prefix="/api")


def _entry_response(movement) -> dict:
    return {
        "movement": movement.to_dict(details=True),
        "quantity": inventory_service.current_quantity(movement.product_id, movement.warehouse_id),
    }


def _optional_text(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@inventory_bp.get("")
@require_auth
@require_permission("view_inventory")
def list_inventory_route():
    """All balances, most recently updated first."""
    return jsonify([row.to_dict() for row in inventory_service.list_inventory()])


@inventory_bp.get("/warehouse/<int:warehouse_id>")
@require_auth
@require_permission("view_inventory")
def inventory_by_warehouse_route(warehouse_id: int):
    try:
        warehouse_service.get_warehouse(warehouse_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    rows = inventory_service.list_inventory(warehouse_id=warehouse_id)
    return jsonify([row.to_dict() for row in rows])


@inventory_bp.get("/product/<int:product_id>")
@require_auth
@require_permission("view_inventory")
def inventory_by_product_route(product_id: int):
    try:
        products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    rows = inventory_service.list_inventory(product_id=product_id)
    return jsonify([row.to_dict() for row in rows])


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("view_inventory")
def low_stock_route():
    """Pairs at or below the product's min_stock."""
    return jsonify([row.to_dict() for row in inventory_service.low_stock_items()])


@movements_bp.get("")
@require_auth
@require_permission("view_inventory")
def list_movements_route():
    """
    Newest first.

    Query params:
    - limit: int (optional, default MOVEMENT_LIST_LIMIT)
    - warehouse_id: int (optional)
    """
    try:
        limit = request.args.get("limit")
        limit = require_positive_int(limit, "limit") if limit is not None else current_app.config["MOVEMENT_LIST_LIMIT"]
        warehouse_id = request.args.get("warehouse_id")
        warehouse_id = coerce_int(warehouse_id, "warehouse_id") if warehouse_id is not None else None
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    movements = inventory_service.list_movements(limit=limit, warehouse_id=warehouse_id)
    return jsonify([m.to_dict(details=True) for m in movements])


@movements_bp.get("/product/<int:product_id>")
@require_auth
@require_permission("view_inventory")
def movements_by_product_route(product_id: int):
    try:
        products_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    movements = inventory_service.list_movements(limit=None, product_id=product_id)
    return jsonify([m.to_dict(details=True) for m in movements])


@movements_bp.post("")
@require_auth
@require_permission("create_inventory")
def create_movement_route():
    """
    Append one movement to the ledger.

    Request body:
    {
        "product_id": int,
        "warehouse_id": int,
        "movement_type": "in" | "out",
        "quantity": int,
        "reason": str (optional),
        "applied_price": number (optional),
        "serial_numbers": [str] (required for 'in' on serial-tracked products),
        "serial_status": "sold" | "damaged" (optional, 'out' only)
    }

    Returns:
        201: Movement recorded
        400: Invalid payload or serial list
        404: Product or warehouse not found
        409: Serial number already registered / not active
    """
    data = request.get_json(silent=True) or {}

    try:
        require_fields(data, "product_id", "warehouse_id", "movement_type", "quantity")
        movement = inventory_service.apply_movement(
            product_id=coerce_int(data["product_id"], "product_id"),
            warehouse_id=coerce_int(data["warehouse_id"], "warehouse_id"),
            movement_type=str(data["movement_type"]).strip().lower(),
            quantity=require_positive_int(data["quantity"], "quantity"),
            user_id=g.current_user.id,
            reason=_optional_text(data.get("reason")),
            applied_price=validate_price(data.get("applied_price"), "applied_price"),
            serial_numbers=validate_serial_numbers(data.get("serial_numbers")),
            serial_status=str(data.get("serial_status") or "sold"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(movement.to_dict(details=True)), 201


@entries_bp.post("/stock-entry")
@require_auth
@require_permission("create_inventory")
def stock_entry_route():
    """
    Receive stock of an existing product.

    Request body:
    {
        "product_id": int,
        "warehouse_id": int,
        "quantity": int,
        "price": number (optional; also becomes this month's price),
        "serial_numbers": [str] (required when the product requires serials),
        "reason": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        require_fields(data, "product_id", "warehouse_id", "quantity")
        movement = inventory_service.record_stock_entry(
            product_id=coerce_int(data["product_id"], "product_id"),
            warehouse_id=coerce_int(data["warehouse_id"], "warehouse_id"),
            quantity=require_positive_int(data["quantity"], "quantity"),
            user_id=g.current_user.id,
            price=validate_price(data.get("price")),
            serial_numbers=validate_serial_numbers(data.get("serial_numbers")),
            reason=_optional_text(data.get("reason")),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(_entry_response(movement)), 201


@entries_bp.post("/product-entry")
@require_auth
@require_permission("create_inventory")
def product_entry_route():
    """
    Receive stock, optionally creating the product in the same transaction.

    Request body: as /stock-entry, but instead of product_id a nested
    "product" object (name, sku, barcode, ...) may be sent to create it.
    Creating a product also requires create_products.
    """
    data = request.get_json(silent=True) or {}

    product_payload = data.get("product")
    if product_payload is not None and "create_products" not in g.permissions:
        return jsonify({"error": "Permission denied", "required_permission": "create_products"}), 403

    try:
        require_fields(data, "warehouse_id", "quantity")

        product_patch = None
        product_id = None
        if product_payload is not None:
            if not isinstance(product_payload, dict):
                raise ValidationError("product must be an object")
            product_patch = validate_payload(
                model=Product, payload=product_payload, policy=PRODUCT_POLICY, partial=False
            )
            enforce_rules_product(product_patch)
        elif data.get("product_id") is not None:
            product_id = coerce_int(data["product_id"], "product_id")

        product, movement = inventory_service.record_product_entry(
            warehouse_id=coerce_int(data["warehouse_id"], "warehouse_id"),
            quantity=require_positive_int(data["quantity"], "quantity"),
            user_id=g.current_user.id,
            product_id=product_id,
            product_patch=product_patch,
            price=validate_price(data.get("price")),
            serial_numbers=validate_serial_numbers(data.get("serial_numbers")),
            reason=_optional_text(data.get("reason")),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    body = _entry_response(movement)
    body["product"] = product.to_dict()
    return jsonify(body), 201
