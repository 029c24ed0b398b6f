# Overview: Flask API routes for warehouses and cost centers; parses input and returns JSON responses.

"""
Warehouse and cost-center routes.

POST /api/cost-centers provisions "Bodega Principal <cc>" plus its four
sub-warehouses the first time a cost center is seen. Repeating the call
returns the existing set with 200 instead of 201.
"""
from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..models import Warehouse
from ..services import warehouse_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_warehouse,
    validate_payload,
)

WAREHOUSE_POLICY = ModelValidationPolicy(
    writable_fields=set(warehouse_service.WAREHOUSE_MUTABLE_FIELDS),
    required_on_create={"name", "cost_center"},
)

warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/warehouses")
cost_centers_bp = Blueprint("cost_centers", __name__, url_prefix="/api/cost-centers")


def _current_values(w: Warehouse) -> dict:
    return {
        "warehouse_type": w.warehouse_type,
        "sub_warehouse_type": w.sub_warehouse_type,
        "parent_warehouse_id": w.parent_warehouse_id,
    }


@warehouses_bp.get("")
@require_auth
@require_permission("view_warehouses")
def list_warehouses_route():
    """
    Query params:
    - cost_center: str (optional)
    - include_inactive: "true" to include soft-deleted warehouses
    """
    warehouses = warehouse_service.list_warehouses(
        cost_center=request.args.get("cost_center"),
        include_inactive=request.args.get("include_inactive", "").lower() == "true",
    )
    return jsonify([w.to_dict() for w in warehouses])


@warehouses_bp.get("/<int:warehouse_id>")
@require_auth
@require_permission("view_warehouses")
def get_warehouse_route(warehouse_id: int):
    try:
        w = warehouse_service.get_warehouse(warehouse_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(w.to_dict())


@warehouses_bp.post("")
@require_auth
@require_permission("create_warehouses")
def create_warehouse_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=False)
        enforce_rules_warehouse(patch)
        created = warehouse_service.create_warehouse(patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(created.to_dict()), 201


@warehouses_bp.put("/<int:warehouse_id>")
@require_auth
@require_permission("edit_warehouses")
def update_warehouse_route(warehouse_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        current = warehouse_service.get_warehouse(warehouse_id)
        patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=True)
        enforce_rules_warehouse(patch, current=_current_values(current))
        updated = warehouse_service.update_warehouse(warehouse_id=warehouse_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(updated.to_dict())


@warehouses_bp.delete("/<int:warehouse_id>")
@require_auth
@require_permission("delete_warehouses")
def delete_warehouse_route(warehouse_id: int):
    try:
        w = warehouse_service.delete_warehouse(warehouse_id=warehouse_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(w.to_dict())


@cost_centers_bp.get("")
@require_auth
@require_permission("view_warehouses")
def list_cost_centers_route():
    return jsonify(warehouse_service.list_cost_centers())


@cost_centers_bp.post("")
@require_auth
@require_permission("create_warehouses")
def create_cost_center_route():
    """
    Request body:
    {
        "cost_center": str,
        "location": str (optional)
    }

    Returns:
        201: Cost center provisioned (main + 4 subs)
        200: Cost center already existed
        400: Missing cost_center
    """
    data = request.get_json(silent=True) or {}
    location = str(data.get("location") or "").strip() or None

    try:
        main, created = warehouse_service.ensure_principal_warehouse(
            str(data.get("cost_center") or ""),
            location=location,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    body = {
        "cost_center": main.cost_center,
        "created": created,
        "main_warehouse": main.to_dict(),
        "sub_warehouses": [
            w.to_dict()
            for w in sorted(main.sub_warehouses, key=lambda w: w.id)
            if w.is_active
        ],
    }
    return jsonify(body), 201 if created else 200
