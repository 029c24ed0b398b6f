# backend/bodega/routes/transfers.py
"""
Transfer order API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import transfer_service
from ..validation import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    coerce_int,
    require_fields,
    require_positive_int,
)

transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfer-orders")


@transfers_bp.route("", methods=["GET"])
@require_auth
@require_permission("view_transfer_orders")
def list_transfer_orders():
    """
    Query params:
    - status: pending | approved | rejected (optional)
    - cost_center: str (optional)
    """
    try:
        orders = transfer_service.list_transfer_orders(
            status=request.args.get("status"),
            cost_center=request.args.get("cost_center"),
        )
    except transfer_service.TransferError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify([o.to_dict() for o in orders])


@transfers_bp.route("/<int:order_id>", methods=["GET"])
@require_auth
@require_permission("view_transfer_orders")
def get_transfer_order(order_id: int):
    try:
        order = transfer_service.get_transfer_order(order_id)
    except transfer_service.TransferNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(order.to_dict())


@transfers_bp.route("", methods=["POST"])
@require_auth
@require_permission("create_transfer_orders")
def create_transfer_order():
    """
    Create a pending transfer order.

    Request body:
    {
        "product_id": int,
        "quantity": int,
        "source_warehouse_id": int,
        "destination_warehouse_id": int,
        "cost_center": str (optional, defaults to the source warehouse's),
        "notes": str (optional)
    }

    Returns:
        201: Order created (order_number OT-NNN)
        400: Invalid request or insufficient stock at source
        404: Product or warehouse not found
    """
    data = request.get_json(silent=True) or {}

    try:
        require_fields(data, "product_id", "quantity", "source_warehouse_id", "destination_warehouse_id")
        cost_center = str(data.get("cost_center") or "").strip() or None
        notes = str(data.get("notes") or "").strip() or None

        order = transfer_service.create_transfer_order(
            product_id=coerce_int(data["product_id"], "product_id"),
            quantity=require_positive_int(data["quantity"], "quantity"),
            source_warehouse_id=coerce_int(data["source_warehouse_id"], "source_warehouse_id"),
            destination_warehouse_id=coerce_int(data["destination_warehouse_id"], "destination_warehouse_id"),
            requester_id=g.current_user.id,
            cost_center=cost_center,
            notes=notes,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(order.to_dict()), 201


@transfers_bp.route("/<int:order_id>/status", methods=["PATCH"])
@require_auth
@require_permission("approve_transfer_orders")
def set_transfer_order_status(order_id: int):
    """
    Approve or reject a pending order.

    Request body:
    {
        "status": "approved" | "rejected"
    }

    Returns:
        200: Decision recorded (approval also moved the stock)
        400: Status not approved/rejected
        403: Approver does not manage these warehouses
        404: Order not found
        409: Order already decided, or insufficient stock at source
    """
    data = request.get_json(silent=True) or {}

    try:
        order = transfer_service.set_status(
            order_id=order_id,
            new_status=str(data.get("status") or "").strip().lower(),
            project_manager_id=g.current_user.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ForbiddenError as e:
        return jsonify({"error": str(e)}), 403
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(order.to_dict())
