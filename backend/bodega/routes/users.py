# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration routes.

SECURITY:
- Read operations require view_users (a user may always read their own record)
- Write operations require manage_users
- Passwords are never returned; only bcrypt hashes are stored
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..models import User
from ..permissions import PERMISSION_DEFINITIONS, get_effective_permissions
from ..services import auth_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_user,
    validate_payload,
)

USER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "role", "cost_center", "is_active", "permissions", "managed_warehouses"},
    required_on_create={"username", "role"},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _user_payload(user: User) -> dict:
    data = user.to_dict()
    data["effective_permissions"] = sorted(get_effective_permissions(user))
    return data


@users_bp.get("")
@require_auth
@require_permission("view_users")
def list_users_route():
    return jsonify([_user_payload(u) for u in auth_service.list_users()])


@users_bp.get("/permissions")
@require_auth
@require_permission("view_users")
def list_permission_definitions_route():
    """Catalog of capability codes for the permissions editor."""
    return jsonify([
        {"code": code, "label": label, "category": category}
        for code, label, category in PERMISSION_DEFINITIONS
    ])


@users_bp.get("/<int:user_id>")
@require_auth
def get_user_route(user_id: int):
    if user_id != g.current_user.id and "view_users" not in g.permissions:
        return jsonify({"error": "Permission denied", "required_permission": "view_users"}), 403
    try:
        user = auth_service.get_user(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(_user_payload(user))


@users_bp.post("")
@require_auth
@require_permission("manage_users")
def create_user_route():
    """
    Create a user.

    Request body:
    {
        "username": str,
        "password": str,
        "role": "user" | "admin" | "project_manager" | "warehouse_operator",
        "cost_center": str (optional),
        "permissions": [str] (optional),
        "managed_warehouses": [int] (optional)
    }
    """
    payload = dict(request.get_json(silent=True) or {})
    password = payload.pop("password", None)
    if not password:
        return jsonify({"error": "password is required"}), 400

    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
        enforce_rules_user(patch)
        user = auth_service.create_user(password=str(password), patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(_user_payload(user)), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("manage_users")
def update_user_route(user_id: int):
    payload = dict(request.get_json(silent=True) or {})
    password = payload.pop("password", None)

    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
        enforce_rules_user(patch)
        user = auth_service.update_user(user_id=user_id, patch=patch, password=password or None)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify(_user_payload(user))


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("manage_users")
def delete_user_route(user_id: int):
    """Deactivate (soft delete). An admin cannot deactivate their own account."""
    if user_id == g.current_user.id:
        return jsonify({"error": "You cannot deactivate your own account"}), 400
    try:
        user = auth_service.deactivate_user(user_id=user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(_user_payload(user))


@users_bp.put("/<int:user_id>/permissions")
@require_auth
@require_permission("manage_users")
def set_permissions_route(user_id: int):
    """
    Replace a user's explicit permission grants.

    Request body:
    {
        "permissions": [str],
        "managed_warehouses": [int] (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    permissions = data.get("permissions")
    if not isinstance(permissions, list):
        return jsonify({"error": "permissions must be a list"}), 400

    patch = {"permissions": permissions}
    if "managed_warehouses" in data:
        if not isinstance(data["managed_warehouses"], list):
            return jsonify({"error": "managed_warehouses must be a list"}), 400
        patch["managed_warehouses"] = data["managed_warehouses"]

    try:
        enforce_rules_user(patch)
        user = auth_service.set_permissions(
            user_id=user_id,
            permissions=patch["permissions"],
            managed_warehouses=patch.get("managed_warehouses"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(_user_payload(user))
