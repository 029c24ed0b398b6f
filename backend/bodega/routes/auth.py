# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/bodega/routes/auth.py
"""
Authentication API routes.

The session token is kept in Flask's signed session cookie; the server
stores only its SHA-256 hash (see session_service).
"""

from flask import Blueprint, g, jsonify, request, session

from ..decorators import SESSION_TOKEN_KEY, require_auth
from ..permissions import get_effective_permissions
from ..services import auth_service, session_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and open a session.

    Returns user info and effective permissions. The session cookie is set
    on the response.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not username or not password:
        return jsonify({"error": "username and password required"}), 400

    user = auth_service.authenticate(str(username).strip(), str(password))
    if not user:
        return jsonify({"error": "Invalid credentials"}), 401

    _, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    session.clear()
    session[SESSION_TOKEN_KEY] = token

    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(get_effective_permissions(user)),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
def logout_route():
    """Revoke the current session and clear the cookie. Idempotent."""
    token = session.pop(SESSION_TOKEN_KEY, None)
    if token:
        session_service.revoke_session(token, reason="User logout")
    session.clear()
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "permissions": sorted(g.permissions),
    }), 200
