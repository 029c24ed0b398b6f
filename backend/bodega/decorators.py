# Overview: Request and permission decorators for API routes.

import logging
from functools import wraps

from flask import g, jsonify, request, session

from .permissions import get_effective_permissions
from .services import session_service

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = "session_token"


def _request_token() -> str | None:
    """Session cookie first; a Bearer header is accepted for scripted clients."""
    token = session.get(SESSION_TOKEN_KEY)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require a valid session.

    Sets:
    - g.current_user: the authenticated User
    - g.permissions: the user's effective permission codes

    Returns 401 when no token is presented, or the token is unknown,
    expired, revoked, or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if user is None:
            session.pop(SESSION_TOKEN_KEY, None)
            return jsonify({"error": "Invalid or expired session"}), 401

        g.current_user = user
        g.permissions = get_effective_permissions(user)
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission. Use below @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if permission_code not in g.permissions:
                logger.warning(
                    "Permission %s denied for user id=%s on %s %s",
                    permission_code, g.current_user.id, request.method, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator

