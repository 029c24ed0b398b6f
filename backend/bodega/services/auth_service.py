# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and user administration.

WHY: Every movement and transfer decision must be attributable. Uses
bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Deactivated users cannot authenticate
"""

import logging
import re

import bcrypt

from ..extensions import db
from ..models import User
from ..validation import ConflictError, NotFoundError, ValidationError
from bodega.time_utils import utcnow

logger = logging.getLogger(__name__)

USER_MUTABLE_FIELDS = {
    "username",
    "role",
    "cost_center",
    "is_active",
    "permissions",
    "managed_warehouses",
}


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. A malformed stored hash
    counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(*, include_inactive: bool = True) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def _ensure_username_available(username: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(User.id).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Username {username} already exists")


def create_user(*, password: str, patch: dict) -> User:
    """
    Create a user from a validated patch dict.

    Raises:
        ConflictError: username taken
        PasswordValidationError: weak password
    """
    username = patch.get("username")
    if not username:
        raise ValidationError("username is required")
    _ensure_username_available(username)

    user = User(password_hash=hash_password(password))
    for k, v in patch.items():
        if k in USER_MUTABLE_FIELDS:
            setattr(user, k, v)
    if user.permissions is None:
        user.permissions = []
    if user.managed_warehouses is None:
        user.managed_warehouses = []

    db.session.add(user)
    db.session.commit()

    logger.info("Created user id=%s username=%s role=%s", user.id, user.username, user.role)
    return user


def update_user(*, user_id: int, patch: dict, password: str | None = None) -> User:
    user = get_user(user_id)

    if "username" in patch and patch["username"] != user.username:
        _ensure_username_available(patch["username"], exclude_id=user.id)

    for k, v in patch.items():
        if k not in USER_MUTABLE_FIELDS:
            continue
        if k in ("permissions", "managed_warehouses") and v is None:
            v = []
        setattr(user, k, v)

    if password:
        user.password_hash = hash_password(password)

    db.session.commit()
    return user


def deactivate_user(*, user_id: int) -> User:
    """Soft delete; the account keeps its history but can no longer log in."""
    user = get_user(user_id)
    user.is_active = False

    # Revoke live sessions so the user is signed out immediately
    from .session_service import revoke_all_user_sessions
    revoke_all_user_sessions(user.id, reason="User deactivated", commit=False)

    db.session.commit()
    logger.info("Deactivated user id=%s", user.id)
    return user


def set_permissions(*, user_id: int, permissions: list[str], managed_warehouses: list[int] | None = None) -> User:
    """Replace the explicit grants (and optionally the managed warehouses) of a user."""
    user = get_user(user_id)
    user.permissions = list(permissions)
    if managed_warehouses is not None:
        user.managed_warehouses = list(managed_warehouses)
    db.session.commit()

    logger.info("Permissions for user id=%s set to %s", user.id, user.permissions)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user by username and password.

    Returns User if credentials valid and user active, None otherwise.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter_by(username=username).first()

    if not user or not user.is_active:
        logger.info("Login rejected for username=%s", username)
        return None

    if not verify_password(password, user.password_hash):
        logger.info("Login rejected for username=%s", username)
        return None

    user.last_login_at = utcnow()
    db.session.commit()

    logger.info("Login succeeded for user id=%s", user.id)
    return user
