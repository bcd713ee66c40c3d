# Overview: Service-layer operations for auth; password hashing, login verification and user management.

"""
Authentication Service

WHY: Every document and movement is attributed to a user. Uses bcrypt for
password hashing; cost comes from PASSWORD_HASH_COST.

SECURITY NOTES:
- Passwords hashed with bcrypt (salt embedded in the hash)
- Minimum 8 characters required
- Verification is constant-time (bcrypt.checkpw)
- Inactive users can never log in; they are kept for authorship history
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import bcrypt
from flask import current_app, has_app_context

from ..errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationFailed
from ..extensions import db
from ..models import ROLES, User
from ..time_utils import utcnow
from .concurrency import flush

MIN_PASSWORD_LENGTH = 8
DEFAULT_HASH_COST = 10

# Verified against when the username does not exist, so unknown users
# cost the same as wrong passwords.
_DUMMY_HASH = bcrypt.hashpw(b"smartstock-dummy-password", bcrypt.gensalt(rounds=4)).decode("utf-8")


def validate_password_strength(password) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("password", f"must be at least {MIN_PASSWORD_LENGTH} characters long")


def _hash_cost() -> int:
    if has_app_context():
        return int(current_app.config.get("PASSWORD_HASH_COST", DEFAULT_HASH_COST))
    return DEFAULT_HASH_COST


def hash_password(password: str) -> str:
    """Validate then hash with bcrypt; the result is stored as a string."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_hash_cost())
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() compares in constant time.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def _validate_role(role) -> str:
    role = (role or "").strip().upper()
    if role not in ROLES:
        raise ValidationFailed("role", f"must be one of {', '.join(ROLES)}")
    return role


def _username_taken(username: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter(db.func.lower(User.username) == username.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def create_user(
    *,
    username: str,
    password: str,
    full_name: str,
    role: str = "SALES",
    email: str | None = None,
) -> User:
    """
    Create a user. Caller commits.

    Raises ValidationFailed on bad input and Conflict when the username is
    taken (case-insensitive).
    """
    username = (username or "").strip()
    if not username:
        raise ValidationFailed("username", "is required")
    if len(username) > 64:
        raise ValidationFailed("username", "exceeds max length 64")
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationFailed("full_name", "is required")
    role = _validate_role(role)

    if _username_taken(username):
        raise Conflict(f"Username '{username}' already exists", {"field": "username"})

    user = User(
        username=username,
        full_name=full_name,
        email=(email or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    flush()
    return user


def update_user(user_id: int, patch: dict) -> User:
    """
    Update mutable user fields (full_name, email, role, is_active, password).

    Deactivation is soft: the row stays so historical documents keep their
    author. Caller commits.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("user", user_id)

    allowed = {"username", "full_name", "email", "role", "is_active", "password"}
    for key in patch:
        if key not in allowed:
            raise ValidationFailed(key, "field not allowed")

    if "username" in patch:
        username = (patch["username"] or "").strip()
        if not username:
            raise ValidationFailed("username", "cannot be blank")
        if _username_taken(username, exclude_id=user.id):
            raise Conflict(f"Username '{username}' already exists", {"field": "username"})
        user.username = username
    if "full_name" in patch:
        full_name = (patch["full_name"] or "").strip()
        if not full_name:
            raise ValidationFailed("full_name", "cannot be blank")
        user.full_name = full_name
    if "email" in patch:
        user.email = (patch["email"] or "").strip() or None
    if "role" in patch:
        user.role = _validate_role(patch["role"])
    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationFailed("is_active", "must be a boolean")
        user.is_active = patch["is_active"]
    if "password" in patch:
        user.password_hash = hash_password(patch["password"])

    flush()
    return user


def authenticate(username: str, password: str) -> User:
    """
    Verify credentials and return the user.

    Raises Unauthorized for unknown users or wrong passwords and Forbidden
    for correct credentials on an inactive account. Updates last_login_at;
    caller commits.
    """
    if not username or not password:
        raise ValidationFailed("username", "username and password are required")

    user = (
        db.session.query(User)
        .filter(db.func.lower(User.username) == username.strip().lower())
        .first()
    )
    if user is None:
        verify_password(password, _DUMMY_HASH)
        raise Unauthorized("Invalid username or password")

    if not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid username or password")

    if not user.is_active:
        raise Forbidden("Account is inactive")

    user.last_login_at = utcnow()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()
