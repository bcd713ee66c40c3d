# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import Forbidden, Unauthorized
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_token: The plaintext token (used by logout)

    SECURITY: Raises Unauthorized (401) if:
    - No Authorization header
    - Invalid, revoked or expired token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            raise Unauthorized("Authentication required")

        user = session_service.validate_session(token)
        if user is None:
            raise Unauthorized("Invalid or expired token")

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require the authenticated user to hold one of ``roles``.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise Unauthorized("Authentication required")
            if user.role not in roles:
                raise Forbidden(
                    f"Requires role: {', '.join(roles)}",
                    {"required_roles": list(roles), "role": user.role},
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


# Roles allowed to mutate documents and the catalog
WRITE_ROLES = ("ADMIN", "MANAGER")


def require_writer(f):
    return require_role(*WRITE_ROLES)(f)
