# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Self-registration does not exist; users are created by an ADMIN or the CLI
- Inactive accounts get 403 even with the right password
- Session management with opaque bearer tokens
"""

from flask import Blueprint, current_app, g

from ..decorators import require_auth
from ..responses import json_body, ok
from ..services import auth_service, session_service
from ..services.concurrency import transaction


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns the principal and a token that must be sent as
    ``Authorization: Bearer <token>`` on protected routes.
    """
    data = json_body()
    username = data.get("username")
    password = data.get("password")

    with transaction():
        user = auth_service.authenticate(username, password)
        session, token = session_service.create_session(user)

    current_app.logger.info("User %s logged in", user.username)
    return ok(
        {
            "user_id": user.id,
            "username": user.username,
            "full_name": user.full_name,
            "role": user.role,
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        },
        "Login successful",
    )


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return ok(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return ok({
        "user_id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "role": user.role,
    })
