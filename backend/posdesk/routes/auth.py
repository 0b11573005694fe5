# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/posdesk/routes/auth.py
"""
Authentication API routes

- POST /register: create a user and return a token
- POST /login: verify credentials and return a token
- GET /profile: the authenticated user
"""

from flask import Blueprint, request, g

from ..decorators import require_auth, resolve_actor
from ..errors import ForbiddenError, UnauthorizedError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..responses import ok
from ..services import auth_service
from ..services import session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _auth_payload(user) -> dict:
    return {
        "user": user.to_dict(),
        "token": session_service.issue_token(user),
    }


@auth_bp.post("/register")
def register_route():
    """
    Register a new user.

    Anyone may register a CASHIER account. Creating an ADMIN requires an
    ADMIN bearer token (the first admin comes from `flask system init`).
    """
    data = request.get_json(silent=True) or {}

    requested_role = data.get("role")
    if isinstance(requested_role, str) and requested_role.strip().upper() == ROLE_ADMIN:
        actor = resolve_actor()
        if actor is None or not actor.is_admin:
            raise ForbiddenError("Only administrators can create ADMIN accounts")

    user = auth_service.register_user(
        full_name=data.get("full_name"),
        username=data.get("username"),
        email=data.get("email"),
        password=data.get("password"),
        role=requested_role,
    )

    return ok(_auth_payload(user), message="User registered successfully", status=201)


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a bearer token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    errors = []
    if not username:
        errors.append({"field": "username", "message": "Username is required"})
    if not password:
        errors.append({"field": "password", "message": "Password is required"})
    if errors:
        raise ValidationError("Validation error", errors=errors)

    user = auth_service.authenticate(username, password)
    if not user:
        raise UnauthorizedError("Invalid credentials")

    return ok(_auth_payload(user), message="Login successful")


@auth_bp.get("/profile")
@require_auth
def profile_route():
    return ok(g.current_user.to_dict())
