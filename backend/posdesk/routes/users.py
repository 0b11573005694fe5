# Overview: Flask API routes for user administration; ADMIN only.

from flask import Blueprint, request, g

from ..decorators import require_roles
from ..models import User
from ..models.auth import ROLE_ADMIN
from ..responses import ok
from ..services import auth_service
from ..validation import ModelValidationPolicy, validate_payload

USER_POLICY = ModelValidationPolicy(
    writable_fields={"full_name", "username", "email", "role", "is_active"},
    ignored_fields={"id", "created_at", "updated_at", "last_login_at", "password_hash"},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_roles(ROLE_ADMIN)
def list_users_route():
    return ok([u.to_dict() for u in auth_service.list_users()])


@users_bp.get("/<int:user_id>")
@require_roles(ROLE_ADMIN)
def get_user_route(user_id: int):
    return ok(auth_service.get_user(user_id).to_dict())


@users_bp.put("/<int:user_id>")
@require_roles(ROLE_ADMIN)
def update_user_route(user_id: int):
    """
    Update user details.

    Request body (all optional): full_name, username, email, role,
    is_active, password. A new password is hashed before it is stored.
    """
    payload = dict(request.get_json(silent=True) or {})
    password = payload.pop("password", None)

    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
    if password is not None:
        patch["password"] = password

    user = auth_service.update_user(user_id=user_id, patch=patch, actor=g.current_user)
    return ok(user.to_dict(), message="User updated successfully")


@users_bp.delete("/<int:user_id>")
@require_roles(ROLE_ADMIN)
def delete_user_route(user_id: int):
    auth_service.delete_user(user_id=user_id, actor=g.current_user)
    return ok(message="User deleted successfully")


@users_bp.patch("/<int:user_id>/toggle-status")
@require_roles(ROLE_ADMIN)
def toggle_user_status_route(user_id: int):
    user = auth_service.toggle_user_status(user_id=user_id, actor=g.current_user)
    state = "activated" if user.is_active else "deactivated"
    return ok(
        {"id": user.id, "is_active": user.is_active},
        message=f"User {state} successfully",
    )
