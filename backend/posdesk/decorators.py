# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, g

from .models.auth import ROLES
from .responses import fail
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def resolve_actor():
    """
    Resolve the bearer token into g.current_user.

    Returns None when the header is missing, or the token is invalid,
    expired or belongs to a deactivated user.
    """
    token = _bearer_token()
    if not token:
        return None

    context = session_service.validate_token(token)
    if not context:
        return None

    g.current_user = context.user
    return context.user


def require_roles(*roles: str):
    """
    Require an authenticated actor whose role is in roles.

    One predicate, evaluated before the handler runs:
    - 401 if no valid bearer token
    - 403 if the actor's role is not allowed

    With no roles given, any authenticated user passes.
    """
    allowed = set(roles or ROLES)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _bearer_token():
                return fail("Authentication required", 401)

            user = resolve_actor()
            if user is None:
                return fail("Invalid or expired token", 401)

            if user.role not in allowed:
                return fail(
                    "Permission denied",
                    403,
                    required_roles=sorted(allowed),
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_auth = require_roles()
