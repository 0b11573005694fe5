# Overview: Service-layer operations for session tokens; issues and validates signed bearer tokens.

"""
Session Token Management Service

Tokens are HS256 JWTs carrying the user's id, username and role with a
fixed expiry (JWT_EXPIRES_IN). Nothing is stored server-side; validation
re-reads the user so deactivated accounts lose access immediately.
"""

from dataclasses import dataclass
from datetime import timedelta, timezone

from flask import current_app
from jose import JWTError, jwt

from ..extensions import db
from ..models import User
from posdesk.time_utils import utcnow


@dataclass
class SessionContext:
    """
    Resolved bearer token.

    claims holds the decoded payload; user is the live row.
    """
    user: User
    claims: dict


def issue_token(user: User) -> str:
    """Sign a token for user; expires after JWT_EXPIRES_IN seconds."""
    now = utcnow().replace(tzinfo=timezone.utc)
    payload = {
        "sub": str(user.id),
        "id": user.id,
        "username": user.username,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=current_app.config["JWT_EXPIRES_IN"])).timestamp()),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def decode_token(token: str) -> dict | None:
    """Return the verified claims, or None for bad signature/expired/malformed tokens."""
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError:
        return None


def validate_token(token: str) -> SessionContext | None:
    """
    Validate bearer token and return SessionContext if valid.

    Returns None if:
    - Token is malformed, tampered with or expired
    - User no longer exists or is deactivated
    """
    claims = decode_token(token)
    if not claims:
        return None

    user_id = claims.get("id")
    if not isinstance(user_id, int):
        return None

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None

    return SessionContext(user=user, claims=claims)
