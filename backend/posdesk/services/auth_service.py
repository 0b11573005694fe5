# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and user management.

Every sale is attributed to the user who recorded it. Uses
bcrypt for password hashing.

Hashing is explicit: every path that creates a user or changes a password
calls hash_password() itself before the row is written.
"""

import bcrypt

from ..errors import BusinessRuleError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale, User
from ..models.auth import ROLES, ROLE_CASHIER
from ..validation import validate_email
from posdesk.time_utils import utcnow

MIN_PASSWORD_LENGTH = 6
# bcrypt only hashes the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72
BCRYPT_ROUNDS = 12

USER_MUTABLE_FIELDS = {"full_name", "username", "email", "role", "is_active"}


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, errors=[{"field": "password", "message": message}])


def validate_password_strength(password: str | None) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 6 characters
    - Maximum 72 bytes once UTF-8 encoded

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise.
    bcrypt.checkpw() is timing-safe.
    """
    if not isinstance(password, str) or not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _validate_identity_fields(full_name, username, email) -> str:
    errors = []
    if not full_name or not str(full_name).strip():
        errors.append({"field": "full_name", "message": "Full name is required"})
    if not username or not str(username).strip():
        errors.append({"field": "username", "message": "Username is required"})
    normalized_email = validate_email(email) if isinstance(email, str) else None
    if not normalized_email:
        errors.append({"field": "email", "message": "Valid email is required"})
    if errors:
        raise ValidationError("Validation error", errors=errors)
    return normalized_email


def _ensure_unique(username: str | None, email: str | None, exclude_user_id: int | None = None) -> None:
    conditions = []
    if username is not None:
        conditions.append(User.username == username)
    if email is not None:
        conditions.append(User.email == email)
    if not conditions:
        return

    query = db.session.query(User).filter(db.or_(*conditions))
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)

    if query.first():
        raise ConflictError("Username or email already exists")


def register_user(
    full_name: str,
    username: str,
    email: str,
    password: str,
    role: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: missing/invalid fields or weak password
        ConflictError: username or email already taken
    """
    errors = []
    try:
        email = _validate_identity_fields(full_name, username, email)
    except ValidationError as e:
        errors.extend(e.errors)
    try:
        validate_password_strength(password)
    except PasswordValidationError as e:
        errors.extend(e.errors)

    if role is None or role == "":
        role = ROLE_CASHIER
    elif isinstance(role, str):
        role = role.strip().upper()
    if role not in ROLES:
        errors.append({"field": "role", "message": f"role must be one of: {', '.join(ROLES)}"})

    if errors:
        raise ValidationError("Validation error", errors=errors)

    username = username.strip()
    _ensure_unique(username, email)

    user = User(
        full_name=full_name.strip(),
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid, None otherwise.
    Only active users can sign in. Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def update_user(*, user_id: int, patch: dict, actor: User) -> User:
    """
    Apply an admin update to a user.

    A password in the patch is hashed here; the stored hash is never
    taken from the client.
    """
    user = get_user(user_id)

    if "role" in patch and user.id == actor.id and not actor.is_admin:
        raise ForbiddenError("You cannot change your own role")

    if "email" in patch:
        email = validate_email(patch["email"])
        if not email:
            raise ValidationError.for_field("email", "Valid email is required")
        patch["email"] = email

    _ensure_unique(
        patch.get("username") if patch.get("username") != user.username else None,
        patch.get("email") if patch.get("email") != user.email else None,
        exclude_user_id=user.id,
    )

    password = patch.pop("password", None)
    if password is not None:
        user.password_hash = hash_password(password)

    for k, v in patch.items():
        if k in USER_MUTABLE_FIELDS:
            setattr(user, k, v)

    db.session.commit()
    return user


def delete_user(*, user_id: int, actor: User) -> None:
    if user_id == actor.id:
        raise BusinessRuleError("You cannot delete your own account")

    user = get_user(user_id)

    has_sales = db.session.query(Sale.id).filter(Sale.user_id == user.id).first() is not None
    if has_sales:
        raise BusinessRuleError("Cannot delete a user with recorded sales; deactivate the account instead")

    db.session.delete(user)
    db.session.commit()


def toggle_user_status(*, user_id: int, actor: User) -> User:
    if user_id == actor.id:
        raise BusinessRuleError("You cannot deactivate your own account")

    user = get_user(user_id)
    user.is_active = not user.is_active
    db.session.commit()
    return user
