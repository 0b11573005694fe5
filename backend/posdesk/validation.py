from __future__ import annotations
from datetime import date, datetime
from posdesk.time_utils import parse_iso_datetime

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date, Enum
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import MAX_AMOUNT, Money, has_sub_cent_digits, to_decimal

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Signed 32-bit range of INTEGER columns on every supported backend
INT_MIN = -(2 ** 31)
INT_MAX = 2 ** 31 - 1


class FieldError(ValueError):
    """Problem with a single field; collected into a ValidationError."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - ignored_fields: accepted in the payload but dropped (e.g. read-only echoes)
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    ignored_fields: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _parse_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise FieldError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise FieldError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise FieldError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise FieldError(f"{key} must be an integer")
    # Whole-number floats arrive from some JSON encoders
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise FieldError(f"{key} must be an integer")


def coerce_int(key: str, value: Any) -> int:
    number = _parse_int(key, value)
    if not INT_MIN <= number <= INT_MAX:
        raise FieldError(f"{key} is out of range")
    return number


def coerce_amount(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise FieldError(f"{key} must be a valid amount")
    try:
        raw = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not raw.is_finite():
            raise ValueError
    except (ArithmeticError, ValueError):
        raise FieldError(f"{key} must be a valid amount")
    if has_sub_cent_digits(raw):
        raise FieldError(f"{key} cannot have more than 2 decimal places")
    amount = to_decimal(raw)
    if amount < 0:
        raise FieldError(f"{key} must be >= 0")
    if amount > MAX_AMOUNT:
        raise FieldError(f"{key} cannot exceed {MAX_AMOUNT}")
    return amount


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Money first: it is a TypeDecorator over Integer
    if isinstance(coltype, Money):
        return coerce_amount(col.key, value)

    # Enums: exact, case-insensitive match against the allowed values
    if isinstance(coltype, Enum):
        if not isinstance(value, str):
            raise FieldError(f"{col.key} must be one of: {', '.join(coltype.enums)}")
        normalized = value.strip().upper()
        if normalized not in coltype.enums:
            raise FieldError(f"{col.key} must be one of: {', '.join(coltype.enums)}")
        return normalized

    # Integers - strict validation to reject fractional values and scientific notation
    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
            return value.strip().lower() in ("true", "1")
        raise FieldError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise FieldError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise FieldError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise FieldError(f"{col.key} must be a datetime")

    # Dates (accept YYYY-MM-DD or a full ISO datetime)
    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip()[:10])
            except ValueError:
                raise FieldError(f"{col.key} must be an ISO-8601 date")
        raise FieldError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Every offending field is reported, not just the first one.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[dict] = []

    if not partial:
        for f in sorted(policy.required_on_create):
            if f not in payload or payload[f] is None or payload[f] == "":
                errors.append({"field": f, "message": f"{f} is required"})

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k in policy.ignored_fields:
            continue
        # Reject unknown / non-writable fields
        if k not in policy.writable_fields or k not in cols:
            errors.append({"field": k, "message": f"Field not allowed: {k}"})
            continue
        if any(e["field"] == k for e in errors):
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                errors.append({"field": k, "message": f"{k} cannot be null"})
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except FieldError as e:
            errors.append({"field": k, "message": str(e)})
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not isinstance(col.type, Enum) and not col.nullable:
            if isinstance(val, str) and val == "":
                errors.append({"field": k, "message": f"{k} cannot be blank"})
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append({"field": k, "message": f"{k} exceeds max length {col.type.length}"})
                continue

        patch[k] = val

    if errors:
        raise ValidationError("Validation error", errors=errors)

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Price ordering is checked in the catalog service, where current
    values are available for partial updates.
    """
    errors = []
    for key in ("stock_quantity", "low_stock_threshold"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            errors.append({"field": key, "message": f"{key} must be >= 0"})
    if errors:
        raise ValidationError("Validation error", errors=errors)


def validate_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip()
    if not EMAIL_RE.match(email):
        return None
    return email.lower()
