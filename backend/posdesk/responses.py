# Overview: JSON envelope helpers shared by every blueprint.

from __future__ import annotations

from math import ceil

from flask import current_app, jsonify, request

from .errors import ValidationError
from .validation import FieldError, coerce_int


def ok(data=None, *, message: str | None = None, pagination: dict | None = None, status: int = 200):
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if pagination is not None:
        body["pagination"] = pagination
    return jsonify(body), status


def fail(message: str, status: int, *, errors: list[dict] | None = None, **extra):
    body: dict = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    body.update({k: v for k, v in extra.items() if v is not None})
    return jsonify(body), status


def int_arg(name: str, default: int | None = None) -> int | None:
    """Integer query parameter; out-of-range or non-integer values are a 400."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return coerce_int(name, raw)
    except FieldError as e:
        raise ValidationError.for_field(name, str(e))


def pagination_args() -> tuple[int, int]:
    """Read ?page=&limit= with config defaults; limit is capped at MAX_PAGE_SIZE."""
    default_limit = current_app.config["DEFAULT_PAGE_SIZE"]
    page = int_arg("page", 1) or 1
    limit = int_arg("limit", default_limit) or default_limit
    return max(page, 1), max(1, min(limit, current_app.config["MAX_PAGE_SIZE"]))


def paginate(query, page: int, limit: int):
    """Apply offset/limit to a query; returns (rows, pagination dict)."""
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": ceil(total / limit) if limit else 0,
    }
