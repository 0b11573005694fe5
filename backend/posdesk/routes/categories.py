# Overview: Flask API routes for categories; reads are public, writes ADMIN only.

from flask import Blueprint, request

from ..decorators import require_roles
from ..models import Category
from ..models.auth import ROLE_ADMIN
from ..responses import ok
from ..services import categories_service
from ..validation import ModelValidationPolicy, validate_payload

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
    ignored_fields={"id", "created_at", "updated_at", "products"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories_route():
    categories = categories_service.list_categories()
    return ok([c.to_dict(include_products=True) for c in categories])


@categories_bp.get("/<int:category_id>")
def get_category_route(category_id: int):
    category = categories_service.get_category(category_id)
    return ok(category.to_dict(include_products=True, active_only=True))


@categories_bp.post("")
@require_roles(ROLE_ADMIN)
def create_category_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)

    category = categories_service.create_category(
        name=patch["name"],
        description=patch.get("description"),
    )
    return ok(category.to_dict(), message="Category created successfully", status=201)


@categories_bp.put("/<int:category_id>")
@require_roles(ROLE_ADMIN)
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)

    category = categories_service.update_category(category_id=category_id, patch=patch)
    return ok(category.to_dict(), message="Category updated successfully")


@categories_bp.delete("/<int:category_id>")
@require_roles(ROLE_ADMIN)
def delete_category_route(category_id: int):
    categories_service.delete_category(category_id=category_id)
    return ok(message="Category deleted successfully")
