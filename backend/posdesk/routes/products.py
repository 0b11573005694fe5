# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/posdesk/routes/products.py
"""
Product management routes.

Reads are public (the till looks products up by barcode before login
state matters); create/update/delete require the ADMIN role.
"""
from flask import Blueprint, request

from ..decorators import require_roles
from ..models import Product
from ..models.auth import ROLE_ADMIN
from ..responses import int_arg, ok, paginate, pagination_args
from ..services import products_service
from ..services.products_service import PRODUCT_DEACTIVATED
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name", "barcode", "category_id", "buying_price", "selling_price", "stock_quantity"},
    ignored_fields={"id", "category", "created_at", "updated_at"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with pagination.

    Query params:
    - page: int (default 1)
    - limit: int (default 10, max 100)
    - search: str - case-insensitive match on name or barcode
    - category_id: int
    - low_stock: "true" - only products at or below their threshold
    """
    page, limit = pagination_args()
    query = products_service.products_query(
        search=request.args.get("search") or None,
        category_id=int_arg("category_id"),
        low_stock=request.args.get("low_stock", "false").lower() == "true",
    )
    products, pagination = paginate(query, page, limit)
    return ok([p.to_dict() for p in products], pagination=pagination)


@products_bp.get("/barcode/<barcode>")
def get_product_by_barcode(barcode: str):
    return ok(products_service.get_product_by_barcode(barcode).to_dict())


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    return ok(products_service.get_product(product_id).to_dict())


@products_bp.post("")
@require_roles(ROLE_ADMIN)
def create_product_route():
    """
    Create a new product.

    Prices are decimal strings or numbers with at most 2 decimal places;
    selling_price must exceed buying_price.
    """
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.create_product(patch=patch)
    return ok(created.to_dict(), message="Product created successfully", status=201)


@products_bp.put("/<int:product_id>")
@require_roles(ROLE_ADMIN)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = products_service.update_product(product_id=product_id, patch=patch)
    return ok(updated.to_dict(), message="Product updated successfully")


@products_bp.delete("/<int:product_id>")
@require_roles(ROLE_ADMIN)
def delete_product_route(product_id: int):
    """
    Delete a product.

    Products that appear on past sales are deactivated instead.
    """
    outcome = products_service.delete_product(product_id=product_id)
    if outcome == PRODUCT_DEACTIVATED:
        return ok(
            {"id": product_id, "outcome": outcome},
            message="Product deactivated successfully (has existing sales)",
        )
    return ok({"id": product_id, "outcome": outcome}, message="Product deleted successfully")
