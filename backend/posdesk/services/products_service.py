# backend/posdesk/services/products_service.py
"""
Products Service

All price and referential rules are checked here before any row is
written, so callers get a typed error instead of a storage exception:
- selling_price must be greater than buying_price (create and update)
- category_id must reference an existing category
- barcode must be unique
"""
from __future__ import annotations

from decimal import Decimal

from ..errors import BusinessRuleError, ConflictError, NotFoundError
from ..extensions import db
from ..models import Category, Product, SaleItem
from .concurrency import commit_or_conflict

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "barcode",
    "category_id",
    "buying_price",
    "selling_price",
    "stock_quantity",
    "vat_category",
    "expiry_date",
    "low_stock_threshold",
    "is_active",
}

PRODUCT_DELETED = "deleted"
PRODUCT_DEACTIVATED = "deactivated"


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def enforce_price_rule(buying_price: Decimal | None, selling_price: Decimal | None) -> None:
    """Selling price must be strictly greater than buying price."""
    if buying_price is None or selling_price is None:
        return
    if selling_price <= buying_price:
        raise BusinessRuleError(
            "Selling price must be greater than buying price",
            errors=[{"field": "selling_price", "message": "Selling price must be greater than buying price"}],
        )


def _require_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _ensure_barcode_free(barcode: str, exclude_product_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_product_id is not None:
        query = query.filter(Product.id != exclude_product_id)
    if query.first():
        raise ConflictError("Product with this barcode already exists")


def products_query(
    *,
    search: str | None = None,
    category_id: int | None = None,
    low_stock: bool = False,
):
    """
    Filtered product query, newest first.

    search: case-insensitive substring over name and barcode
    low_stock: only rows where stock_quantity <= low_stock_threshold
    """
    query = db.session.query(Product)

    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Product.name.ilike(term),
                Product.barcode.ilike(term),
            )
        )

    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    if low_stock:
        query = query.filter(Product.stock_quantity <= Product.low_stock_threshold)

    return query.order_by(Product.created_at.desc(), Product.id.desc())


def get_product(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if not p:
        raise NotFoundError("Product not found")
    return p


def get_product_by_barcode(barcode: str) -> Product:
    p = db.session.query(Product).filter(Product.barcode == barcode).first()
    if not p:
        raise NotFoundError("Product not found")
    return p


def create_product(*, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        BusinessRuleError: selling_price <= buying_price
        NotFoundError: category does not exist
        ConflictError: barcode already in use
    """
    enforce_price_rule(patch.get("buying_price"), patch.get("selling_price"))
    _require_category(patch["category_id"])
    _ensure_barcode_free(patch["barcode"])

    p = Product()
    apply_product_patch(p, patch)

    db.session.add(p)
    commit_or_conflict(ConflictError("Product with this barcode already exists"))
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Update a product.

    The price rule is evaluated on the merged result, so changing only one
    of the two prices is still checked against the other.
    """
    p = get_product(product_id)

    enforce_price_rule(
        patch.get("buying_price", p.buying_price),
        patch.get("selling_price", p.selling_price),
    )

    if "category_id" in patch and patch["category_id"] != p.category_id:
        _require_category(patch["category_id"])

    if "barcode" in patch and patch["barcode"] != p.barcode:
        _ensure_barcode_free(patch["barcode"], exclude_product_id=p.id)

    apply_product_patch(p, patch)
    commit_or_conflict(ConflictError("Product with this barcode already exists"))
    return p


def delete_product(*, product_id: int) -> str:
    """
    Delete a product.

    Products referenced by sale items are only deactivated so historical
    sales keep their product reference; anything else is removed.

    Returns PRODUCT_DEACTIVATED or PRODUCT_DELETED.
    """
    p = get_product(product_id)

    has_sales = db.session.query(SaleItem.id).filter(SaleItem.product_id == p.id).first() is not None
    if has_sales:
        p.is_active = False
        db.session.commit()
        return PRODUCT_DEACTIVATED

    db.session.delete(p)
    db.session.commit()
    return PRODUCT_DELETED
