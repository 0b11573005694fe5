# Overview: Service-layer operations for categories; encapsulates business logic and database work.

from __future__ import annotations

from ..errors import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product
from .concurrency import commit_or_conflict


def _ensure_name_free(name: str, exclude_category_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter(Category.name == name)
    if exclude_category_id is not None:
        query = query.filter(Category.id != exclude_category_id)
    if query.first():
        raise ConflictError("Category with this name already exists")


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def create_category(*, name: str, description: str | None = None) -> Category:
    if not name:
        raise ValidationError.for_field("name", "Category name is required")

    _ensure_name_free(name)

    category = Category(name=name, description=description or None)
    db.session.add(category)
    commit_or_conflict(ConflictError("Category with this name already exists"))
    return category


def update_category(*, category_id: int, patch: dict) -> Category:
    category = get_category(category_id)

    name = patch.get("name")
    if name and name != category.name:
        _ensure_name_free(name, exclude_category_id=category.id)
        category.name = name

    if "description" in patch:
        category.description = patch["description"]

    commit_or_conflict(ConflictError("Category with this name already exists"))
    return category


def delete_category(*, category_id: int) -> None:
    """Delete a category; refused while any product (active or not) references it."""
    category = get_category(category_id)

    in_use = db.session.query(Product.id).filter(Product.category_id == category.id).first() is not None
    if in_use:
        raise BusinessRuleError("Cannot delete category with existing products")

    db.session.delete(category)
    db.session.commit()
