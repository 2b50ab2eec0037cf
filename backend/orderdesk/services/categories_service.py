# Overview: Service-layer operations for categories; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import Category, Product
from ..models.catalog import CATEGORY_STATUSES
from ..validation import NotFoundError, ValidationError
from .concurrency import transaction


CATEGORY_MUTABLE_FIELDS = {"name", "description", "image", "status"}


def list_categories(*, include_drafts: bool = False) -> list[Category]:
    q = db.session.query(Category)
    if not include_drafts:
        q = q.filter(Category.status == "active")
    return q.order_by(Category.name.asc(), Category.id.asc()).all()


def get_category(category_id: int) -> Category:
    c = db.session.get(Category, category_id)
    if c is None:
        raise NotFoundError("Category not found")
    return c


def create_category(*, patch: dict) -> Category:
    if not patch.get("name"):
        raise ValidationError("name is required")
    c = Category(status=patch.get("status") or "draft")
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(c, k, v)
    if c.status not in CATEGORY_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(CATEGORY_STATUSES)}")

    with transaction("create category"):
        db.session.add(c)
    return c


def update_category(*, category_id: int, patch: dict) -> Category:
    c = get_category(category_id)
    with transaction("update category"):
        for k, v in patch.items():
            if k in CATEGORY_MUTABLE_FIELDS:
                setattr(c, k, v)
    return c


def delete_category(*, category_id: int) -> None:
    """Products in the category are kept and become uncategorized."""
    c = get_category(category_id)
    with transaction("delete category"):
        db.session.query(Product).filter(Product.category_id == c.id).update(
            {Product.category_id: None}, synchronize_session=False
        )
        db.session.delete(c)
