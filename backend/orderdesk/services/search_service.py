# Overview: Service-layer operations for catalog search; encapsulates business logic and database work.

"""
Catalog search over published categories and products.

Only active categories and active products under an active category are
searchable. Out-of-stock products are hidden unless the caller asks for them
(the admin view).
"""
from __future__ import annotations

from ..extensions import db
from ..models import Category, Product
from ..models.catalog import PRODUCT_STATUS_ACTIVE, STOCK_OUT_OF_STOCK
from ..validation import ValidationError


def _pattern(term: str | None) -> str:
    term = (term or "").strip()
    if not term:
        raise ValidationError("Search query is required")
    return f"%{term}%"


def search_categories(term: str | None) -> list[Category]:
    pattern = _pattern(term)
    return (
        db.session.query(Category)
        .filter(
            Category.status == "active",
            db.or_(Category.name.ilike(pattern), Category.description.ilike(pattern)),
        )
        .order_by(Category.name.asc())
        .all()
    )


def search_products(term: str | None, *, include_out_of_stock: bool = False) -> list[Product]:
    """Matches product name, SKU, purity or the owning category's name."""
    pattern = _pattern(term)
    q = (
        db.session.query(Product)
        .join(Category, Product.category_id == Category.id)
        .filter(
            Product.status == PRODUCT_STATUS_ACTIVE,
            Category.status == "active",
            db.or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                Product.purity.ilike(pattern),
                Category.name.ilike(pattern),
            ),
        )
    )
    if not include_out_of_stock:
        q = q.filter(Product.stock_status != STOCK_OUT_OF_STOCK)
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def search_all(term: str | None, *, include_out_of_stock: bool = False) -> dict:
    categories = search_categories(term)
    products = search_products(term, include_out_of_stock=include_out_of_stock)
    return {
        "categories": [c.to_dict() for c in categories],
        "products": [p.to_dict() for p in products],
        "totalResults": len(categories) + len(products),
        "categoryCount": len(categories),
        "productCount": len(products),
    }
