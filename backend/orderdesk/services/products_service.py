# Overview: Service-layer operations for products; encapsulates business logic and database work.

# backend/orderdesk/services/products_service.py
"""
Products Service

Hosts the availability gate every order path consults, the admin catalog
operations, and the manual stock override.

A product is orderable iff it exists, `status == "active"` and
`stock_status != "out_of_stock"`. Non-admin listings only ever show orderable
products.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Category, Order, Product
from ..models.catalog import (
    PRODUCT_STATUS_ACTIVE,
    PRODUCT_STATUS_DRAFT,
    STOCK_AVAILABLE,
    STOCK_OUT_OF_STOCK,
    STOCK_STATUSES,
)
from ..models.orders import STOCK_ACTION_RELEASED, STOCK_ACTION_RESERVED
from ..validation import ConflictError, NotFoundError, ValidationError, require_choice
from .concurrency import lock_for_update, transaction
from .stock_ledger_service import record_stock_history


logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "category_id", "name", "sku", "description", "image",
    "net_weight", "gross_weight", "less_weight", "mark_amount",
    "pieces", "purity", "size",
}


class ProductUnavailableError(Exception):
    """Product is missing, unpublished or out of stock."""

    def __init__(self, product_id: int, message: str = "Product is not available for order"):
        self.product_id = product_id
        super().__init__(message)


def orderable_filter():
    return db.and_(
        Product.status == PRODUCT_STATUS_ACTIVE,
        Product.stock_status != STOCK_OUT_OF_STOCK,
    )


def is_orderable(product: Product | None) -> bool:
    return product is not None and product.is_orderable


def is_available_for_order(product_id: int) -> bool:
    """Availability gate. Missing product is simply unavailable; no side effects."""
    return is_orderable(db.session.get(Product, product_id))


def get_stock_status(product_id: int) -> str | None:
    return db.session.query(Product.stock_status).filter(Product.id == product_id).scalar()


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError("Category not found")


def list_products(
    *,
    include_unavailable: bool = False,
    category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional pagination.

    include_unavailable=True is the admin view (every product, any status).
    Otherwise only orderable products are returned.
    """
    base_query = db.session.query(Product)
    if not include_unavailable:
        base_query = base_query.filter(orderable_filter())
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)
    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int, *, include_unavailable: bool = False) -> Product:
    p = db.session.get(Product, product_id)
    if p is None or (not include_unavailable and not p.is_orderable):
        raise NotFoundError("Product not found")
    return p


def get_product_by_sku(sku: str, *, include_unavailable: bool = False) -> Product:
    p = db.session.query(Product).filter(Product.sku == (sku or "").strip()).first()
    if p is None or (not include_unavailable and not p.is_orderable):
        raise NotFoundError("Product not found")
    return p


def create_product(*, patch: dict) -> Product:
    """
    Create product from a validated patch; starts draft/available.

    Raises ConflictError if the SKU already exists.
    """
    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required")

    if db.session.query(Product.id).filter(Product.sku == sku).first():
        raise ConflictError("SKU already exists.")

    _require_category(patch.get("category_id"))

    p = Product(status=PRODUCT_STATUS_DRAFT, stock_status=STOCK_AVAILABLE)
    apply_product_patch(p, patch)

    with transaction("create product"):
        db.session.add(p)

    logger.info("Product %s created (sku=%s)", p.id, p.sku)
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    p = get_product(product_id, include_unavailable=True)

    if "sku" in patch and patch["sku"] != p.sku:
        clash = db.session.query(Product.id).filter(Product.sku == patch["sku"], Product.id != p.id).first()
        if clash:
            raise ConflictError("SKU already exists.")
    if "category_id" in patch:
        _require_category(patch["category_id"])

    with transaction("update product"):
        apply_product_patch(p, patch)
    return p


def delete_product(*, product_id: int) -> None:
    p = get_product(product_id, include_unavailable=True)

    if db.session.query(Order.id).filter(Order.product_id == p.id).first():
        raise ConflictError("Product has orders and cannot be deleted")

    with transaction("delete product"):
        db.session.delete(p)


def set_publish_status(*, product_id: int, status: str) -> Product:
    """Publish (active) or unpublish (draft) a product."""
    require_choice("status", status, (PRODUCT_STATUS_DRAFT, PRODUCT_STATUS_ACTIVE))
    p = get_product(product_id, include_unavailable=True)

    with transaction("change product status"):
        p.status = status
    return p


def override_stock_status(
    *,
    product_id: int,
    stock_status: str,
    user_id: int | None = None,
    notes: str | None = None,
) -> dict:
    """
    Admin manual stock override.

    Writes the transition and its ledger entry in one transaction: action
    `released` when the product becomes available, `reserved` otherwise.
    """
    require_choice("stock_status", stock_status, STOCK_STATUSES)

    with transaction("override stock status"):
        p = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
        if p is None:
            raise NotFoundError("Product not found")

        previous_status = p.stock_status
        p.stock_status = stock_status

        record_stock_history(
            product_id=p.id,
            action=STOCK_ACTION_RELEASED if stock_status == STOCK_AVAILABLE else STOCK_ACTION_RESERVED,
            previous_status=previous_status,
            new_status=stock_status,
            user_id=user_id,
            notes=notes or f"Manual stock override: {previous_status} -> {stock_status}",
        )

    logger.info("Product %s stock %s -> %s (manual)", product_id, previous_status, stock_status)
    return {"product_id": product_id, "previous_status": previous_status, "new_status": stock_status}
