# Overview: Service-layer operations for the shopping cart; encapsulates business logic and database work.

"""
Per-user cart.

Lines are unique per (user, product) and soft-deleted: removal, clearing and
checkout set `status = removed`; adding the product again revives the row.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import CartItem, Product
from ..models.orders import CART_STATUS_PENDING, CART_STATUS_REMOVED
from ..validation import NotFoundError, ValidationError, coerce_int
from . import realtime_service
from .concurrency import transaction
from .products_service import ProductUnavailableError, is_available_for_order
from orderdesk.time_utils import utcnow


logger = logging.getLogger(__name__)

MAX_LINE_QUANTITY = 1000


def _quantity(value) -> int:
    qty = coerce_int("quantity", value)
    if qty < 1:
        raise ValidationError("quantity must be >= 1")
    if qty > MAX_LINE_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")
    return qty


def add_to_cart(*, user_id: int, product_id: int, quantity=1) -> CartItem:
    """
    Upsert a cart line. A pending line accumulates quantity; a removed line
    is revived with the new quantity.
    """
    qty = _quantity(quantity)

    if not is_available_for_order(product_id):
        raise ProductUnavailableError(product_id)

    with transaction("add to cart"):
        item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
        if item is None:
            item = CartItem(user_id=user_id, product_id=product_id, quantity=qty, status=CART_STATUS_PENDING)
            db.session.add(item)
        elif item.status == CART_STATUS_PENDING:
            if item.quantity + qty > MAX_LINE_QUANTITY:
                raise ValidationError(f"quantity cannot exceed {MAX_LINE_QUANTITY}")
            item.quantity = item.quantity + qty
        else:
            item.status = CART_STATUS_PENDING
            item.quantity = qty
            item.created_at = utcnow()

    realtime_service.emit_to_user(user_id, "cart-item-added", {"cartItem": item.to_dict()})
    return item


def pending_items(user_id: int) -> list[CartItem]:
    """Non-removed lines, newest first."""
    return (
        db.session.query(CartItem)
        .join(Product, Product.id == CartItem.product_id)
        .filter(CartItem.user_id == user_id, CartItem.status != CART_STATUS_REMOVED)
        .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        .all()
    )


def get_user_cart(user_id: int) -> dict:
    items = pending_items(user_id)
    return {
        "user_id": user_id,
        "items": [i.to_dict() for i in items],
        "total_items": len(items),
        "total_quantity": sum(i.quantity for i in items),
    }


def get_cart_item(cart_item_id: int) -> CartItem:
    item = db.session.get(CartItem, cart_item_id)
    if item is None or item.status == CART_STATUS_REMOVED:
        raise NotFoundError("Cart item not found")
    return item


def update_cart_item_quantity(*, cart_item_id: int, quantity) -> CartItem:
    qty = _quantity(quantity)
    item = get_cart_item(cart_item_id)

    with transaction("update cart item"):
        item.quantity = qty

    realtime_service.emit_to_user(item.user_id, "cart-item-updated", {"cartItem": item.to_dict()})
    return item


def remove_from_cart(*, cart_item_id: int) -> CartItem:
    item = get_cart_item(cart_item_id)

    with transaction("remove cart item"):
        item.status = CART_STATUS_REMOVED

    realtime_service.emit_to_user(item.user_id, "cart-item-removed", {"cartItemId": item.id})
    return item


def clear_user_cart(user_id: int) -> int:
    """Soft-clear every non-removed line; returns the number cleared."""
    with transaction("clear cart"):
        count = (
            db.session.query(CartItem)
            .filter(CartItem.user_id == user_id, CartItem.status != CART_STATUS_REMOVED)
            .update(
                {CartItem.status: CART_STATUS_REMOVED, CartItem.updated_at: utcnow()},
                synchronize_session=False,
            )
        )

    logger.info("Cleared %s cart items for user %s", count, user_id)
    realtime_service.emit_to_user(user_id, "cart-cleared", {"userId": user_id, "clearedItems": count})
    return count
