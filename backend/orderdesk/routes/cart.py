# Overview: Flask API routes for cart operations; parses input and returns JSON responses.

# backend/orderdesk/routes/cart.py
"""
Cart routes. Business users work on their own cart; admins may pass a
user id and work on anyone's.
"""
from flask import Blueprint, g, request

from ..decorators import can_access_user, require_auth
from ..services import cart_service
from ..services.concurrency import PersistenceError
from ..services.products_service import ProductUnavailableError
from ..validation import NotFoundError, ValidationError, coerce_int

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _owned_item(cart_item_id: int):
    """Cart line the caller may touch, or an error response tuple."""
    try:
        item = cart_service.get_cart_item(cart_item_id)
    except NotFoundError as e:
        return None, ({"error": str(e)}, 404)
    if not can_access_user(item.user_id):
        return None, ({"error": "Access denied"}, 403)
    return item, None


@cart_bp.post("")
@require_auth
def add_to_cart():
    """Body: {product_id, quantity?, user_id? (admin only)}"""
    data = request.get_json(silent=True) or {}

    try:
        user_id = coerce_int("user_id", data["user_id"]) if data.get("user_id") is not None else g.current_user.id
        if data.get("product_id") is None:
            raise ValidationError("product_id is required")
        product_id = coerce_int("product_id", data["product_id"])
    except ValidationError as e:
        return {"error": str(e)}, 400

    if not can_access_user(user_id):
        return {"error": "Access denied"}, 403

    try:
        item = cart_service.add_to_cart(user_id=user_id, product_id=product_id, quantity=data.get("quantity", 1))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ProductUnavailableError as e:
        return {"error": str(e), "product_id": e.product_id}, 400
    except PersistenceError as e:
        return {"error": str(e)}, 500

    return {"message": "Item added to cart", "cartItem": item.to_dict()}, 201


@cart_bp.get("")
@require_auth
def my_cart():
    return cart_service.get_user_cart(g.current_user.id)


@cart_bp.get("/user/<int:user_id>")
@require_auth
def user_cart(user_id: int):
    if not can_access_user(user_id):
        return {"error": "Access denied"}, 403
    return cart_service.get_user_cart(user_id)


@cart_bp.get("/<int:cart_item_id>")
@require_auth
def get_cart_item(cart_item_id: int):
    item, error = _owned_item(cart_item_id)
    if error:
        return error
    return item.to_dict()


@cart_bp.put("/<int:cart_item_id>")
@require_auth
def update_cart_item(cart_item_id: int):
    """Body: {quantity >= 1}"""
    item, error = _owned_item(cart_item_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    if data.get("quantity") is None:
        return {"error": "quantity is required"}, 400

    try:
        item = cart_service.update_cart_item_quantity(cart_item_id=item.id, quantity=data["quantity"])
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"message": "Cart item updated", "cartItem": item.to_dict()}


@cart_bp.delete("/<int:cart_item_id>")
@require_auth
def remove_cart_item(cart_item_id: int):
    item, error = _owned_item(cart_item_id)
    if error:
        return error

    cart_service.remove_from_cart(cart_item_id=item.id)
    return {"message": "Item removed from cart"}


@cart_bp.delete("")
@require_auth
def clear_my_cart():
    count = cart_service.clear_user_cart(g.current_user.id)
    return {"message": "Cart cleared", "cleared_items": count}


@cart_bp.delete("/user/<int:user_id>")
@require_auth
def clear_user_cart(user_id: int):
    if not can_access_user(user_id):
        return {"error": "Access denied"}, 403
    count = cart_service.clear_user_cart(user_id)
    return {"message": "Cart cleared", "cleared_items": count}
