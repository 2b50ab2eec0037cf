# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/orderdesk/routes/orders.py
"""
Order routes.

Business callers place orders for themselves only; admins may name any
user. Status changes are admin-only and obey the approval rule: orders of a
business user that is not approved can only be cancelled (403
BUSINESS_NOT_APPROVED otherwise).
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import can_access_user, require_admin, require_auth, require_business
from ..services import order_service
from ..services.concurrency import PersistenceError
from ..services.order_service import BusinessNotApprovedError, EmptyCartError
from ..services.products_service import ProductUnavailableError
from ..validation import NotFoundError, ValidationError, coerce_int

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _not_approved_response(e: BusinessNotApprovedError, *, single: bool):
    body = {
        "error": str(e),
        "code": "BUSINESS_NOT_APPROVED",
        "blockedOrders": e.blocked_orders,
        "allowedStatuses": list(e.allowed_statuses),
    }
    if single and e.blocked_orders:
        body["userId"] = e.blocked_orders[0]["userId"]
        body["userStatus"] = e.blocked_orders[0]["userStatus"]
    return jsonify(body), 403


def _target_user_id(data: dict) -> int:
    if g.current_user.is_admin and data.get("user_id") is not None:
        return coerce_int("user_id", data["user_id"])
    return g.current_user.id


@orders_bp.post("")
@require_auth
def create_order():
    """Body: {product_id, quantity, total_amount, remark?, courier_company?, user_id? (admin only)}"""
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.create_order(
            user_id=_target_user_id(data),
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            total_amount=data.get("total_amount"),
            remark=data.get("remark"),
            courier_company=data.get("courier_company"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ProductUnavailableError as e:
        return jsonify({"error": str(e), "product_id": e.product_id}), 400
    except PersistenceError:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Failed to create order"}), 500

    return jsonify({
        "message": "Order created successfully",
        "orderId": order.id,
        "order": order.to_dict(),
    }), 201


@orders_bp.post("/from-cart")
@require_auth
def create_orders_from_cart():
    """Body: {remark?, courier_company?, user_id? (admin only)}"""
    data = request.get_json(silent=True) or {}

    try:
        result = order_service.create_orders_from_cart(
            user_id=_target_user_id(data),
            remark=data.get("remark"),
            courier_company=data.get("courier_company"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EmptyCartError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "message": "Orders created successfully from cart",
        "orderIds": result["order_ids"],
        "totalOrders": len(result["order_ids"]),
        "skipped": result["skipped"],
    }), 201


@orders_bp.get("")
@require_auth
@require_admin
def list_orders():
    try:
        orders = order_service.list_orders(status=request.args.get("status"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify([o.to_dict() for o in orders])


@orders_bp.get("/statistics")
@require_auth
@require_admin
def order_statistics():
    return jsonify(order_service.get_order_statistics())


@orders_bp.get("/my-orders")
@require_auth
@require_business
def my_orders():
    orders = order_service.list_orders_for_user(g.current_user.id)
    data = [order_service.to_my_order(o) for o in orders]
    return jsonify({"success": True, "data": data, "total_orders": len(data)})


@orders_bp.get("/user/<int:user_id>")
@require_auth
def orders_by_user(user_id: int):
    if not can_access_user(user_id):
        return jsonify({"error": "Access denied"}), 403
    orders = order_service.list_orders_for_user(user_id)
    return jsonify({
        "user_id": user_id,
        "orders": [o.to_dict() for o in orders],
        "total_orders": len(orders),
    })


@orders_bp.patch("/bulk-status")
@require_auth
@require_admin
def bulk_update_status():
    """Body: {order_ids: [int], status}"""
    data = request.get_json(silent=True) or {}

    try:
        affected = order_service.bulk_update_order_statuses(
            order_ids=data.get("order_ids"),
            status=data.get("status"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BusinessNotApprovedError as e:
        return _not_approved_response(e, single=False)

    return jsonify({"message": "Order statuses updated successfully", "affectedOrders": affected})


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    if not can_access_user(order.user_id):
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order.to_dict())


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_admin
def update_status(order_id: int):
    """Body: {status}"""
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.update_order_status(order_id=order_id, status=data.get("status"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BusinessNotApprovedError as e:
        return _not_approved_response(e, single=True)

    return jsonify({"message": "Order status updated successfully", "order": order.to_dict()})


@orders_bp.put("/<int:order_id>")
@require_auth
@require_admin
def update_order(order_id: int):
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.update_order(order_id=order_id, payload=data)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BusinessNotApprovedError as e:
        return _not_approved_response(e, single=True)

    return jsonify({"message": "Order updated successfully", "order": order.to_dict()})


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_admin
def delete_order(order_id: int):
    try:
        order_service.delete_order(order_id=order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Order deleted successfully"})
