# Overview: Service-layer operations for orders; encapsulates business logic and database work.

# backend/orderdesk/services/order_service.py
"""
Order workflows.

Order creation invariants:
- The availability gate is consulted first; an unavailable product never
  produces an order.
- The order insert, the product's flip to `out_of_stock` and the `ordered`
  ledger entry commit together or not at all.
- The stock flip is a conditional update (active and not yet out of stock);
  of two concurrent orders for the same piece exactly one wins, the other
  gets ProductUnavailableError.

Status workflow invariants:
- Orders of a business user that is not approved can only move to
  `cancelled`.
- A bulk update is all-or-nothing: one blocked order rejects the whole batch.

Notifications and realtime emits run after commit and never fail the
operation.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, update

from ..extensions import db
from ..models import Order, Product, ProductStockHistory, User
from ..models.catalog import PRODUCT_STATUS_ACTIVE, STOCK_OUT_OF_STOCK
from ..models.orders import ORDER_STATUS_CANCELLED, ORDER_STATUS_PENDING, ORDER_STATUSES, STOCK_ACTION_ORDERED
from ..validation import NotFoundError, ValidationError, coerce_amount, coerce_int, require_choice
from . import cart_service, notification_service, realtime_service
from .concurrency import PersistenceError, lock_for_update, transaction
from .products_service import ProductUnavailableError, is_available_for_order
from .stock_ledger_service import record_stock_history
from orderdesk.time_utils import utcnow


logger = logging.getLogger(__name__)

ORDER_MUTABLE_FIELDS = {"product_id", "quantity", "total_amount", "remark", "courier_company"}


class EmptyCartError(Exception):
    """Checkout attempted with no pending cart lines."""

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class BusinessNotApprovedError(Exception):
    """
    Status change blocked because the owning business user is not approved.

    blocked_orders: [{"orderId", "userId", "userStatus"}]
    """

    allowed_statuses = [ORDER_STATUS_CANCELLED]

    def __init__(self, blocked_orders: list[dict]):
        self.blocked_orders = blocked_orders
        if len(blocked_orders) == 1:
            message = (
                f"Cannot update order status. Business user is {blocked_orders[0]['userStatus'] or 'not approved'}. "
                "Only cancellation is allowed."
            )
        else:
            message = (
                f"Cannot update {len(blocked_orders)} orders. Their business users are not approved. "
                "Only cancellation is allowed."
            )
        super().__init__(message)


def _best_effort(label: str, fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.exception("%s failed", label)
        return None


def _owner_blocks_progress(user: User | None) -> bool:
    """Only approved business users (and admins) can have orders progress."""
    if user is None:
        return True
    return not user.is_admin and not user.is_approved


def _blocked_entry(order: Order, user: User | None) -> dict:
    return {
        "orderId": order.id,
        "userId": order.user_id,
        "userStatus": user.status if user else None,
    }


def _required(payload: dict, *keys: str) -> None:
    missing = [k for k in keys if payload.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def create_order(
    *,
    user_id,
    product_id,
    quantity,
    total_amount,
    remark: str | None = None,
    courier_company: str | None = None,
    notify: bool = True,
) -> Order:
    """
    Place one order for one product.

    Raises ValidationError, NotFoundError (user), ProductUnavailableError,
    PersistenceError.
    """
    _required(
        {"user_id": user_id, "product_id": product_id, "quantity": quantity, "total_amount": total_amount},
        "user_id", "product_id", "quantity", "total_amount",
    )
    user_id = coerce_int("user_id", user_id)
    product_id = coerce_int("product_id", product_id)
    quantity = coerce_int("quantity", quantity)
    total_amount = coerce_amount("total_amount", total_amount)
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    if total_amount < 0:
        raise ValidationError("total_amount must be >= 0")

    if db.session.get(User, user_id) is None:
        raise NotFoundError("User not found")

    if not is_available_for_order(product_id):
        raise ProductUnavailableError(product_id)

    with transaction("create order"):
        previous_status = (
            lock_for_update(db.session.query(Product.stock_status).filter(Product.id == product_id))
            .scalar()
        )

        flipped = db.session.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.status == PRODUCT_STATUS_ACTIVE,
                Product.stock_status != STOCK_OUT_OF_STOCK,
            )
            .values(stock_status=STOCK_OUT_OF_STOCK, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            raise ProductUnavailableError(product_id)

        order = Order(
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            total_amount=total_amount,
            status=ORDER_STATUS_PENDING,
            remark=remark,
            courier_company=courier_company,
        )
        db.session.add(order)
        db.session.flush()

        record_stock_history(
            product_id=product_id,
            action=STOCK_ACTION_ORDERED,
            quantity=quantity,
            previous_status=previous_status,
            new_status=STOCK_OUT_OF_STOCK,
            order_id=order.id,
            user_id=user_id,
            notes=f"Order {order.id} placed - Product marked as out of stock",
        )

    logger.info("Order %s placed by user %s for product %s", order.id, user_id, product_id)

    if notify:
        _best_effort("new order notification", notification_service.notify_new_order, order)
        order_data = order.to_dict()
        realtime_service.notify_order_update(order_data, "order-created")
        realtime_service.emit_to_user(user_id, "order-created", {"order": order_data})

    return order


def create_orders_from_cart(
    *,
    user_id: int,
    remark: str | None = None,
    courier_company: str | None = None,
) -> dict:
    """
    Turn every pending cart line into its own order.

    Lines that cannot become an order (unavailable product, invalid line
    total, failed write) are skipped and reported; the cart is cleared
    either way.
    """
    items = cart_service.pending_items(user_id)
    if not items:
        raise EmptyCartError()

    lines = [(item.product_id, item.quantity, item.product.mark_amount) for item in items]

    order_ids: list[int] = []
    skipped: list[dict] = []
    for product_id, quantity, mark_amount in lines:
        try:
            order = create_order(
                user_id=user_id,
                product_id=product_id,
                quantity=quantity,
                total_amount=Decimal(mark_amount or 0) * quantity,
                remark=remark,
                courier_company=courier_company,
                notify=False,
            )
        except ProductUnavailableError:
            logger.info("Cart checkout for user %s skipped unavailable product %s", user_id, product_id)
            skipped.append({"product_id": product_id, "reason": "Product is not available for order"})
        except (ValidationError, NotFoundError) as e:
            logger.info("Cart checkout for user %s skipped product %s: %s", user_id, product_id, e)
            skipped.append({"product_id": product_id, "reason": str(e)})
        except PersistenceError:
            skipped.append({"product_id": product_id, "reason": "Failed to create order"})
        else:
            order_ids.append(order.id)

    try:
        cart_service.clear_user_cart(user_id)
    except PersistenceError:
        logger.warning("Cart for user %s not cleared after checkout", user_id)

    realtime_service.notify_order_update(None, "orders-created-from-cart", orderIds=order_ids, userId=user_id)
    realtime_service.emit_to_user(user_id, "orders-created-from-cart", {"orderIds": order_ids, "skipped": skipped})
    if order_ids:
        _best_effort(
            "cart checkout notification",
            notification_service.notify_new_order_batch,
            db.session.get(User, user_id),
            order_ids,
        )

    return {"order_ids": order_ids, "skipped": skipped}


# ---------------------------------------------------------------------------
# Status workflow
# ---------------------------------------------------------------------------

def update_order_status(*, order_id: int, status: str) -> Order:
    require_choice("status", status, ORDER_STATUSES)

    with transaction("update order status"):
        order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
        if order is None:
            raise NotFoundError("Order not found")

        user = db.session.get(User, order.user_id)
        if status != ORDER_STATUS_CANCELLED and _owner_blocks_progress(user):
            raise BusinessNotApprovedError([_blocked_entry(order, user)])

        order.status = status

    logger.info("Order %s status -> %s", order_id, status)

    order_data = order.to_dict()
    realtime_service.notify_order_update(order_data, "status-updated")
    realtime_service.emit_to_user(order.user_id, "order-status-updated", {"order": order_data})
    _best_effort("order status notification", notification_service.notify_order_status_change, order)
    return order


def _parse_order_ids(order_ids) -> list[int]:
    if not isinstance(order_ids, list) or not order_ids:
        raise ValidationError("Order IDs array is required")
    ids = [coerce_int("order_ids", v) for v in order_ids]
    return list(dict.fromkeys(ids))


def bulk_update_order_statuses(*, order_ids, status: str) -> int:
    """
    Move many orders to one status in one transaction.

    Cancellation bypasses the approval rule. Any other target locks the
    orders and rejects the whole batch when any owner is not approved.
    Returns the number of rows updated.
    """
    ids = _parse_order_ids(order_ids)
    require_choice("status", status, ORDER_STATUSES)

    with transaction("bulk update order statuses"):
        if status != ORDER_STATUS_CANCELLED:
            rows = (
                lock_for_update(
                    db.session.query(Order, User)
                    .join(User, User.id == Order.user_id)
                    .filter(Order.id.in_(ids))
                )
                .all()
            )
            blocked = [_blocked_entry(order, user) for order, user in rows if _owner_blocks_progress(user)]
            if blocked:
                raise BusinessNotApprovedError(blocked)

        affected = (
            db.session.query(Order)
            .filter(Order.id.in_(ids))
            .update({Order.status: status, Order.updated_at: utcnow()}, synchronize_session=False)
        )

    logger.info("Bulk status -> %s for %s orders (%s updated)", status, len(ids), affected)
    realtime_service.notify_order_update(
        None, "bulk-status-updated", orderIds=ids, status=status, affectedRows=affected
    )
    return affected


# ---------------------------------------------------------------------------
# Queries and admin maintenance
# ---------------------------------------------------------------------------

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def list_orders(*, status: str | None = None) -> list[Order]:
    q = db.session.query(Order)
    if status:
        require_choice("status", status, ORDER_STATUSES)
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_orders_for_user(user_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def to_my_order(order: Order) -> dict:
    """Order shape of the mobile app: one-element `items` list per order."""
    d = order.to_dict()
    product = order.product
    d["items"] = [{
        "id": order.product_id,
        "product_name": d["product_name"],
        "product_sku": d["product_sku"],
        "product_image": d["product_image"],
        "category_name": d["category_name"],
        "net_weight": float(product.net_weight) if product and product.net_weight is not None else None,
        "gross_weight": float(product.gross_weight) if product and product.gross_weight is not None else None,
        "less_weight": float(product.less_weight) if product and product.less_weight is not None else None,
        "mark_amount": float(product.mark_amount) if product and product.mark_amount is not None else None,
        "quantity": order.quantity,
    }]
    d["total_items"] = 1
    return d


def update_order(*, order_id: int, payload: dict) -> Order:
    """
    Admin full update. A status change in the payload follows the same
    approval rule as update_order_status.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    status = payload.get("status")
    if status is not None:
        require_choice("status", status, ORDER_STATUSES)

    patch: dict = {}
    for key in ORDER_MUTABLE_FIELDS:
        if key not in payload:
            continue
        value = payload[key]
        if key in ("product_id", "quantity"):
            value = coerce_int(key, value)
        elif key == "total_amount":
            value = coerce_amount(key, value)
            if value < 0:
                raise ValidationError("total_amount must be >= 0")
        patch[key] = value
    if patch.get("quantity") is not None and patch["quantity"] < 1:
        raise ValidationError("quantity must be >= 1")
    if "product_id" in patch and db.session.get(Product, patch["product_id"]) is None:
        raise ValidationError("Product not found")

    with transaction("update order"):
        order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
        if order is None:
            raise NotFoundError("Order not found")

        if status is not None and status != order.status and status != ORDER_STATUS_CANCELLED:
            user = db.session.get(User, order.user_id)
            if _owner_blocks_progress(user):
                raise BusinessNotApprovedError([_blocked_entry(order, user)])

        for key, value in patch.items():
            setattr(order, key, value)
        if status is not None:
            order.status = status

    realtime_service.notify_order_update(order.to_dict(), "order-updated")
    return order


def delete_order(*, order_id: int) -> None:
    """Deletes the order; its stock history entries are kept with `order_id` cleared."""
    order = get_order(order_id)
    order_data = order.to_dict()

    with transaction("delete order"):
        db.session.query(ProductStockHistory).filter(
            ProductStockHistory.order_id == order_id
        ).update({ProductStockHistory.order_id: None}, synchronize_session=False)
        db.session.delete(order)

    logger.info("Order %s deleted", order_id)
    realtime_service.notify_order_update(order_data, "order-deleted")


def get_order_statistics() -> dict:
    counts = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    stats = {"total_orders": sum(counts.values())}
    for status in ORDER_STATUSES:
        stats[f"{status}_orders"] = counts.get(status, 0)
    return stats
