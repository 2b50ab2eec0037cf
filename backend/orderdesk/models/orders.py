from __future__ import annotations

from ..extensions import db
from .catalog import decimal_to_float
from orderdesk.time_utils import to_utc_z, utcnow


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

CART_STATUS_PENDING = "pending"
CART_STATUS_REMOVED = "removed"

STOCK_ACTION_ORDERED = "ordered"
STOCK_ACTION_CANCELLED = "cancelled"
STOCK_ACTION_RETURNED = "returned"
STOCK_ACTION_RESERVED = "reserved"
STOCK_ACTION_RELEASED = "released"
STOCK_ACTIONS = (
    STOCK_ACTION_ORDERED,
    STOCK_ACTION_CANCELLED,
    STOCK_ACTION_RETURNED,
    STOCK_ACTION_RESERVED,
    STOCK_ACTION_RELEASED,
)


class Order(db.Model):
    """
    One order row per product.

    A checkout with several cart lines produces several independent orders.
    `status` is moved only by the admin status workflow.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING)
    remark = db.Column(db.Text, nullable=True)
    courier_company = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    product = db.relationship("Product", backref=db.backref("orders", lazy=True))

    def __repr__(self) -> str:
        return f"<Order id={self.id} user_id={self.user_id} product_id={self.product_id} status={self.status}>"

    def to_dict(self) -> dict:
        """Order joined with its owner and product, the shape the dashboard lists."""
        user = self.user
        product = self.product
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "total_amount": decimal_to_float(self.total_amount),
            "status": self.status,
            "remark": self.remark,
            "courier_company": self.courier_company,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "user_name": user.name if user else None,
            "business_name": user.business_name if user else None,
            "user_phone": user.phone_number if user else None,
            "user_status": user.status if user else None,
            "product_name": product.name if product else None,
            "product_sku": product.sku if product else None,
            "product_image": product.image if product else None,
            "category_name": product.category.name if product and product.category else None,
        }


class CartItem(db.Model):
    """
    Cart line, unique per (user, product).

    Lines are never deleted: removal and checkout set `status` to `removed`,
    and re-adding the product revives the same row.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(16), nullable=False, default=CART_STATUS_PENDING)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "product_name": product.name if product else None,
            "product_image": product.image if product else None,
            "product_sku": product.sku if product else None,
            "mark_amount": decimal_to_float(product.mark_amount) if product else None,
            "net_weight": decimal_to_float(product.net_weight) if product else None,
            "gross_weight": decimal_to_float(product.gross_weight) if product else None,
            "category_name": product.category.name if product and product.category else None,
        }


class ProductStockHistory(db.Model):
    """
    Append-only audit trail of stock_status transitions.

    Rows are written in the same transaction as the transition they record
    and are never edited by the ledger itself. Two deletions reach it: deleting
    an order clears `order_id` on the entries that referenced it (the entry
    stays, the link goes), and deleting a product removes that product's
    entries with it.
    """
    __tablename__ = "product_stock_history"
    __table_args__ = (
        db.Index("ix_product_stock_history_action", "action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    previous_status = db.Column(db.String(16), nullable=False)
    new_status = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "action": self.action,
            "quantity": self.quantity,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
