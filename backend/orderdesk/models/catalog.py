from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from orderdesk.time_utils import to_utc_z, utcnow


CATEGORY_STATUSES = ("draft", "active")

PRODUCT_STATUS_DRAFT = "draft"
PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUSES = (PRODUCT_STATUS_DRAFT, PRODUCT_STATUS_ACTIVE)

STOCK_AVAILABLE = "available"
STOCK_OUT_OF_STOCK = "out_of_stock"
STOCK_RESERVED = "reserved"
STOCK_STATUSES = (STOCK_AVAILABLE, STOCK_OUT_OF_STOCK, STOCK_RESERVED)


def decimal_to_float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="draft")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image": self.image,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    A single physical jewelry piece.

    Each product row is one unique item (one SKU, one weight), so an order
    consumes the whole item: placing an order flips `stock_status` to
    `out_of_stock`. A product is orderable only while `status` is `active`
    and `stock_status` is not `out_of_stock`.

    `stock_status` changes only through the order workflow and the admin
    manual override; every change is recorded in `product_stock_history`.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_status", "category_id", "status"),
        db.Index("ix_products_status_stock", "status", "stock_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(100), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    image = db.Column(db.String(255), nullable=True)

    net_weight = db.Column(db.Numeric(10, 2), nullable=True)
    gross_weight = db.Column(db.Numeric(10, 2), nullable=True)
    less_weight = db.Column(db.Numeric(10, 2), nullable=True)
    mark_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    pieces = db.Column(db.Integer, nullable=False, default=1)
    purity = db.Column(db.String(255), nullable=True)  # stamp value: MG916, 18K, ...
    size = db.Column(db.String(100), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_DRAFT)
    stock_status = db.Column(db.String(16), nullable=False, default=STOCK_AVAILABLE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    @property
    def is_orderable(self) -> bool:
        return self.status == PRODUCT_STATUS_ACTIVE and self.stock_status != STOCK_OUT_OF_STOCK

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} status={self.status} stock={self.stock_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "name": self.name,
            "sku": self.sku,
            "description": self.description,
            "image": self.image,
            "net_weight": decimal_to_float(self.net_weight),
            "gross_weight": decimal_to_float(self.gross_weight),
            "less_weight": decimal_to_float(self.less_weight),
            "mark_amount": decimal_to_float(self.mark_amount),
            "pieces": self.pieces,
            "purity": self.purity,
            "size": self.size,
            "status": self.status,
            "stock_status": self.stock_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
