# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..models import ProductStockHistory
from ..models.catalog import STOCK_STATUSES
from ..models.orders import STOCK_ACTIONS
from ..validation import ValidationError
"""
Stock history ledger invariants

- Append-only: this module never updates or deletes rows. Deleting an order
  clears `order_id` on its entries; deleting a product drops its entries.
- Entries are written inside the same DB transaction as the stock_status
  transition they record; this module flushes but never commits.
- Every entry names both the status before and after the transition.
"""


def record_stock_history(
    *,
    product_id: int,
    action: str,
    previous_status: str,
    new_status: str,
    quantity: int = 1,
    order_id: int | None = None,
    user_id: int | None = None,
    notes: Optional[str] = None,
) -> ProductStockHistory:
    if action not in STOCK_ACTIONS:
        raise ValidationError(f"Invalid stock action: {action}")
    if previous_status not in STOCK_STATUSES:
        raise ValidationError(f"Invalid previous_status: {previous_status}")
    if new_status not in STOCK_STATUSES:
        raise ValidationError(f"Invalid new_status: {new_status}")

    entry = ProductStockHistory(
        product_id=product_id,
        action=action,
        quantity=quantity,
        order_id=order_id,
        user_id=user_id,
        previous_status=previous_status,
        new_status=new_status,
        notes=notes,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_stock_history(
    *,
    product_id: int | None = None,
    order_id: int | None = None,
    limit: int = 100,
) -> list[ProductStockHistory]:
    """Newest first."""
    q = db.session.query(ProductStockHistory)
    if product_id is not None:
        q = q.filter(ProductStockHistory.product_id == product_id)
    if order_id is not None:
        q = q.filter(ProductStockHistory.order_id == order_id)

    limit = max(1, min(int(limit or 100), 500))
    return (
        q.order_by(ProductStockHistory.created_at.desc(), ProductStockHistory.id.desc())
        .limit(limit)
        .all()
    )
