# Overview: Service-layer operations for admin dashboard statistics; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Category, Order, Product, User
from ..models.auth import USER_STATUS_APPROVED, USER_TYPE_BUSINESS
from ..models.orders import ORDER_STATUSES
from ..time_utils import utcnow

RECENT_ORDERS_LIMIT = 10
TOP_PRODUCTS_LIMIT = 5
REVENUE_MONTHS = 6


def _day_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or utcnow()
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _month_start(now: datetime, months_back: int) -> datetime:
    year, month = now.year, now.month - months_back
    while month < 1:
        month += 12
        year -= 1
    return datetime(year, month, 1)


def _money(value) -> float:
    return round(float(value or 0), 2)


def _today_orders_query(now: datetime | None = None):
    start, end = _day_bounds(now)
    return db.session.query(Order).filter(Order.created_at >= start, Order.created_at < end)


def _approved_business_count() -> int:
    return (
        db.session.query(func.count(User.id))
        .filter(User.type == USER_TYPE_BUSINESS, User.status == USER_STATUS_APPROVED)
        .scalar()
        or 0
    )


def get_today_summary(now: datetime | None = None) -> dict:
    start, end = _day_bounds(now)
    rows = (
        db.session.query(Order.status, func.count(Order.id), func.sum(Order.total_amount))
        .filter(Order.created_at >= start, Order.created_at < end)
        .group_by(Order.status)
        .all()
    )
    counts = {status: count for status, count, _ in rows}
    total_orders = sum(counts.values())
    revenue = _money(sum(float(amount or 0) for _, _, amount in rows))

    summary = {"total_orders": total_orders, "total_revenue": revenue}
    for status in ORDER_STATUSES:
        summary[f"{status}_orders"] = counts.get(status, 0)
    summary["average_order_value"] = round(revenue / total_orders, 2) if total_orders else 0.0
    return summary


def get_monthly_revenue(now: datetime | None = None) -> list[dict]:
    """Revenue and order count per calendar month, oldest month first."""
    now = now or utcnow()
    since = _month_start(now, REVENUE_MONTHS - 1)
    rows = (
        db.session.query(Order.created_at, Order.total_amount)
        .filter(Order.created_at >= since)
        .all()
    )
    months: dict[str, dict] = {}
    for created_at, amount in rows:
        key = created_at.strftime("%Y-%m")
        bucket = months.setdefault(key, {"month": key, "revenue": 0.0, "order_count": 0})
        bucket["revenue"] = _money(bucket["revenue"] + float(amount or 0))
        bucket["order_count"] += 1
    return [months[k] for k in sorted(months)]


def get_top_products(limit: int = TOP_PRODUCTS_LIMIT) -> list[dict]:
    order_count = func.count(Order.id)
    rows = (
        db.session.query(Product, order_count, func.sum(Order.total_amount))
        .join(Order, Order.product_id == Product.id)
        .group_by(Product.id)
        .order_by(order_count.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": product.id,
            "name": product.name,
            "sku": product.sku,
            "order_count": count,
            "total_revenue": _money(revenue),
        }
        for product, count, revenue in rows
    ]


def get_dashboard_stats(now: datetime | None = None) -> dict:
    today = get_today_summary(now)
    approved_users = _approved_business_count()
    recent = (
        db.session.query(Order)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(RECENT_ORDERS_LIMIT)
        .all()
    )
    conversion = round(today["total_orders"] / approved_users * 100, 2) if approved_users else 0.0

    return {
        "today": today,
        "totals": {
            "approved_users": approved_users,
            "products": db.session.query(func.count(Product.id)).scalar() or 0,
            "categories": db.session.query(func.count(Category.id)).scalar() or 0,
        },
        "metrics": {
            "conversion_rate": conversion,
            "average_order_value": today["average_order_value"],
        },
        "recent_orders": [o.to_dict() for o in recent],
        "monthly_revenue": get_monthly_revenue(now),
        "top_products": get_top_products(),
    }


def get_today_orders(now: datetime | None = None) -> list[Order]:
    return _today_orders_query(now).order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_quick_stats(now: datetime | None = None) -> dict:
    today = get_today_summary(now)
    return {
        "today_orders": today["total_orders"],
        "today_revenue": today["total_revenue"],
        "total_users": _approved_business_count(),
        "total_products": db.session.query(func.count(Product.id)).scalar() or 0,
        "total_categories": db.session.query(func.count(Category.id)).scalar() or 0,
    }
