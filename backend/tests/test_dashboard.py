"""
Admin dashboard statistics tests.

Verifies:
- Today's figures only count orders placed today
- Monthly revenue covers the last six calendar months
- Top products rank by order count
- Every route is admin-only
"""

from datetime import timedelta

import pytest

from orderdesk.models import Order
from orderdesk.services import dashboard_service, order_service
from orderdesk.time_utils import utcnow

from conftest import make_product


def _place(db_session, user, category, sku, amount):
    product = make_product(db_session, sku=sku, category=category)
    return order_service.create_order(
        user_id=user.id, product_id=product.id, quantity=1, total_amount=amount, notify=False
    )


@pytest.fixture
def placed(db_session, approved_business, pending_business, category, emitted, pushes):
    today_a = _place(db_session, approved_business, category, "DB-1", 1000)
    today_b = _place(db_session, approved_business, category, "DB-2", 500)
    old = _place(db_session, approved_business, category, "DB-3", 700)
    ancient = _place(db_session, approved_business, category, "DB-4", 300)

    old.created_at = utcnow() - timedelta(days=40)
    ancient.created_at = utcnow() - timedelta(days=400)
    db_session.commit()
    order_service.update_order_status(order_id=today_b.id, status="cancelled")
    return {"today": [today_a, today_b], "old": old, "ancient": ancient}


class TestDashboardService:
    def test_today_summary(self, placed):
        today = dashboard_service.get_today_summary()
        assert today["total_orders"] == 2
        assert today["total_revenue"] == 1500.0
        assert today["pending_orders"] == 1
        assert today["cancelled_orders"] == 1
        assert today["average_order_value"] == 750.0

    def test_today_orders(self, placed):
        ids = {o.id for o in dashboard_service.get_today_orders()}
        assert ids == {o.id for o in placed["today"]}

    def test_monthly_revenue_window(self, placed):
        months = dashboard_service.get_monthly_revenue()
        assert sum(m["order_count"] for m in months) == 3
        assert placed["ancient"].created_at.strftime("%Y-%m") not in {m["month"] for m in months}
        assert [m["month"] for m in months] == sorted(m["month"] for m in months)

    def test_stats_totals_count_approved_businesses(self, placed):
        stats = dashboard_service.get_dashboard_stats()
        assert stats["totals"]["approved_users"] == 1
        assert stats["totals"]["products"] == 4
        assert stats["totals"]["categories"] == 1
        assert stats["metrics"]["conversion_rate"] == 200.0
        assert len(stats["recent_orders"]) == 4

    def test_top_products_by_order_count(self, db_session, approved_business, category, emitted, pushes):
        popular = make_product(db_session, sku="TOP-1", category=category)
        db_session.add_all([
            Order(user_id=approved_business.id, product_id=popular.id, quantity=1, total_amount=200)
            for _ in range(2)
        ])
        db_session.commit()
        _place(db_session, approved_business, category, "TOP-2", 900)

        top = dashboard_service.get_top_products()
        assert [(p["sku"], p["order_count"]) for p in top] == [("TOP-1", 2), ("TOP-2", 1)]
        assert top[0]["total_revenue"] == 400.0

    def test_quick_stats(self, placed):
        quick = dashboard_service.get_quick_stats()
        assert quick["today_orders"] == 2
        assert quick["today_revenue"] == 1500.0
        assert quick["total_users"] == 1


class TestDashboardRoutes:
    @pytest.mark.parametrize("path", ["/api/dashboard/stats", "/api/dashboard/today-orders", "/api/dashboard/quick-stats"])
    def test_business_is_forbidden(self, client, business_headers, path):
        response = client.get(path, headers=business_headers)
        assert response.status_code == 403

    def test_anonymous_is_rejected(self, client, db_session):
        assert client.get('/api/dashboard/stats').status_code == 401

    def test_admin_reads_today_orders(self, client, admin_headers, placed):
        response = client.get('/api/dashboard/today-orders', headers=admin_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["count"] == 2
        assert {o["product_sku"] for o in body["data"]} == {"DB-1", "DB-2"}

    def test_admin_reads_stats(self, client, admin_headers, placed):
        response = client.get('/api/dashboard/stats', headers=admin_headers)
        assert response.status_code == 200
        assert response.get_json()["data"]["today"]["total_orders"] == 2
