"""
Order creation tests.

Verifies:
- The availability gate runs before any write
- Order insert, stock flip and ledger entry commit together
- A second order for the same piece is rejected
- Failures inside the transaction leave no trace
- Deleting an order keeps its ledger entry, unlinked
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from orderdesk.models import Order, Product, ProductStockHistory
from orderdesk.services import order_service
from orderdesk.services.concurrency import PersistenceError
from orderdesk.services.products_service import ProductUnavailableError
from orderdesk.validation import NotFoundError, ValidationError

from conftest import add_token, make_product


def _place(user, product, **overrides):
    kwargs = dict(
        user_id=user.id,
        product_id=product.id,
        quantity=1,
        total_amount="1500.00",
        remark="Gift wrap",
        courier_company="BlueDart",
    )
    kwargs.update(overrides)
    return order_service.create_order(**kwargs)


class TestCreateOrder:

    def test_creates_order_and_flips_stock(self, db_session, approved_business, product, emitted, pushes):
        order = _place(approved_business, product)

        assert order.id is not None
        assert order.status == "pending"
        assert order.total_amount == Decimal("1500.00")
        assert db_session.get(Product, product.id).stock_status == "out_of_stock"

    def test_writes_ordered_ledger_entry(self, db_session, approved_business, product, emitted, pushes):
        order = _place(approved_business, product, quantity=2)

        entries = db_session.query(ProductStockHistory).filter_by(product_id=product.id).all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == "ordered"
        assert entry.order_id == order.id
        assert entry.user_id == approved_business.id
        assert entry.quantity == 2
        assert entry.previous_status == "available"
        assert entry.new_status == "out_of_stock"

    def test_deleting_order_keeps_ledger_entry(self, db_session, approved_business, product, emitted, pushes):
        order = _place(approved_business, product)
        order_id = order.id

        order_service.delete_order(order_id=order_id)

        assert db_session.get(Order, order_id) is None
        entry = db_session.query(ProductStockHistory).filter_by(product_id=product.id).one()
        assert entry.order_id is None
        assert entry.action == "ordered"
        assert entry.new_status == "out_of_stock"

    def test_reserved_product_can_still_be_ordered(self, db_session, approved_business, category, emitted, pushes):
        reserved = make_product(db_session, sku="RES-1", category=category, stock_status="reserved")

        _place(approved_business, reserved)

        entry = db_session.query(ProductStockHistory).filter_by(product_id=reserved.id).one()
        assert entry.previous_status == "reserved"

    def test_second_order_for_same_piece_is_rejected(self, db_session, approved_business, product, emitted, pushes):
        _place(approved_business, product)

        with pytest.raises(ProductUnavailableError) as exc:
            _place(approved_business, product)

        assert exc.value.product_id == product.id
        assert db_session.query(Order).count() == 1
        assert db_session.query(ProductStockHistory).count() == 1

    def test_draft_product_is_rejected(self, db_session, approved_business, category, emitted, pushes):
        draft = make_product(db_session, sku="DRF-1", category=category, status="draft")

        with pytest.raises(ProductUnavailableError):
            _place(approved_business, draft)

        assert db_session.query(Order).count() == 0
        assert db_session.get(Product, draft.id).stock_status == "available"

    def test_missing_product_is_rejected(self, db_session, approved_business, emitted, pushes):
        with pytest.raises(ProductUnavailableError):
            order_service.create_order(
                user_id=approved_business.id, product_id=4242, quantity=1, total_amount=10
            )

    def test_lost_race_leaves_no_order(self, db_session, approved_business, product, monkeypatch, emitted, pushes):
        # Another request flipped the piece after this one passed the gate
        product.stock_status = "out_of_stock"
        db_session.commit()
        monkeypatch.setattr(order_service, "is_available_for_order", lambda product_id: True)

        with pytest.raises(ProductUnavailableError):
            _place(approved_business, product)

        assert db_session.query(Order).count() == 0
        assert db_session.query(ProductStockHistory).count() == 0

    def test_ledger_failure_rolls_back_everything(self, db_session, approved_business, product, monkeypatch, emitted, pushes):
        def broken_ledger(**kwargs):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(order_service, "record_stock_history", broken_ledger)

        with pytest.raises(PersistenceError):
            _place(approved_business, product)

        assert db_session.query(Order).count() == 0
        assert db_session.get(Product, product.id).stock_status == "available"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"quantity": 0},
            {"quantity": "two"},
            {"total_amount": "abc"},
            {"total_amount": -5},
            {"product_id": None},
        ],
    )
    def test_invalid_input(self, db_session, approved_business, product, overrides):
        with pytest.raises(ValidationError):
            _place(approved_business, product, **overrides)
        assert db_session.get(Product, product.id).stock_status == "available"

    def test_unknown_user(self, db_session, product):
        with pytest.raises(NotFoundError):
            order_service.create_order(user_id=999, product_id=product.id, quantity=1, total_amount=10)

    def test_notifies_admin_and_emits(self, db_session, admin, approved_business, product, emitted, pushes):
        add_token(db_session, admin.id, "admin-device-token")

        order = _place(approved_business, product)

        assert len(pushes) == 1
        tokens, title, _, data = pushes[0]
        assert tokens == ["admin-device-token"]
        assert title == "New Order Received"
        assert data["orderId"] == str(order.id)

        events = [(event, room) for event, _, room in emitted]
        assert ("order-update", None) in events
        assert ("order-created", f"user-{approved_business.id}") in events
        assert ("new-notification", "admin") in events

    def test_notification_failure_does_not_fail_order(self, db_session, approved_business, product, monkeypatch, emitted):
        def boom(order):
            raise RuntimeError("fcm down")

        monkeypatch.setattr(order_service.notification_service, "notify_new_order", boom)

        order = _place(approved_business, product)
        assert db_session.get(Order, order.id) is not None

    def test_without_admin_token_order_still_succeeds(self, db_session, admin, approved_business, product, emitted, pushes):
        order = _place(approved_business, product)

        assert order.id is not None
        assert pushes == []


class TestCreateOrderRoute:

    def test_business_places_order(self, client, db_session, business_headers, approved_business, product, emitted, pushes):
        resp = client.post(
            "/api/orders",
            json={"product_id": product.id, "quantity": 1, "total_amount": 1500},
            headers=business_headers,
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["message"] == "Order created successfully"
        assert body["order"]["user_id"] == approved_business.id
        assert body["order"]["product_sku"] == "RNG-001"
        assert body["orderId"] == body["order"]["id"]

    def test_unavailable_product_returns_400(self, client, db_session, business_headers, product, emitted, pushes):
        payload = {"product_id": product.id, "quantity": 1, "total_amount": 1500}
        client.post("/api/orders", json=payload, headers=business_headers)

        resp = client.post("/api/orders", json=payload, headers=business_headers)

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Product is not available for order"

    def test_missing_fields_returns_400(self, client, db_session, business_headers):
        resp = client.post("/api/orders", json={"quantity": 1}, headers=business_headers)
        assert resp.status_code == 400
        assert "product_id" in resp.get_json()["error"]

    def test_business_cannot_order_for_someone_else(
        self, client, db_session, business_headers, approved_business, pending_business, product, emitted, pushes
    ):
        resp = client.post(
            "/api/orders",
            json={"product_id": product.id, "quantity": 1, "total_amount": 1500, "user_id": pending_business.id},
            headers=business_headers,
        )

        assert resp.status_code == 201
        assert resp.get_json()["order"]["user_id"] == approved_business.id

    def test_admin_orders_on_behalf_of_user(self, client, db_session, admin_headers, approved_business, product, emitted, pushes):
        resp = client.post(
            "/api/orders",
            json={"product_id": product.id, "quantity": 1, "total_amount": 1500, "user_id": approved_business.id},
            headers=admin_headers,
        )

        assert resp.status_code == 201
        assert resp.get_json()["order"]["user_id"] == approved_business.id
