"""
Cart and checkout tests.

Verifies:
- Cart lines accumulate, revive and soft-delete
- Checkout creates one order per line and reports skipped lines
- The cart is cleared after checkout even when lines were skipped
"""

import pytest

from orderdesk.models import CartItem, Order, Product
from orderdesk.services import cart_service, order_service
from orderdesk.services.order_service import EmptyCartError
from orderdesk.services.products_service import ProductUnavailableError
from orderdesk.validation import NotFoundError, ValidationError

from conftest import add_token, auth_headers, make_product


class TestCartService:

    def test_add_creates_pending_line(self, db_session, approved_business, product, emitted):
        item = cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=2)

        assert item.status == "pending"
        assert item.quantity == 2
        assert ("cart-item-added", f"user-{approved_business.id}") in [(e, r) for e, _, r in emitted]

    def test_add_again_accumulates(self, db_session, approved_business, product, emitted):
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=1)
        item = cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=2)

        assert item.quantity == 3
        assert db_session.query(CartItem).count() == 1

    def test_removed_line_is_revived(self, db_session, approved_business, product, emitted):
        first = cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=5)
        cart_service.remove_from_cart(cart_item_id=first.id)

        revived = cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=1)

        assert revived.id == first.id
        assert revived.status == "pending"
        assert revived.quantity == 1

    def test_unavailable_product_cannot_be_added(self, db_session, approved_business, category, emitted):
        sold = make_product(db_session, sku="SOLD-1", category=category, stock_status="out_of_stock")

        with pytest.raises(ProductUnavailableError):
            cart_service.add_to_cart(user_id=approved_business.id, product_id=sold.id)

        assert db_session.query(CartItem).count() == 0

    def test_quantity_must_be_positive(self, db_session, approved_business, product):
        with pytest.raises(ValidationError):
            cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=0)

    def test_quantity_is_capped(self, db_session, approved_business, product, emitted):
        with pytest.raises(ValidationError):
            cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=100000)

        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=cart_service.MAX_LINE_QUANTITY)
        with pytest.raises(ValidationError):
            cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=1)

    def test_get_user_cart_totals(self, db_session, approved_business, product, second_product, emitted):
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=2)
        cart_service.add_to_cart(user_id=approved_business.id, product_id=second_product.id, quantity=3)

        cart = cart_service.get_user_cart(approved_business.id)

        assert cart["total_items"] == 2
        assert cart["total_quantity"] == 5
        assert {i["product_sku"] for i in cart["items"]} == {"RNG-001", "RNG-002"}

    def test_removed_line_is_not_found(self, db_session, approved_business, product, emitted):
        item = cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)
        cart_service.remove_from_cart(cart_item_id=item.id)

        with pytest.raises(NotFoundError):
            cart_service.get_cart_item(item.id)

    def test_clear_counts_only_pending_lines(self, db_session, approved_business, product, second_product, emitted):
        a = cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)
        cart_service.add_to_cart(user_id=approved_business.id, product_id=second_product.id)
        cart_service.remove_from_cart(cart_item_id=a.id)

        assert cart_service.clear_user_cart(approved_business.id) == 1
        assert cart_service.get_user_cart(approved_business.id)["total_items"] == 0


class TestCheckout:

    def test_one_order_per_line(self, db_session, approved_business, product, second_product, emitted, pushes):
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id, quantity=1)
        cart_service.add_to_cart(user_id=approved_business.id, product_id=second_product.id, quantity=2)

        result = order_service.create_orders_from_cart(user_id=approved_business.id, remark="Diwali stock")

        assert len(result["order_ids"]) == 2
        assert result["skipped"] == []
        orders = db_session.query(Order).order_by(Order.product_id).all()
        assert [o.product_id for o in orders] == [product.id, second_product.id]
        assert all(o.remark == "Diwali stock" for o in orders)
        assert orders[1].total_amount == 5000
        assert db_session.get(Product, product.id).stock_status == "out_of_stock"
        assert db_session.get(Product, second_product.id).stock_status == "out_of_stock"

    def test_unavailable_line_is_skipped_and_cart_cleared(
        self, db_session, approved_business, product, second_product, emitted, pushes
    ):
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)
        cart_service.add_to_cart(user_id=approved_business.id, product_id=second_product.id)
        # Someone else bought the second piece after it was carted
        second_product.stock_status = "out_of_stock"
        db_session.commit()

        result = order_service.create_orders_from_cart(user_id=approved_business.id)

        assert len(result["order_ids"]) == 1
        assert result["skipped"] == [
            {"product_id": second_product.id, "reason": "Product is not available for order"}
        ]
        assert cart_service.get_user_cart(approved_business.id)["total_items"] == 0

    def test_line_total_too_large_is_skipped(self, db_session, approved_business, product, category, emitted, pushes):
        costly = make_product(db_session, sku="NCK-900", category=category, mark_amount="60000000.00")
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)
        cart_service.add_to_cart(user_id=approved_business.id, product_id=costly.id, quantity=2)

        result = order_service.create_orders_from_cart(user_id=approved_business.id)

        assert len(result["order_ids"]) == 1
        assert db_session.get(Order, result["order_ids"][0]).product_id == product.id
        assert result["skipped"] == [
            {"product_id": costly.id, "reason": "total_amount cannot exceed 99999999.99"}
        ]
        assert db_session.get(Product, costly.id).stock_status == "available"
        assert cart_service.get_user_cart(approved_business.id)["total_items"] == 0

    def test_empty_cart_raises(self, db_session, approved_business):
        with pytest.raises(EmptyCartError):
            order_service.create_orders_from_cart(user_id=approved_business.id)

    def test_one_batch_notification_for_admin(self, db_session, admin, approved_business, product, second_product, emitted, pushes):
        add_token(db_session, admin.id, "admin-device-token")
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)
        cart_service.add_to_cart(user_id=approved_business.id, product_id=second_product.id)

        result = order_service.create_orders_from_cart(user_id=approved_business.id)

        assert len(pushes) == 1
        _, title, _, data = pushes[0]
        assert title == "New Orders Received"
        assert data["totalOrders"] == "2"
        assert data["orderIds"] == ",".join(str(i) for i in result["order_ids"])

    def test_all_lines_skipped_sends_no_notification(self, db_session, admin, approved_business, product, emitted, pushes):
        add_token(db_session, admin.id, "admin-device-token")
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)
        product.status = "draft"
        db_session.commit()

        result = order_service.create_orders_from_cart(user_id=approved_business.id)

        assert result["order_ids"] == []
        assert pushes == []


class TestCartRoutes:

    def test_add_and_list(self, client, db_session, business_headers, product, emitted):
        resp = client.post("/api/cart", json={"product_id": product.id, "quantity": 2}, headers=business_headers)
        assert resp.status_code == 201

        resp = client.get("/api/cart", headers=business_headers)
        assert resp.status_code == 200
        assert resp.get_json()["total_quantity"] == 2

    def test_cannot_touch_another_users_line(
        self, client, db_session, business_headers, pending_business, product, emitted
    ):
        other = cart_service.add_to_cart(user_id=pending_business.id, product_id=product.id)

        assert client.get(f"/api/cart/{other.id}", headers=business_headers).status_code == 403
        assert client.delete(f"/api/cart/{other.id}", headers=business_headers).status_code == 403
        assert client.get(f"/api/cart/user/{pending_business.id}", headers=business_headers).status_code == 403

    def test_update_quantity(self, client, db_session, business_headers, approved_business, product, emitted):
        item = cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)

        resp = client.put(f"/api/cart/{item.id}", json={"quantity": 4}, headers=business_headers)
        assert resp.status_code == 200
        assert resp.get_json()["cartItem"]["quantity"] == 4

        resp = client.put(f"/api/cart/{item.id}", json={"quantity": 0}, headers=business_headers)
        assert resp.status_code == 400

    def test_checkout_route(self, client, db_session, business_headers, approved_business, product, emitted, pushes):
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)

        resp = client.post("/api/orders/from-cart", json={"courier_company": "DTDC"}, headers=business_headers)

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["totalOrders"] == 1
        assert body["skipped"] == []

    def test_checkout_empty_cart_returns_400(self, client, db_session, business_headers):
        resp = client.post("/api/orders/from-cart", json={}, headers=business_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Cart is empty"

    def test_admin_clears_any_cart(self, client, db_session, admin, approved_business, product, emitted):
        cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)

        resp = client.delete(f"/api/cart/user/{approved_business.id}", headers=auth_headers(admin))

        assert resp.status_code == 200
        assert resp.get_json()["cleared_items"] == 1
