"""
Notification fan-out tests.

Verifies:
- Admin-directed and user-directed recipient resolution
- No token means nothing is persisted and the caller is told to act
- Same (user, type) inside the dedup window is suppressed
- Login decisions fall back to the newest anonymous token
- Unregistered tokens are deactivated
- Inbox read state and unread counts
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from orderdesk.models import Notification, NotificationToken, UserNotification
from orderdesk.services import notification_service, push_service
from orderdesk.validation import NotFoundError, ValidationError

from conftest import add_token, auth_headers


class TestAdminNotifications:

    def test_no_admin_token(self, db_session, admin, emitted, pushes):
        result = notification_service.send_admin_notification("new_order", "New Order", "Order #1")

        assert result == {"success": False, "error": "No admin token found", "requiresAppAction": True}
        assert db_session.query(Notification).count() == 0
        assert pushes == []

    def test_delivers_to_admin(self, db_session, admin, emitted, pushes):
        add_token(db_session, admin.id, "admin-web")

        result = notification_service.send_admin_notification(
            "user_registration", "New User Registration", "Asha registered", {"userId": 7}
        )

        assert result["success"] is True
        assert result["type"] == "user_registration"
        assert result["sound"] == "user_registration.mp3"
        assert result["usedFallback"] is False
        assert result["emitted"] is True

        n = db_session.get(Notification, result["notificationId"])
        assert n.user_id == admin.id
        assert n.to_dict()["data"]["userId"] == "7"
        assert pushes[0][0] == ["admin-web"]
        assert ("new-notification", "admin") in [(e, r) for e, _, r in emitted]

    def test_marks_unread_for_recipient(self, db_session, admin, emitted, pushes):
        add_token(db_session, admin.id, "admin-web")

        result = notification_service.send_admin_notification("new_order", "New Order", "Order #1")

        row = db_session.query(UserNotification).filter_by(
            user_id=admin.id, notification_id=result["notificationId"]
        ).one()
        assert row.read_at is None

    def test_duplicate_within_window_is_suppressed(self, db_session, admin, emitted, pushes):
        add_token(db_session, admin.id, "admin-web")

        first = notification_service.send_admin_notification("new_order", "New Order", "Order #1")
        second = notification_service.send_admin_notification("new_order", "New Order", "Order #2")

        assert first["success"] is True
        assert second == {"success": False, "duplicate": True, "error": "Duplicate notification prevented"}
        assert db_session.query(Notification).count() == 1
        assert len(pushes) == 1

    def test_different_type_is_not_a_duplicate(self, db_session, admin, emitted, pushes):
        add_token(db_session, admin.id, "admin-web")

        notification_service.send_admin_notification("new_order", "New Order", "Order #1")
        result = notification_service.send_admin_notification("login_request", "Login", "Asha wants in")

        assert result["success"] is True

    def test_dedup_window_is_configurable(self, app, db_session, admin, emitted, pushes, monkeypatch):
        monkeypatch.setitem(app.config, "NOTIFICATION_DEDUP_SECONDS", 0)
        add_token(db_session, admin.id, "admin-web")

        notification_service.send_admin_notification("new_order", "New Order", "Order #1")
        result = notification_service.send_admin_notification("new_order", "New Order", "Order #2")

        assert result["success"] is True

    def test_multiple_tokens_use_multicast(self, db_session, admin, emitted, pushes):
        add_token(db_session, admin.id, "admin-web")
        add_token(db_session, admin.id, "admin-phone", "mobile")

        notification_service.send_admin_notification("new_order", "New Order", "Order #1")

        assert sorted(pushes[0][0]) == ["admin-phone", "admin-web"]

    def test_store_failure_becomes_failed_result(self, db_session, admin, monkeypatch, emitted, pushes):
        def broken(user_id):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(notification_service, "_active_tokens", broken)

        result = notification_service.send_admin_notification("new_order", "New Order", "Order #1")

        assert result == {"success": False, "error": "Notification delivery failed"}


class TestUserNotifications:

    def test_no_user_token(self, db_session, approved_business, emitted, pushes):
        result = notification_service.send_user_notification(
            approved_business.id, "order_status", "Order Status Updated", "Shipped"
        )

        assert result["requiresAppAction"] is True
        assert result["error"] == "No user token found"

    def test_login_decision_falls_back_to_anonymous_token(self, db_session, approved_business, emitted, pushes):
        add_token(db_session, None, "fresh-install", "mobile")

        result = notification_service.send_user_notification(
            approved_business.id, "login_approved", "Login Request Status Updated", "Approved"
        )

        assert result["success"] is True
        assert result["usedFallback"] is True
        assert pushes[0][0] == ["fresh-install"]
        assert db_session.get(Notification, result["notificationId"]).user_id == approved_business.id

    def test_other_types_do_not_fall_back(self, db_session, approved_business, emitted, pushes):
        add_token(db_session, None, "fresh-install", "mobile")

        result = notification_service.send_user_notification(
            approved_business.id, "order_status", "Order Status Updated", "Shipped"
        )

        assert result["success"] is False
        assert pushes == []

    def test_unregistered_token_is_deactivated(self, db_session, approved_business, monkeypatch, emitted):
        add_token(db_session, approved_business.id, "stale-token")

        def unregistered(token, title, body, data=None):
            return {"success": False, "error": "Requested entity was not found.", "invalidTokens": [token]}

        monkeypatch.setattr(push_service, "send_push", unregistered)

        result = notification_service.send_user_notification(
            approved_business.id, "order_status", "Order Status Updated", "Shipped"
        )

        assert result["success"] is True
        assert result["pushResult"]["success"] is False
        token = db_session.query(NotificationToken).filter_by(token="stale-token").one()
        assert token.active is False

    def test_push_exception_does_not_stop_delivery(self, db_session, approved_business, monkeypatch, emitted):
        add_token(db_session, approved_business.id, "asha-phone")

        def raising(token, title, body, data=None):
            raise RuntimeError("network unreachable")

        monkeypatch.setattr(push_service, "send_push", raising)

        result = notification_service.send_user_notification(
            approved_business.id, "order_status", "Order Status Updated", "Shipped"
        )

        assert result["success"] is True
        assert result["pushResult"] == {"success": False, "error": "Push delivery failed"}
        assert result["emitted"] is True


class TestPushNotConfigured:

    def test_send_push_without_credentials(self, app):
        with app.app_context():
            assert push_service.send_push("token", "t", "b") == {
                "success": False,
                "error": "Push delivery not configured",
            }

    def test_token_preview(self):
        assert push_service.token_preview("x" * 30) == "x" * 20 + "..."
        assert push_service.token_preview(None) == "null"


class TestTokenRegistration:

    def test_authenticated_registration_claims_anonymous_token(self, db_session, approved_business):
        notification_service.register_token_unauth("device-1")

        row = notification_service.register_token(approved_business.id, "device-1", "mobile")

        assert row.user_id == approved_business.id
        assert db_session.query(NotificationToken).count() == 1

    def test_unauth_registration_keeps_existing_owner(self, db_session, approved_business, pending_business):
        notification_service.register_token(approved_business.id, "device-1")

        row = notification_service.register_token_unauth("device-1", user_id=pending_business.id)

        assert row.user_id == approved_business.id

    def test_blank_token_rejected(self, db_session):
        with pytest.raises(ValidationError):
            notification_service.register_token_unauth("   ")

    def test_register_token_route(self, client, db_session, business_headers, approved_business):
        resp = client.post(
            "/api/notifications/register-token",
            json={"token": "device-xyz", "device_type": "mobile"},
            headers=business_headers,
        )

        assert resp.status_code == 200
        tokens = notification_service.list_tokens(approved_business.id)
        assert [t["token_preview"] for t in tokens] == ["device-xyz..."]


class TestInbox:

    @pytest.fixture
    def delivered(self, db_session, approved_business, emitted, pushes):
        add_token(db_session, approved_business.id, "asha-phone")
        a = notification_service.send_user_notification(approved_business.id, "order_status", "Shipped", "Order #1")
        b = notification_service.send_user_notification(approved_business.id, "login_approved", "Approved", "Go")
        return [a["notificationId"], b["notificationId"]]

    def test_unread_count_and_mark_read(self, db_session, approved_business, delivered):
        assert notification_service.get_unread_count(approved_business.id) == 2

        notification_service.mark_as_read(approved_business.id, delivered[0])

        assert notification_service.get_unread_count(approved_business.id) == 1
        inbox = notification_service.list_user_notifications(approved_business.id)
        read = {n["id"]: n["is_read"] for n in inbox["notifications"]}
        assert read == {delivered[0]: True, delivered[1]: False}

    def test_mark_all_read(self, db_session, approved_business, delivered):
        assert notification_service.mark_all_as_read(approved_business.id) == 2
        assert notification_service.get_unread_count(approved_business.id) == 0

    def test_broadcast_visible_to_everyone(self, db_session, admin, approved_business, pending_business, emitted, pushes):
        result = notification_service.create_broadcast(title="Holiday", body="Closed on Sunday")

        assert result["pushResult"] is None
        assert notification_service.get_unread_count(approved_business.id) == 1
        assert notification_service.get_unread_count(pending_business.id) == 1

    def test_broadcast_requires_title_and_body(self, db_session):
        with pytest.raises(ValidationError):
            notification_service.create_broadcast(title="", body="x")

    def test_mark_unknown_notification(self, db_session, approved_business):
        with pytest.raises(NotFoundError):
            notification_service.mark_as_read(approved_business.id, 404)

    def test_unread_count_route(self, client, db_session, approved_business, delivered):
        resp = client.get("/api/notifications/unread-count", headers=auth_headers(approved_business))
        assert resp.get_json()["unreadCount"] == 2

    def test_cannot_read_other_inbox(self, client, db_session, approved_business, pending_business, delivered):
        resp = client.get(f"/api/notifications/user/{approved_business.id}", headers=auth_headers(pending_business))
        assert resp.status_code == 403
