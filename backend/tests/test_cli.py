from datetime import timedelta

from orderdesk.models import CartItem, LoginRequest, User
from orderdesk.services import cart_service, session_service
from orderdesk.time_utils import utcnow


def test_system_init_creates_admin(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--email", "root@orderdesk.test"])

    assert result.exit_code == 0, result.output
    assert "PASS Created admin: root@orderdesk.test" in result.output
    assert db_session.query(User).filter_by(type="admin").count() == 1


def test_system_init_is_idempotent(app, db_session, admin):
    result = app.test_cli_runner().invoke(args=["system", "init"])

    assert result.exit_code == 0
    assert "Admin already exists" in result.output
    assert db_session.query(User).filter_by(type="admin").count() == 1


def test_reset_db_requires_confirmation(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "reset-db"])
    assert result.exit_code != 0


def test_set_status(app, db_session, pending_business):
    result = app.test_cli_runner().invoke(args=["users", "set-status", str(pending_business.id), "approved"])

    assert result.exit_code == 0, result.output
    assert db_session.get(User, pending_business.id).status == "approved"


def test_set_status_rejects_unknown_status(app, db_session, pending_business):
    result = app.test_cli_runner().invoke(args=["users", "set-status", str(pending_business.id), "vip"])
    assert result.exit_code != 0


def test_clear_user_cart(app, db_session, approved_business, product, emitted):
    cart_service.add_to_cart(user_id=approved_business.id, product_id=product.id)

    result = app.test_cli_runner().invoke(args=["cart", "clear-user", str(approved_business.id)])

    assert result.exit_code == 0, result.output
    assert "Cleared 1 cart items" in result.output
    assert db_session.query(CartItem).filter_by(status="pending").count() == 0


def test_deactivate_revokes_sessions(app, db_session, approved_business):
    _, token = session_service.create_session(approved_business.id)

    result = app.test_cli_runner().invoke(args=["users", "set-active", str(approved_business.id), "--inactive"])

    assert result.exit_code == 0, result.output
    assert "is now inactive" in result.output
    assert session_service.validate_session(token) is None


def test_expire_login_requests(app, db_session, approved_business):
    req = LoginRequest(
        user_id=approved_business.id,
        category_ids="[1]",
        status="logged_in",
        session_time_minutes=10,
        session_start_time=utcnow() - timedelta(hours=1),
    )
    db_session.add(req)
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["sessions", "expire-login-requests"])

    assert result.exit_code == 0, result.output
    assert "Expired 1 login requests" in result.output
    assert db_session.get(LoginRequest, req.id).status == "expired"
