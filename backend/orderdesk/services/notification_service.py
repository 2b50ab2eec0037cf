# Overview: Service-layer operations for notifications; encapsulates business logic and database work.

"""
Notification fan-out.

Recipient resolution:
- admin-directed notifications go to the active tokens of ADMIN_USER_ID
- user-directed notifications go to the user's active tokens; login decisions
  fall back to the newest anonymous token when the user has none

No token means nothing is persisted and the caller gets a non-fatal
`requiresAppAction` result. A notification of the same (user, type) inside
NOTIFICATION_DEDUP_SECONDS is suppressed.

Delivery side effects are independent and fail-safe: persisting the record,
the FCM push, the realtime `new-notification` emit and the unread marker each
log their own failure and never abort the others or the caller.
"""

from __future__ import annotations

import json
import logging
from functools import wraps

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Notification, NotificationToken, UserNotification
from ..validation import NotFoundError, ValidationError
from . import push_service, realtime_service
from orderdesk.time_utils import event_timestamp, seconds_ago, utcnow


logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = {
    "user_registration": {"sound": "user_registration.mp3", "icon": "👤", "color": "#2196F3"},
    "login_request": {"sound": "login_request.mp3", "icon": "🔐", "color": "#FF9800"},
    "login_approved": {"sound": "login_approved.mp3", "icon": "✅", "color": "#4CAF50"},
    "login_rejected": {"sound": "login_rejected.mp3", "icon": "❌", "color": "#F44336"},
    "new_order": {"sound": "new_order.mp3", "icon": "🛒", "color": "#FF9800"},
    "order_status": {"sound": "order_status.mp3", "icon": "📦", "color": "#3F51B5"},
}
DEFAULT_STYLE = {"sound": "default.mp3", "icon": "🔔", "color": "#5D0829"}

# Login decisions reach devices that registered before the user logged in
ANONYMOUS_FALLBACK_TYPES = {"login_approved", "login_rejected"}


def admin_user_id() -> int:
    return current_app.config.get("ADMIN_USER_ID", 1)


def _dedup_window() -> int:
    return current_app.config.get("NOTIFICATION_DEDUP_SECONDS", 60)


def _active_tokens(user_id: int) -> list[str]:
    rows = (
        db.session.query(NotificationToken.token)
        .filter(NotificationToken.user_id == user_id, NotificationToken.active.is_(True))
        .order_by(NotificationToken.updated_at.desc(), NotificationToken.id.desc())
        .all()
    )
    return [r.token for r in rows]


def _latest_anonymous_token() -> str | None:
    return (
        db.session.query(NotificationToken.token)
        .filter(NotificationToken.user_id.is_(None), NotificationToken.active.is_(True))
        .order_by(NotificationToken.updated_at.desc(), NotificationToken.id.desc())
        .limit(1)
        .scalar()
    )


def is_duplicate(user_id: int | None, notification_type: str) -> bool:
    return db.session.query(Notification.id).filter(
        Notification.user_id == user_id,
        Notification.type == notification_type,
        Notification.created_at > seconds_ago(_dedup_window()),
    ).first() is not None


def build_notification_data(notification_type: str, data: dict | None) -> dict[str, str]:
    """Stringified payload plus the type's sound, icon and color."""
    style = NOTIFICATION_TYPES.get(notification_type, DEFAULT_STYLE)
    out = {k: "" if v is None else str(v) for k, v in (data or {}).items()}
    out.update({
        "notificationType": notification_type,
        "sound": style["sound"],
        "icon": style["icon"],
        "color": style["color"],
        "timestamp": event_timestamp(),
    })
    return out


def _persist(user_id: int | None, notification_type: str, title: str, body: str, payload: dict) -> int | None:
    try:
        n = Notification(user_id=user_id, title=title, body=body, type=notification_type, data=json.dumps(payload))
        db.session.add(n)
        db.session.commit()
        return n.id
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to persist %s notification for user %s", notification_type, user_id)
        return None


def _push(tokens: list[str], title: str, body: str, payload: dict) -> dict:
    try:
        if len(tokens) == 1:
            result = push_service.send_push(tokens[0], title, body, payload)
        else:
            result = push_service.send_multicast(tokens, title, body, payload)
    except Exception:
        logger.exception("Push delivery raised")
        return {"success": False, "error": "Push delivery failed"}

    if result.get("invalidTokens"):
        deactivate_tokens(result["invalidTokens"])
    return result


def _mark_unread(user_id: int, notification_id: int) -> None:
    try:
        row = db.session.query(UserNotification).filter_by(
            user_id=user_id, notification_id=notification_id
        ).first()
        if row is None:
            db.session.add(UserNotification(user_id=user_id, notification_id=notification_id, read_at=None))
        else:
            row.read_at = None
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to mark notification %s unread for user %s", notification_id, user_id)


def _deliver(
    *,
    user_id: int,
    room: str,
    tokens: list[str],
    notification_type: str,
    title: str,
    body: str,
    data: dict | None,
    used_fallback: bool = False,
) -> dict:
    if is_duplicate(user_id, notification_type):
        logger.info("Duplicate %s notification for user %s suppressed", notification_type, user_id)
        return {"success": False, "duplicate": True, "error": "Duplicate notification prevented"}

    payload = build_notification_data(notification_type, data)

    notification_id = _persist(user_id, notification_type, title, body, payload)
    push_result = _push(tokens, title, body, payload)

    emitted = realtime_service.emit_to_room(room, "new-notification", {
        "id": notification_id,
        "title": title,
        "body": body,
        "type": notification_type,
        "data": payload,
    })

    if notification_id is not None:
        _mark_unread(user_id, notification_id)

    logger.info(
        "Notification %s (%s) to user %s: push=%s emitted=%s",
        notification_id, notification_type, user_id, push_result.get("success"), emitted,
    )
    return {
        "success": True,
        "notificationId": notification_id,
        "pushResult": push_result,
        "emitted": emitted,
        "usedFallback": used_fallback,
        "type": notification_type,
        "sound": payload["sound"],
    }


def _fail_safe(f):
    """Store errors during recipient resolution become a failed result."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Notification delivery failed in %s", f.__name__)
            return {"success": False, "error": "Notification delivery failed"}

    return decorated_function


@_fail_safe
def send_admin_notification(notification_type: str, title: str, body: str, data: dict | None = None) -> dict:
    admin_id = admin_user_id()
    tokens = _active_tokens(admin_id)
    if not tokens:
        logger.warning("No admin token found; %s notification not sent", notification_type)
        return {"success": False, "error": "No admin token found", "requiresAppAction": True}

    return _deliver(
        user_id=admin_id,
        room=realtime_service.ADMIN_ROOM,
        tokens=tokens,
        notification_type=notification_type,
        title=title,
        body=body,
        data=data,
    )


@_fail_safe
def send_user_notification(
    user_id: int,
    notification_type: str,
    title: str,
    body: str,
    data: dict | None = None,
) -> dict:
    tokens = _active_tokens(user_id)
    used_fallback = False

    if not tokens and notification_type in ANONYMOUS_FALLBACK_TYPES:
        fallback = _latest_anonymous_token()
        if fallback:
            logger.info("User %s has no token; using anonymous token %s", user_id, push_service.token_preview(fallback))
            tokens = [fallback]
            used_fallback = True

    if not tokens:
        logger.warning("No token for user %s; %s notification not sent", user_id, notification_type)
        return {"success": False, "error": "No user token found", "requiresAppAction": True}

    return _deliver(
        user_id=user_id,
        room=realtime_service.user_room(user_id),
        tokens=tokens,
        notification_type=notification_type,
        title=title,
        body=body,
        data=data,
        used_fallback=used_fallback,
    )


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------

def notify_user_registration(user) -> dict:
    result = send_admin_notification(
        "user_registration",
        "New User Registration",
        f"{user.name} ({user.email}) has registered for an account.",
        {
            "action": "view_user",
            "userId": user.id,
            "userName": user.name,
            "userEmail": user.email,
            "businessName": user.business_name or "N/A",
            "phoneNumber": user.phone_number or "N/A",
        },
    )
    realtime_service.emit_to_admins("new-user-registration", {
        "action": "created",
        "user": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "business_name": user.business_name or "N/A",
            "phone_number": user.phone_number or "N/A",
            "type": user.type,
        },
    })
    return result


def notify_login_request(login_request) -> dict:
    user = login_request.user
    user_name = user.name if user else f"User {login_request.user_id}"
    return send_admin_notification(
        "login_request",
        "New Login Request",
        f"{user_name} has requested login access.",
        {
            "action": "view_login_request",
            "loginRequestId": login_request.id,
            "userId": login_request.user_id,
            "userName": user_name,
            "businessName": (user.business_name if user else None) or "N/A",
        },
    )


def notify_new_order(order) -> dict:
    user_name = order.user.name if order.user else f"User {order.user_id}"
    product_name = order.product.name if order.product else f"Product {order.product_id}"
    return send_admin_notification(
        "new_order",
        "New Order Received",
        f"Order #{order.id} from {user_name} for {product_name} - {order.total_amount}",
        {
            "action": "view_order",
            "orderId": order.id,
            "userId": order.user_id,
            "userName": user_name,
            "productId": order.product_id,
            "productName": product_name,
            "quantity": order.quantity,
            "totalAmount": order.total_amount,
        },
    )


def notify_new_order_batch(user, order_ids: list[int]) -> dict:
    """One summary notification for a whole cart checkout."""
    user_name = user.name if user else "A customer"
    return send_admin_notification(
        "new_order",
        "New Orders Received",
        f"{user_name} placed {len(order_ids)} order(s) from cart.",
        {
            "action": "view_orders",
            "userId": user.id if user else None,
            "userName": user_name,
            "orderIds": ",".join(str(i) for i in order_ids),
            "totalOrders": len(order_ids),
        },
    )


def notify_registration_status_change(user) -> dict:
    remarks = f" Remarks: {user.remarks}" if user.remarks else ""
    result = send_user_notification(
        user.id,
        "user_registration",
        "Registration Status Updated",
        f"Your registration has been {user.status}.{remarks}",
        {"action": "view_profile", "userId": user.id, "status": user.status, "remarks": user.remarks},
    )
    realtime_service.emit_to_user(user.id, "registration-status-change", {
        "userId": user.id,
        "status": user.status,
        "remarks": user.remarks,
    })
    return result


def notify_login_request_status_change(login_request) -> dict:
    notification_type = "login_approved" if login_request.status == "approved" else "login_rejected"
    remarks = f" Remarks: {login_request.remarks}" if login_request.remarks else ""
    result = send_user_notification(
        login_request.user_id,
        notification_type,
        "Login Request Status Updated",
        f"Your login request has been {login_request.status}.{remarks}",
        {
            "action": "view_login_request",
            "loginRequestId": login_request.id,
            "status": login_request.status,
            "sessionTimeMinutes": login_request.session_time_minutes,
            "remarks": login_request.remarks,
        },
    )
    realtime_service.emit_to_user(login_request.user_id, "login-request-status-change", {
        "loginRequestId": login_request.id,
        "status": login_request.status,
        "sessionTimeMinutes": login_request.session_time_minutes,
    })
    return result


def notify_order_status_change(order) -> dict:
    remarks = f" Remarks: {order.remark}" if order.remark else ""
    return send_user_notification(
        order.user_id,
        "order_status",
        "Order Status Updated",
        f"Your order #{order.id} has been {order.status}.{remarks}",
        {"action": "view_order", "orderId": order.id, "status": order.status},
    )


# ---------------------------------------------------------------------------
# Token registration
# ---------------------------------------------------------------------------

def _clean_token(token: str | None) -> str:
    token = (token or "").strip()
    if not token:
        raise ValidationError("FCM token is required")
    return token


def register_token(user_id: int, token: str, device_type: str = "web") -> NotificationToken:
    """Authenticated registration; claims the token for the caller and reactivates it."""
    token = _clean_token(token)
    row = db.session.query(NotificationToken).filter_by(token=token).first()
    if row is None:
        row = NotificationToken(token=token)
        db.session.add(row)
    row.user_id = user_id
    row.device_type = device_type or "web"
    row.active = True
    row.updated_at = utcnow()
    db.session.commit()

    logger.info("Token %s registered for user %s", push_service.token_preview(token), user_id)
    return row


def register_token_unauth(token: str, device_type: str = "mobile", user_id: int | None = None) -> NotificationToken:
    """Pre-login registration; an owner already recorded on the token is kept."""
    token = _clean_token(token)
    row = db.session.query(NotificationToken).filter_by(token=token).first()
    if row is None:
        row = NotificationToken(token=token, user_id=user_id)
        db.session.add(row)
    elif row.user_id is None:
        row.user_id = user_id
    row.device_type = device_type or "mobile"
    row.active = True
    row.updated_at = utcnow()
    db.session.commit()

    logger.info("Token %s registered (user %s)", push_service.token_preview(token), row.user_id)
    return row


def deactivate_tokens(tokens: list[str]) -> int:
    try:
        count = (
            db.session.query(NotificationToken)
            .filter(NotificationToken.token.in_(tokens))
            .update({NotificationToken.active: False}, synchronize_session=False)
        )
        db.session.commit()
        return count
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to deactivate %s unregistered tokens", len(tokens))
        return 0


def list_tokens(user_id: int | None = None) -> list[dict]:
    q = db.session.query(NotificationToken).filter(NotificationToken.active.is_(True))
    if user_id is not None:
        q = q.filter(NotificationToken.user_id == user_id)
    return [t.to_dict() for t in q.order_by(NotificationToken.created_at.desc(), NotificationToken.id.desc()).all()]


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

def _visible_to(user_id: int):
    return db.or_(Notification.user_id == user_id, Notification.user_id.is_(None))


def _read_ids(user_id: int) -> set[int]:
    rows = db.session.query(UserNotification.notification_id).filter(
        UserNotification.user_id == user_id,
        UserNotification.read_at.isnot(None),
    ).all()
    return {r.notification_id for r in rows}


def list_user_notifications(user_id: int, page: int = 1, limit: int = 20) -> dict:
    page = max(page or 1, 1)
    limit = max(1, min(limit or 20, 100))

    q = db.session.query(Notification).filter(_visible_to(user_id))
    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    read = _read_ids(user_id)

    items = []
    for n in rows:
        d = n.to_dict()
        d["is_read"] = n.id in read
        items.append(d)

    return {"notifications": items, "page": page, "limit": limit, "total": total}


def get_unread_count(user_id: int) -> int:
    read_subq = db.session.query(UserNotification.notification_id).filter(
        UserNotification.user_id == user_id,
        UserNotification.read_at.isnot(None),
    )
    return db.session.query(Notification).filter(
        _visible_to(user_id),
        ~Notification.id.in_(read_subq),
    ).count()


def _upsert_read(user_id: int, notification_id: int, now) -> None:
    row = db.session.query(UserNotification).filter_by(user_id=user_id, notification_id=notification_id).first()
    if row is None:
        db.session.add(UserNotification(user_id=user_id, notification_id=notification_id, read_at=now))
    else:
        row.read_at = now


def mark_as_read(user_id: int, notification_id: int) -> None:
    if db.session.get(Notification, notification_id) is None:
        raise NotFoundError("Notification not found")
    _upsert_read(user_id, notification_id, utcnow())
    db.session.commit()


def mark_all_as_read(user_id: int) -> int:
    now = utcnow()
    ids = [r.id for r in db.session.query(Notification.id).filter(_visible_to(user_id)).all()]
    for notification_id in ids:
        _upsert_read(user_id, notification_id, now)
    db.session.commit()
    return len(ids)


def delete_notification(notification_id: int) -> None:
    n = db.session.get(Notification, notification_id)
    if n is None:
        raise NotFoundError("Notification not found")
    db.session.query(UserNotification).filter_by(notification_id=notification_id).delete(synchronize_session=False)
    db.session.delete(n)
    db.session.commit()


def create_broadcast(
    *,
    title: str,
    body: str,
    notification_type: str | None = None,
    target_user_ids: list[int] | None = None,
    topic: str | None = None,
    data: dict | None = None,
) -> dict:
    """
    Admin broadcast: one Notification row with no recipient, pushed to a
    topic, to the target users' tokens, or to every active token.
    """
    if not title or not body:
        raise ValidationError("Title and body are required")
    if data is not None and not isinstance(data, dict):
        raise ValidationError("data must be an object")

    n = Notification(
        user_id=None,
        title=title,
        body=body,
        type=notification_type or "general",
        data=json.dumps(data) if data else None,
    )
    db.session.add(n)
    db.session.commit()

    if topic:
        push_result = push_service.send_to_topic(topic, title, body, data)
    else:
        q = db.session.query(NotificationToken.token).filter(NotificationToken.active.is_(True))
        if target_user_ids:
            q = q.filter(NotificationToken.user_id.in_(target_user_ids))
        tokens = [r.token for r in q.all()]
        push_result = _push(tokens, title, body, data or {}) if tokens else None

    realtime_service.emit_to_all("new-notification", {"id": n.id, "title": title, "body": body, "type": n.type})
    return {"notificationId": n.id, "pushResult": push_result}


def get_admin_notification_stats() -> dict:
    admin_id = admin_user_id()
    q = db.session.query(Notification).filter(Notification.user_id == admin_id)

    def _count(notification_type: str) -> int:
        return q.filter(Notification.type == notification_type).count()

    return {
        "total_notifications": q.count(),
        "registration_count": _count("user_registration"),
        "login_request_count": _count("login_request"),
        "order_count": _count("new_order"),
        "unread_count": get_unread_count(admin_id),
    }


def _user_token_or_404(user_id: int) -> str:
    tokens = _active_tokens(user_id)
    if not tokens:
        raise NotFoundError("User token not found")
    return tokens[0]


def subscribe_user_to_topic(user_id: int, topic: str) -> dict:
    if not user_id or not topic:
        raise ValidationError("User ID and topic are required")
    return push_service.subscribe_to_topic(_user_token_or_404(user_id), topic)


def unsubscribe_user_from_topic(user_id: int, topic: str) -> dict:
    if not user_id or not topic:
        raise ValidationError("User ID and topic are required")
    return push_service.unsubscribe_from_topic(_user_token_or_404(user_id), topic)
