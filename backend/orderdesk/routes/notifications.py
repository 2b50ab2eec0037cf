# Overview: Flask API routes for notification operations; parses input and returns JSON responses.

# backend/orderdesk/routes/notifications.py
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import can_access_user, require_admin, require_auth
from ..services import notification_service
from ..validation import NotFoundError, ValidationError, coerce_int

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.post("")
@require_auth
@require_admin
def create_broadcast():
    """Body: {title, body, type?, targetUsers?: [int], topic?, data?}"""
    data = request.get_json(silent=True) or {}

    try:
        targets = data.get("targetUsers") or data.get("target_user_ids")
        if targets is not None:
            if not isinstance(targets, list):
                raise ValidationError("targetUsers must be a list")
            targets = [coerce_int("targetUsers", v) for v in targets]
        result = notification_service.create_broadcast(
            title=data.get("title"),
            body=data.get("body"),
            notification_type=data.get("type"),
            target_user_ids=targets,
            topic=data.get("topic"),
            data=data.get("data"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"message": "Notification created successfully", **result}), 201


def _inbox(user_id: int):
    return jsonify(notification_service.list_user_notifications(
        user_id,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    ))


@notifications_bp.get("")
@require_auth
def my_notifications():
    return _inbox(g.current_user.id)


@notifications_bp.get("/user/<int:user_id>")
@require_auth
def user_notifications(user_id: int):
    if not can_access_user(user_id):
        return jsonify({"error": "Access denied"}), 403
    return _inbox(user_id)


@notifications_bp.get("/unread-count")
@require_auth
def my_unread_count():
    return jsonify({"unreadCount": notification_service.get_unread_count(g.current_user.id)})


@notifications_bp.get("/user/<int:user_id>/unread-count")
@require_auth
def user_unread_count(user_id: int):
    if not can_access_user(user_id):
        return jsonify({"error": "Access denied"}), 403
    return jsonify({"unreadCount": notification_service.get_unread_count(user_id)})


@notifications_bp.patch("/<int:notification_id>/read")
@require_auth
def mark_read(notification_id: int):
    try:
        notification_service.mark_as_read(g.current_user.id, notification_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Notification marked as read"})


@notifications_bp.patch("/read-all")
@require_auth
def mark_all_read():
    count = notification_service.mark_all_as_read(g.current_user.id)
    return jsonify({"message": "All notifications marked as read", "count": count})


@notifications_bp.delete("/<int:notification_id>")
@require_auth
@require_admin
def delete_notification(notification_id: int):
    try:
        notification_service.delete_notification(notification_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Notification deleted successfully"})


@notifications_bp.post("/register-token")
@require_auth
def register_token():
    """Body: {token, device_type?}. Claims the token for the caller."""
    data = request.get_json(silent=True) or {}
    try:
        notification_service.register_token(
            g.current_user.id,
            data.get("token") or data.get("fcm_token"),
            data.get("device_type") or "web",
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"message": "FCM token registered successfully"})


@notifications_bp.post("/register-token-unauth")
def register_token_unauth():
    """Body: {token, device_type?, user_id?}. Used by the app before login."""
    data = request.get_json(silent=True) or {}
    try:
        user_id = coerce_int("user_id", data["user_id"]) if data.get("user_id") is not None else None
        row = notification_service.register_token_unauth(
            data.get("token") or data.get("fcm_token"),
            data.get("device_type") or "mobile",
            user_id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("Unauthenticated token registration %s", row.preview)
    return jsonify({
        "message": "FCM token registered successfully",
        "linkedToUser": row.user_id is not None,
    })


@notifications_bp.get("/tokens")
@require_auth
@require_admin
def list_tokens():
    tokens = notification_service.list_tokens(user_id=request.args.get("user_id", type=int))
    return jsonify({"tokens": tokens, "count": len(tokens)})


@notifications_bp.get("/admin/stats")
@require_auth
@require_admin
def admin_stats():
    return jsonify(notification_service.get_admin_notification_stats())


def _topic_request(fn):
    data = request.get_json(silent=True) or {}
    try:
        user_id = coerce_int("user_id", data.get("user_id") or g.current_user.id)
        if not can_access_user(user_id):
            return jsonify({"error": "Access denied"}), 403
        result = fn(user_id, data.get("topic"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    if not result.get("success"):
        return jsonify({"error": result.get("error", "Topic operation failed")}), 502
    return None


@notifications_bp.post("/subscribe")
@require_auth
def subscribe_topic():
    """Body: {topic, user_id? (admin only)}"""
    error = _topic_request(notification_service.subscribe_user_to_topic)
    return error or jsonify({"message": "Successfully subscribed to topic"})


@notifications_bp.post("/unsubscribe")
@require_auth
def unsubscribe_topic():
    error = _topic_request(notification_service.unsubscribe_user_from_topic)
    return error or jsonify({"message": "Successfully unsubscribed from topic"})


@notifications_bp.get("/vapid-key")
def vapid_key():
    return jsonify({"vapidKey": current_app.config.get("FCM_VAPID_KEY", "")})
