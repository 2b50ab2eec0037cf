# Overview: Flask API routes for user operations; parses input and returns JSON responses.

# backend/orderdesk/routes/users.py
"""Admin user management."""

from flask import Blueprint, jsonify, request

from ..decorators import can_access_user, require_admin, require_auth
from ..services import auth_service, notification_service, realtime_service
from ..validation import NotFoundError, ValidationError


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    """Query params: type (admin|business), status."""
    try:
        users = auth_service.list_users(
            user_type=request.args.get("type"),
            status=request.args.get("status"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.get("/<int:user_id>")
@require_auth
def get_user_route(user_id: int):
    if not can_access_user(user_id):
        return jsonify({"error": "Access denied"}), 403
    try:
        user = auth_service.get_user(user_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(user.to_dict()), 200


@users_bp.patch("/<int:user_id>/status")
@require_auth
@require_admin
def update_user_status_route(user_id: int):
    """Approve, reject or deny a business registration."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_user_status(user_id, data.get("status"), data.get("remarks"))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    notification_service.notify_registration_status_change(user)
    realtime_service.emit_to_all("user-update", {"action": "status-updated", "user": user.to_dict()})

    return jsonify({"message": "User status updated successfully", "user": user.to_dict()}), 200
