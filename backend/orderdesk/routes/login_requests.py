# Overview: Flask API routes for login request operations; parses input and returns JSON responses.

# backend/orderdesk/routes/login_requests.py
from flask import Blueprint, g, jsonify, request

from ..decorators import can_access_user, require_admin, require_approved_business, require_auth, require_business
from ..services import login_request_service
from ..services.login_request_service import NoBrowsingSessionError
from ..validation import ConflictError, NotFoundError, ValidationError

login_requests_bp = Blueprint("login_requests", __name__, url_prefix="/api/login-requests")


@login_requests_bp.post("")
def create_login_request():
    """
    Unauthenticated: the app asks for access before the user has a session.

    Body: {phone_number, category_ids: [int]} (`categoryIds` also accepted)
    """
    data = request.get_json(silent=True) or {}
    try:
        req = login_request_service.create_login_request(
            phone_number=data.get("phone_number"),
            category_ids=data.get("category_ids", data.get("categoryIds")),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify({"message": "Login request created successfully", "loginRequest": req.to_dict()}), 201


@login_requests_bp.get("")
@require_auth
@require_admin
def list_login_requests():
    items = login_request_service.list_login_requests(status=request.args.get("status"))
    return jsonify([r.to_dict() for r in items])


@login_requests_bp.get("/user/<int:user_id>")
@require_auth
def user_login_requests(user_id: int):
    if not can_access_user(user_id):
        return jsonify({"error": "Access denied"}), 403
    items = login_request_service.list_user_login_requests(user_id)
    return jsonify([r.to_dict() for r in items])


@login_requests_bp.patch("/<int:request_id>")
@require_auth
@require_admin
def decide_login_request(request_id: int):
    """Body: {status: approved|rejected, session_time_minutes (approve), remarks?}"""
    data = request.get_json(silent=True) or {}
    try:
        req = login_request_service.decide_login_request(
            request_id=request_id,
            status=data.get("status"),
            session_time_minutes=data.get("session_time_minutes", data.get("sessionTimeMinutes")),
            remarks=data.get("remarks"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"message": "Login request updated successfully", "loginRequest": req.to_dict()})


@login_requests_bp.get("/user")
@require_auth
@require_business
def my_login_requests():
    items = login_request_service.list_user_login_requests(g.current_user.id)
    return jsonify([r.to_dict() for r in items])


@login_requests_bp.post("/session")
@require_auth
@require_approved_business
def start_session():
    """Resume the live browsing session or start one from the newest approved request."""
    try:
        req, resumed = login_request_service.start_browsing_session(g.current_user.id)
    except NoBrowsingSessionError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "message": "Session resumed successfully" if resumed else "Session started successfully",
        **login_request_service.session_summary(req),
    })


@login_requests_bp.get("/session")
@require_auth
@require_business
def validate_session():
    req = login_request_service.get_active_session(g.current_user.id)
    if req is None:
        return jsonify({"error": "Session expired. Please login again.", "action": "force_logout"}), 401
    return jsonify({"valid": True, **login_request_service.session_summary(req)})


@login_requests_bp.delete("/session")
@require_auth
@require_business
def end_session():
    ended = login_request_service.end_browsing_session(g.current_user.id)
    return jsonify({"message": "Logout successful", "updatedSessions": ended})


def _own_user_or_403(user_id: int):
    if g.current_user.id != user_id:
        return jsonify({"error": "Access denied"}), 403
    return None


@login_requests_bp.get("/approved-categories/<int:user_id>")
@require_auth
@require_business
def approved_categories(user_id: int):
    denied = _own_user_or_403(user_id)
    if denied:
        return denied
    try:
        req, categories = login_request_service.get_approved_categories(user_id)
    except NoBrowsingSessionError as e:
        return jsonify({"error": str(e), "message": "User login request is not approved yet"}), 403
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "success": True,
        "data": [c.to_dict() for c in categories],
        "count": len(categories),
        "requested_categories": req.requested_category_ids,
        "approved_request_id": req.id,
    })


@login_requests_bp.get("/approved-products/<int:user_id>")
@require_auth
@require_business
def approved_products(user_id: int):
    denied = _own_user_or_403(user_id)
    if denied:
        return denied
    try:
        req, products = login_request_service.get_approved_products(user_id)
    except NoBrowsingSessionError as e:
        return jsonify({"error": str(e), "message": "User login request is not approved yet"}), 403
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "success": True,
        "data": [p.to_dict() for p in products],
        "count": len(products),
        "requested_categories": req.requested_category_ids,
        "approved_request_id": req.id,
    })
