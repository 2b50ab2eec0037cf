# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/orderdesk/routes/auth.py
"""
Authentication API routes

- Business self-registration (pending until an admin approves)
- Login by email or phone number; business users must be approved
- Opaque bearer session tokens (see session_service)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, require_auth
from ..services import auth_service, login_request_service, notification_service, session_service
from ..services.auth_service import AccountNotApprovedError
from ..validation import ConflictError, ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Business self-registration.

    An optional `device_fcm_token` is linked to the new account so approval
    notifications reach the device.
    """
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.register_business(data)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    device_token = data.get("device_fcm_token")
    if device_token:
        try:
            notification_service.register_token(user.id, device_token, "mobile")
        except ValidationError:
            current_app.logger.warning("Ignoring blank device token on registration of user %s", user.id)

    notification_service.notify_user_registration(user)

    return jsonify({
        "message": "Registration successful. Please wait for admin approval.",
        "user": user.to_dict(),
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    identifier = data.get("email") or data.get("phone_number") or data.get("identifier")
    password = data.get("password")

    if not all([identifier, password]):
        return jsonify({"error": "email/phone_number and password required"}), 400

    try:
        user = auth_service.authenticate(identifier, password)
    except AccountNotApprovedError as e:
        return jsonify({
            "error": str(e),
            "status": e.status,
            "remarks": e.remarks,
        }), 403

    if not user:
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revokes the bearer session; a business user's browsing session ends too."""
    revoked = session_service.revoke_session(bearer_token())
    if not g.current_user.is_admin:
        login_request_service.end_browsing_session(g.current_user.id)
    return jsonify({"message": "Logged out" if revoked else "Session already closed"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
