# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user and g.session_context. Returns 401 when the header is
    missing, the token is invalid/expired/revoked or the account is
    deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        if not user.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def require_business(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        if user.is_admin:
            return jsonify({"error": "Business account required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def require_approved_business(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        if user.is_admin:
            return jsonify({"error": "Business account required"}), 403
        if not user.is_approved:
            return jsonify({
                "error": "Business account is not approved",
                "status": user.status,
            }), 403
        return f(*args, **kwargs)

    return decorated_function


def optional_user():
    """User behind a valid bearer token, or None for anonymous callers."""
    token = bearer_token()
    if not token:
        return None
    context = session_service.validate_session(token)
    return context.user if context else None


def is_admin_request() -> bool:
    user = optional_user()
    return bool(user and user.is_admin)


def can_access_user(user_id: int) -> bool:
    """Admins may act on anyone; other users only on themselves."""
    user = getattr(g, "current_user", None)
    return bool(user) and (user.is_admin or user.id == user_id)
