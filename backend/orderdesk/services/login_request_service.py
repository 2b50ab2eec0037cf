# Overview: Service-layer operations for login requests and browsing sessions; encapsulates business logic and database work.

from __future__ import annotations

import json
import logging

from ..extensions import db
from ..models import Category, LoginRequest, Product, User
from ..models.catalog import PRODUCT_STATUS_ACTIVE, STOCK_AVAILABLE
from ..models.login_requests import (
    ACTIVE_LOGIN_REQUEST_STATUSES,
    LOGIN_REQUEST_APPROVED,
    LOGIN_REQUEST_EXPIRED,
    LOGIN_REQUEST_LOGGED_IN,
    LOGIN_REQUEST_LOGGED_OUT,
    LOGIN_REQUEST_PENDING,
    LOGIN_REQUEST_REJECTED,
    TIMED_LOGIN_REQUEST_STATUSES,
)
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int, require_choice
from . import notification_service
from .concurrency import transaction
from orderdesk.time_utils import to_utc_z, utcnow


logger = logging.getLogger(__name__)

DECISION_STATUSES = (LOGIN_REQUEST_APPROVED, LOGIN_REQUEST_REJECTED)


class NoBrowsingSessionError(Exception):
    """The user has no live (logged_in, unexpired) login request."""

    def __init__(self, message: str = "No approved login request found"):
        super().__init__(message)


def expire_elapsed_requests(user_id: int | None = None) -> int:
    """
    Move approved and logged_in requests whose session window has passed to
    `expired`. Returns the number expired.
    """
    q = db.session.query(LoginRequest).filter(
        LoginRequest.status.in_(TIMED_LOGIN_REQUEST_STATUSES),
        LoginRequest.session_start_time.isnot(None),
        LoginRequest.session_time_minutes.isnot(None),
    )
    if user_id is not None:
        q = q.filter(LoginRequest.user_id == user_id)

    now = utcnow()
    elapsed = [r for r in q.all() if r.is_elapsed(now)]
    if not elapsed:
        return 0

    with transaction("expire login requests"):
        for req in elapsed:
            req.status = LOGIN_REQUEST_EXPIRED
            req.session_end_time = req.session_expires_at

    logger.info("Expired %s login requests%s", len(elapsed), f" for user {user_id}" if user_id else "")
    return len(elapsed)


def create_login_request(*, phone_number: str | None, category_ids) -> LoginRequest:
    """
    A business user asks for browsing access to some categories.

    Raises ValidationError for missing input, NotFoundError for an unknown
    phone number, ConflictError when the user already has a pending,
    approved or logged-in request whose session window has not run out.
    """
    phone_number = (phone_number or "").strip()
    if not phone_number or not isinstance(category_ids, list) or not category_ids:
        raise ValidationError("Phone number and at least one category are required")
    ids = [coerce_int("category_ids", v) for v in category_ids]

    user = db.session.query(User).filter(User.phone_number == phone_number).first()
    if user is None:
        raise NotFoundError("User not found")

    expire_elapsed_requests(user.id)

    active = db.session.query(LoginRequest.id).filter(
        LoginRequest.user_id == user.id,
        LoginRequest.status.in_(ACTIVE_LOGIN_REQUEST_STATUSES),
    ).first()
    if active:
        raise ConflictError("You already have an active request for one or more selected categories")

    req = LoginRequest(user_id=user.id, category_ids=json.dumps(ids), status=LOGIN_REQUEST_PENDING)
    with transaction("create login request"):
        db.session.add(req)

    logger.info("Login request %s created for user %s", req.id, user.id)
    notification_service.notify_login_request(req)
    return req


def list_login_requests(*, status: str | None = None) -> list[LoginRequest]:
    q = db.session.query(LoginRequest)
    if status:
        q = q.filter(LoginRequest.status == status)
    return q.order_by(LoginRequest.created_at.desc(), LoginRequest.id.desc()).all()


def list_user_login_requests(user_id: int) -> list[LoginRequest]:
    return (
        db.session.query(LoginRequest)
        .filter(LoginRequest.user_id == user_id)
        .order_by(LoginRequest.created_at.desc(), LoginRequest.id.desc())
        .all()
    )


def decide_login_request(
    *,
    request_id: int,
    status: str,
    session_time_minutes=None,
    remarks: str | None = None,
) -> LoginRequest:
    """
    Admin approval or rejection.

    Approving requires a positive session length and starts the session
    clock. Rejecting also expires the user's other live requests.
    """
    require_choice("status", status, DECISION_STATUSES)

    minutes = None
    if status == LOGIN_REQUEST_APPROVED:
        if session_time_minutes in (None, ""):
            raise ValidationError("session_time_minutes is required when approving")
        minutes = coerce_int("session_time_minutes", session_time_minutes)
        if minutes <= 0:
            raise ValidationError("session_time_minutes must be > 0")

    req = db.session.get(LoginRequest, request_id)
    if req is None:
        raise NotFoundError("Login request not found")

    with transaction("decide login request"):
        req.status = status
        req.remarks = remarks
        req.session_time_minutes = minutes
        req.session_start_time = utcnow() if minutes else None

        if status == LOGIN_REQUEST_REJECTED:
            db.session.query(LoginRequest).filter(
                LoginRequest.user_id == req.user_id,
                LoginRequest.id != req.id,
                LoginRequest.status.in_((LOGIN_REQUEST_APPROVED, LOGIN_REQUEST_LOGGED_IN)),
            ).update(
                {
                    LoginRequest.status: LOGIN_REQUEST_EXPIRED,
                    LoginRequest.session_start_time: None,
                    LoginRequest.session_time_minutes: None,
                },
                synchronize_session=False,
            )

    logger.info("Login request %s %s", request_id, status)
    notification_service.notify_login_request_status_change(req)
    return req


# ---------------------------------------------------------------------------
# Browsing sessions
# ---------------------------------------------------------------------------

def get_active_session(user_id: int) -> LoginRequest | None:
    """The user's live logged_in request, after expiring elapsed ones."""
    expire_elapsed_requests(user_id)
    return (
        db.session.query(LoginRequest)
        .filter(LoginRequest.user_id == user_id, LoginRequest.status == LOGIN_REQUEST_LOGGED_IN)
        .order_by(LoginRequest.created_at.desc(), LoginRequest.id.desc())
        .first()
    )


def start_browsing_session(user_id: int) -> tuple[LoginRequest, bool]:
    """
    Resume the live session, or turn the newest approved request into one.

    The session clock restarts when an approved request is first used.
    Returns (request, resumed). Raises NoBrowsingSessionError when there is
    nothing to start.
    """
    live = get_active_session(user_id)
    if live is not None:
        return live, True

    approved = (
        db.session.query(LoginRequest)
        .filter(
            LoginRequest.user_id == user_id,
            LoginRequest.status == LOGIN_REQUEST_APPROVED,
            LoginRequest.session_time_minutes.isnot(None),
        )
        .order_by(LoginRequest.created_at.desc(), LoginRequest.id.desc())
        .first()
    )
    if approved is None:
        raise NoBrowsingSessionError("No approved login request found. Please request login access first.")

    with transaction("start browsing session"):
        approved.status = LOGIN_REQUEST_LOGGED_IN
        approved.session_start_time = utcnow()
        approved.session_end_time = None

    logger.info("Login request %s started a %s minute session", approved.id, approved.session_time_minutes)
    return approved, False


def end_browsing_session(user_id: int) -> int:
    """Log out every live session of the user; returns the number ended."""
    now = utcnow()
    with transaction("end browsing session"):
        count = (
            db.session.query(LoginRequest)
            .filter(
                LoginRequest.user_id == user_id,
                LoginRequest.status == LOGIN_REQUEST_LOGGED_IN,
                LoginRequest.session_start_time.isnot(None),
            )
            .update(
                {LoginRequest.status: LOGIN_REQUEST_LOGGED_OUT, LoginRequest.session_end_time: now},
                synchronize_session=False,
            )
        )
    if count:
        logger.info("Ended %s browsing sessions for user %s", count, user_id)
    return count


def session_summary(req: LoginRequest) -> dict:
    expires_at = req.session_expires_at
    remaining = max(0, int((expires_at - utcnow()).total_seconds())) if expires_at else 0
    return {
        "loginRequestId": req.id,
        "sessionDurationMinutes": req.session_time_minutes,
        "sessionStart": to_utc_z(req.session_start_time),
        "sessionExpiry": to_utc_z(expires_at),
        "remainingTime": remaining,
    }


def _approved_category_ids(user_id: int) -> tuple[LoginRequest, list[int]]:
    req = get_active_session(user_id)
    if req is None:
        raise NoBrowsingSessionError()
    ids = req.requested_category_ids
    if not ids:
        raise ValidationError("No categories were requested")
    return req, ids


def get_approved_categories(user_id: int) -> tuple[LoginRequest, list[Category]]:
    """Active categories among those granted by the user's live session."""
    req, ids = _approved_category_ids(user_id)
    categories = (
        db.session.query(Category)
        .filter(Category.id.in_(ids), Category.status == "active")
        .order_by(Category.name.asc())
        .all()
    )
    return req, categories


def get_approved_products(user_id: int) -> tuple[LoginRequest, list[Product]]:
    """In-stock active products of the granted, active categories; newest first."""
    req, ids = _approved_category_ids(user_id)
    products = (
        db.session.query(Product)
        .join(Category, Category.id == Product.category_id)
        .filter(
            Product.category_id.in_(ids),
            Product.status == PRODUCT_STATUS_ACTIVE,
            Product.stock_status == STOCK_AVAILABLE,
            Category.status == "active",
        )
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )
    return req, products
