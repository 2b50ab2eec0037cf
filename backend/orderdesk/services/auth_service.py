# Overview: Service-layer operations for authentication; encapsulates business logic and database work.

"""
Authentication and account service.

Passwords are hashed with bcrypt (cost from BCRYPT_ROUNDS). Business users
register themselves and wait for admin approval; only approved businesses may
log in. Session tokens are managed separately (see session_service.py).
"""

import logging
import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import (
    USER_STATUS_APPROVED,
    USER_STATUS_DENIED,
    USER_STATUS_PENDING,
    USER_STATUSES,
    USER_TYPE_ADMIN,
    USER_TYPE_BUSINESS,
    USER_TYPES,
)
from ..validation import ConflictError, NotFoundError, ValidationError
from . import session_service


logger = logging.getLogger(__name__)

REGISTRATION_FIELDS = (
    "name", "email", "phone_number", "business_name", "gst_number", "pan_number",
    "address_line1", "address_line2", "city", "state", "country",
)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


class AccountNotApprovedError(Exception):
    """Business login attempted before the account was approved."""

    def __init__(self, user: User):
        self.user = user
        self.status = user.status
        self.remarks = user.remarks
        super().__init__(f"Your account is {user.status}. Please wait for admin approval.")


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _ensure_unique_contact(email: str, phone_number: str | None, exclude_user_id: int | None = None) -> None:
    query = db.session.query(User).filter(User.email == email)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise ConflictError("Email already registered")

    if phone_number:
        query = db.session.query(User).filter(User.phone_number == phone_number)
        if exclude_user_id is not None:
            query = query.filter(User.id != exclude_user_id)
        if query.first():
            raise ConflictError("Phone number already registered")


def register_business(payload: dict) -> User:
    """
    Self-registration for a business account; starts `pending`.

    Raises ValidationError for missing fields or when the same name and phone
    number were previously denied, ConflictError for duplicate email/phone.
    """
    name = (payload.get("name") or "").strip()
    email = _normalize_email(payload.get("email"))
    phone_number = (payload.get("phone_number") or "").strip() or None
    password = payload.get("password") or ""

    missing = [k for k, v in (("name", name), ("email", email), ("phone_number", phone_number)) if not v]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    denied = db.session.query(User).filter_by(
        name=name, phone_number=phone_number, status=USER_STATUS_DENIED
    ).first()
    if denied:
        raise ValidationError("Registration for this account has been denied")

    _ensure_unique_contact(email, phone_number)

    user = User(type=USER_TYPE_BUSINESS, status=USER_STATUS_PENDING, password_hash=hash_password(password))
    for field in REGISTRATION_FIELDS:
        value = payload.get(field)
        if isinstance(value, str):
            value = value.strip() or None
        setattr(user, field, value)
    user.name = name
    user.email = email
    user.phone_number = phone_number

    db.session.add(user)
    db.session.commit()

    logger.info("Business user %s registered (pending approval)", user.id)
    return user


def create_admin(name: str, email: str, password: str, phone_number: str | None = None) -> User:
    email = _normalize_email(email)
    if not name or not email:
        raise ValidationError("name and email are required")
    _ensure_unique_contact(email, phone_number)

    user = User(
        type=USER_TYPE_ADMIN,
        name=name,
        email=email,
        phone_number=phone_number,
        status=None,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate by email or phone number.

    Returns the User when the credentials match, None otherwise. Raises
    AccountNotApprovedError for a business account that is not approved.
    """
    identifier = (identifier or "").strip()
    if not identifier:
        return None

    user = db.session.query(User).filter(
        db.or_(User.email == identifier.lower(), User.phone_number == identifier),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    if user.type == USER_TYPE_BUSINESS and user.status != USER_STATUS_APPROVED:
        raise AccountNotApprovedError(user)

    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def list_users(user_type: str | None = None, status: str | None = None) -> list[User]:
    query = db.session.query(User)
    if user_type:
        if user_type not in USER_TYPES:
            raise ValidationError(f"Invalid type. Must be one of: {', '.join(USER_TYPES)}")
        query = query.filter(User.type == user_type)
    if status:
        if status not in USER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")
        query = query.filter(User.status == status)
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def update_user_status(user_id: int, status: str, remarks: str | None = None) -> User:
    """Admin decision on a business registration."""
    if status not in USER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")

    user = get_user(user_id)
    if user.type != USER_TYPE_BUSINESS:
        raise ValidationError("Only business users have an approval status")

    user.status = status
    user.remarks = remarks
    db.session.commit()

    logger.info("User %s status set to %s", user_id, status)
    return user


def set_active(user_id: int, is_active: bool) -> User:
    """Deactivating an account also revokes its open sessions."""
    user = get_user(user_id)
    user.is_active = bool(is_active)
    db.session.commit()

    if not user.is_active:
        revoked = session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
        logger.info("User %s deactivated; %s sessions revoked", user.id, revoked)
    return user
