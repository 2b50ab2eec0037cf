from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z, utcnow


USER_TYPE_ADMIN = "admin"
USER_TYPE_BUSINESS = "business"
USER_TYPES = (USER_TYPE_ADMIN, USER_TYPE_BUSINESS)

USER_STATUS_PENDING = "pending"
USER_STATUS_APPROVED = "approved"
USER_STATUS_REJECTED = "rejected"
USER_STATUS_DENIED = "denied"
USER_STATUSES = (USER_STATUS_PENDING, USER_STATUS_APPROVED, USER_STATUS_REJECTED, USER_STATUS_DENIED)


class User(db.Model):
    """
    Admin and business accounts.

    Business users register themselves and start out `pending`; only
    `approved` businesses may log in and have their orders progress past
    cancellation. Admin accounts carry no approval status.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, default=USER_TYPE_BUSINESS)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    phone_number = db.Column(db.String(20), nullable=True, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    business_name = db.Column(db.String(255), nullable=True)
    gst_number = db.Column(db.String(20), nullable=True)
    pan_number = db.Column(db.String(20), nullable=True)
    address_line1 = db.Column(db.String(255), nullable=True)
    address_line2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=True)

    status = db.Column(db.String(16), nullable=True, default=USER_STATUS_PENDING)
    remarks = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.type == USER_TYPE_ADMIN

    @property
    def is_approved(self) -> bool:
        return self.status == USER_STATUS_APPROVED

    def __repr__(self) -> str:
        return f"<User id={self.id} type={self.type} email={self.email!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
            "business_name": self.business_name,
            "gst_number": self.gst_number,
            "pan_number": self.pan_number,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "status": self.status,
            "remarks": self.remarks,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SessionToken(db.Model):
    """
    Bearer session tokens.

    Only the SHA-256 hash of the token is stored; the plaintext is handed to
    the client once at login.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_revoked", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
