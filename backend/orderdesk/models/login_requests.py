from __future__ import annotations

import json
from datetime import timedelta, timezone

from ..extensions import db
from orderdesk.time_utils import to_utc_z, utcnow


LOGIN_REQUEST_PENDING = "pending"
LOGIN_REQUEST_APPROVED = "approved"
LOGIN_REQUEST_REJECTED = "rejected"
LOGIN_REQUEST_LOGGED_IN = "logged_in"
LOGIN_REQUEST_LOGGED_OUT = "logged_out"
LOGIN_REQUEST_EXPIRED = "expired"
ACTIVE_LOGIN_REQUEST_STATUSES = (LOGIN_REQUEST_PENDING, LOGIN_REQUEST_APPROVED, LOGIN_REQUEST_LOGGED_IN)
# Statuses whose session window can run out
TIMED_LOGIN_REQUEST_STATUSES = (LOGIN_REQUEST_APPROVED, LOGIN_REQUEST_LOGGED_IN)


class LoginRequest(db.Model):
    """
    A business user's request for a timed browsing session over a set of
    categories. Admins approve (with a session length) or reject it.

    Lifecycle: pending -> approved | rejected; approved -> logged_in when the
    user starts browsing; logged_in -> logged_out on logout. An approved or
    logged_in request whose window (session_start_time plus
    session_time_minutes) has passed becomes expired.
    """
    __tablename__ = "login_requests"
    __table_args__ = (
        db.Index("ix_login_requests_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_ids = db.Column(db.Text, nullable=False)  # JSON list
    status = db.Column(db.String(16), nullable=False, default=LOGIN_REQUEST_PENDING)
    remarks = db.Column(db.Text, nullable=True)
    session_time_minutes = db.Column(db.Integer, nullable=True)
    session_start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    session_end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", backref=db.backref("login_requests", lazy=True))

    @property
    def requested_category_ids(self) -> list[int]:
        return json.loads(self.category_ids) if self.category_ids else []

    @property
    def session_expires_at(self):
        """Naive UTC end of the session window, or None before it opens."""
        start = self.session_start_time
        if start is None or not self.session_time_minutes:
            return None
        if start.tzinfo is not None:
            start = start.astimezone(timezone.utc).replace(tzinfo=None)
        return start + timedelta(minutes=self.session_time_minutes)

    def is_elapsed(self, now=None) -> bool:
        expires_at = self.session_expires_at
        return expires_at is not None and (now or utcnow()) >= expires_at

    def to_dict(self) -> dict:
        user = self.user
        return {
            "id": self.id,
            "user_id": self.user_id,
            "category_ids": self.requested_category_ids,
            "status": self.status,
            "remarks": self.remarks,
            "session_time_minutes": self.session_time_minutes,
            "session_start_time": to_utc_z(self.session_start_time),
            "session_end_time": to_utc_z(self.session_end_time),
            "session_expires_at": to_utc_z(self.session_expires_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "user_name": user.name if user else None,
            "business_name": user.business_name if user else None,
            "phone_number": user.phone_number if user else None,
        }
