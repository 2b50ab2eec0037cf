from __future__ import annotations

import json

from ..extensions import db
from orderdesk.time_utils import to_utc_z, utcnow


class NotificationToken(db.Model):
    """
    FCM device token.

    `user_id` is NULL for devices that registered before logging in; the
    first authenticated registration of the same token claims it.
    """
    __tablename__ = "notification_tokens"
    __table_args__ = (
        db.Index("ix_notification_tokens_user_active", "user_id", "active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    token = db.Column(db.String(512), nullable=False, unique=True)
    device_type = db.Column(db.String(50), nullable=False, default="web")
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def preview(self) -> str:
        return f"{self.token[:20]}..." if self.token else "null"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "token_preview": self.preview,
            "device_type": self.device_type,
            "active": self.active,
            "created_at": to_utc_z(self.created_at),
        }


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_type_created", "user_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(50), nullable=False, default="general")
    data = db.Column(db.Text, nullable=True)  # JSON

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "body": self.body,
            "type": self.type,
            "data": json.loads(self.data) if self.data else None,
            "created_at": to_utc_z(self.created_at),
        }


class UserNotification(db.Model):
    """Per-recipient read state; `read_at` NULL means unread."""
    __tablename__ = "user_notifications"
    __table_args__ = (
        db.UniqueConstraint("user_id", "notification_id", name="uq_user_notifications_user_notification"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    notification_id = db.Column(
        db.Integer, db.ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
