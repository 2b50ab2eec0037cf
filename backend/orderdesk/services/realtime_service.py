# Overview: Socket.IO room management and event emission.

"""
Realtime transport over Flask-SocketIO.

Rooms: `admin` for dashboard clients and `user-{id}` per account. Every
payload carries an ISO-8601 `timestamp`. Emission is best-effort: failures
are logged and reported as False, never raised.
"""

from __future__ import annotations

import logging

from flask_socketio import emit, join_room, leave_room

from ..extensions import socketio
from orderdesk.time_utils import event_timestamp


logger = logging.getLogger(__name__)

ADMIN_ROOM = "admin"


def user_room(user_id: int) -> str:
    return f"user-{user_id}"


def _payload(data: dict | None) -> dict:
    payload = dict(data or {})
    payload.setdefault("timestamp", event_timestamp())
    return payload


def emit_to_all(event: str, data: dict | None = None) -> bool:
    try:
        socketio.emit(event, _payload(data))
    except Exception:
        logger.exception("Realtime emit %s to all failed", event)
        return False
    return True


def emit_to_room(room: str, event: str, data: dict | None = None) -> bool:
    try:
        socketio.emit(event, _payload(data), to=room)
    except Exception:
        logger.exception("Realtime emit %s to %s failed", event, room)
        return False
    return True


def emit_to_user(user_id: int, event: str, data: dict | None = None) -> bool:
    return emit_to_room(user_room(user_id), event, data)


def emit_to_admins(event: str, data: dict | None = None) -> bool:
    return emit_to_room(ADMIN_ROOM, event, data)


def notify_order_update(order: dict | None, action: str, **extra) -> bool:
    """`order-update` broadcast every dashboard listens to."""
    return emit_to_all("order-update", {"action": action, "order": order, **extra})


def register_socket_handlers(sio) -> None:
    @sio.on("join-room")
    def on_join_room(room):
        if room:
            join_room(str(room))
            logger.debug("Client joined room %s", room)

    @sio.on("leave-room")
    def on_leave_room(room):
        if room:
            leave_room(str(room))

    @sio.on("join-admin-room")
    def on_join_admin_room(data=None):
        join_room(ADMIN_ROOM)
        emit("admin-room-joined", _payload({"success": True, "room": ADMIN_ROOM}))

    @sio.on("join-user-room")
    def on_join_user_room(data=None):
        user_id = (data or {}).get("id") if isinstance(data, dict) else None
        if user_id is None:
            emit("user-room-joined", _payload({"success": False, "error": "id is required"}))
            return
        room = user_room(user_id)
        join_room(room)
        emit("user-room-joined", _payload({"success": True, "room": room}))
