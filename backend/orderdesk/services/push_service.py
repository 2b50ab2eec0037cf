# Overview: Push delivery adapter over Firebase Cloud Messaging.

"""
FCM push delivery through firebase-admin.

Every function returns a result dict and never raises: push is a best-effort
side effect. With no FIREBASE_CREDENTIALS_FILE configured, sends report
`{"success": False, "error": "Push delivery not configured"}`.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import FirebaseError
from flask import current_app


logger = logging.getLogger(__name__)

APP_NAME = "orderdesk"
NOT_CONFIGURED = {"success": False, "error": "Push delivery not configured"}


def token_preview(token: str | None) -> str:
    return f"{token[:20]}..." if token else "null"


def _get_app():
    """Return the firebase app, initializing it on first use; None if disabled."""
    credentials_file = current_app.config.get("FIREBASE_CREDENTIALS_FILE")
    if not credentials_file:
        return None
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass

    options = {}
    project_id = current_app.config.get("FIREBASE_PROJECT_ID")
    if project_id:
        options["projectId"] = project_id
    try:
        app = firebase_admin.initialize_app(credentials.Certificate(credentials_file), options, name=APP_NAME)
    except (ValueError, OSError):
        logger.exception("Firebase initialization failed")
        return None
    logger.info("Firebase Admin SDK initialized")
    return app


def _stringify(data: dict | None) -> dict[str, str]:
    """FCM data payloads only carry string values."""
    out = {k: "" if v is None else str(v) for k, v in (data or {}).items()}
    out["click_action"] = "FLUTTER_NOTIFICATION_CLICK"
    return out


def _message_kwargs(title: str, body: str, data: dict | None, sound: str = "default") -> dict:
    return {
        "notification": messaging.Notification(title=title, body=body),
        "data": _stringify(data),
        "android": messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(sound=sound, channel_id="default"),
        ),
        "apns": messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(sound=sound, badge=1)),
        ),
    }


def send_push(token: str, title: str, body: str, data: dict | None = None) -> dict:
    app = _get_app()
    if app is None:
        return dict(NOT_CONFIGURED)

    try:
        message_id = messaging.send(messaging.Message(token=token, **_message_kwargs(title, body, data)), app=app)
    except messaging.UnregisteredError as exc:
        logger.warning("Push token %s is no longer registered", token_preview(token))
        return {"success": False, "error": str(exc), "invalidTokens": [token]}
    except (FirebaseError, ValueError) as exc:
        logger.warning("Push to %s failed: %s", token_preview(token), exc)
        return {"success": False, "error": str(exc)}

    logger.info("Push sent to %s (%s)", token_preview(token), message_id)
    return {"success": True, "messageId": message_id}


def send_multicast(tokens: list[str], title: str, body: str, data: dict | None = None) -> dict:
    app = _get_app()
    if app is None:
        return dict(NOT_CONFIGURED)

    try:
        batch = messaging.send_each_for_multicast(
            messaging.MulticastMessage(tokens=list(tokens), **_message_kwargs(title, body, data)),
            app=app,
        )
    except (FirebaseError, ValueError) as exc:
        logger.warning("Multicast push to %s tokens failed: %s", len(tokens), exc)
        return {"success": False, "error": str(exc)}

    invalid = [
        token for token, resp in zip(tokens, batch.responses)
        if not resp.success and isinstance(resp.exception, messaging.UnregisteredError)
    ]
    logger.info("Multicast push: %s sent, %s failed", batch.success_count, batch.failure_count)
    return {
        "success": batch.success_count > 0,
        "successCount": batch.success_count,
        "failureCount": batch.failure_count,
        "invalidTokens": invalid,
    }


def send_to_topic(topic: str, title: str, body: str, data: dict | None = None) -> dict:
    app = _get_app()
    if app is None:
        return dict(NOT_CONFIGURED)

    try:
        message_id = messaging.send(messaging.Message(topic=topic, **_message_kwargs(title, body, data)), app=app)
    except (FirebaseError, ValueError) as exc:
        logger.warning("Topic push to %s failed: %s", topic, exc)
        return {"success": False, "error": str(exc)}
    return {"success": True, "messageId": message_id}


def subscribe_to_topic(token: str, topic: str) -> dict:
    app = _get_app()
    if app is None:
        return dict(NOT_CONFIGURED)
    try:
        resp = messaging.subscribe_to_topic([token], topic, app=app)
    except (FirebaseError, ValueError) as exc:
        logger.warning("Topic subscribe %s failed: %s", topic, exc)
        return {"success": False, "error": str(exc)}
    return {"success": resp.failure_count == 0, "successCount": resp.success_count}


def unsubscribe_from_topic(token: str, topic: str) -> dict:
    app = _get_app()
    if app is None:
        return dict(NOT_CONFIGURED)
    try:
        resp = messaging.unsubscribe_from_topic([token], topic, app=app)
    except (FirebaseError, ValueError) as exc:
        logger.warning("Topic unsubscribe %s failed: %s", topic, exc)
        return {"success": False, "error": str(exc)}
    return {"success": resp.failure_count == 0, "successCount": resp.success_count}
