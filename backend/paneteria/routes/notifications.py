# Overview: Flask API routes for in-app notifications.

from flask import Blueprint, request

from ..extensions import get_notifications
from ..validation import ValidationError, NotFoundError
from ..decorators import require_session


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_session
def list_notifications():
    """Query params: unread - "true" to list only unread notifications."""
    center = get_notifications()
    unread_only = request.args.get("unread", "").lower() == "true"
    items = center.list(unread_only=unread_only)
    return {
        "items": [n.to_dict() for n in items],
        "count": len(items),
        "unread_count": center.unread_count,
    }


@notifications_bp.post("")
@require_session
def create_notification_route():
    payload = request.get_json(silent=True) or {}
    title = (payload.get("title") or "").strip()
    message = (payload.get("message") or "").strip()
    if not title or not message:
        return {"error": "title and message required"}, 400

    try:
        notification = get_notifications().notify(
            title,
            message,
            payload.get("severity") or "info",
            payload.get("action"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return notification.to_dict(), 201


@notifications_bp.post("/<notification_id>/read")
@require_session
def mark_read_route(notification_id: str):
    try:
        notification = get_notifications().mark_read(notification_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return notification.to_dict()


@notifications_bp.post("/read-all")
@require_session
def mark_all_read_route():
    changed = get_notifications().mark_all_read()
    return {"ok": True, "changed": changed}


@notifications_bp.delete("/<notification_id>")
@require_session
def delete_notification_route(notification_id: str):
    try:
        get_notifications().remove(notification_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"ok": True}, 200


@notifications_bp.delete("")
@require_session
def clear_notifications_route():
    get_notifications().clear_all()
    return {"ok": True}, 200
