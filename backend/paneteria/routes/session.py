# Overview: Flask API routes for opening and closing the dashboard session.

from flask import Blueprint, request, current_app

from ..extensions import get_store
from ..validation import ValidationError
from ..services.gateway import GatewayError
from paneteria.time_utils import to_utc_z


session_bp = Blueprint("session", __name__, url_prefix="/api/session")


@session_bp.get("")
def get_session_route():
    store = get_store()
    return {"user": store.session_user, "open": store.has_session}


@session_bp.post("")
def open_session_route():
    """
    Open the dashboard session for {"user": ...}.

    Loads the first snapshot and subscribes the store to realtime changes.
    """
    payload = request.get_json(silent=True) or {}
    store = get_store()

    try:
        snapshot = store.open_session(payload.get("user"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 503
    except Exception:
        current_app.logger.exception("Failed to open dashboard session")
        return {"error": "Internal server error"}, 500

    return {
        "user": store.session_user,
        "error": store.error,
        "loaded_at": to_utc_z(snapshot.loaded_at),
    }, 201


@session_bp.delete("")
def close_session_route():
    get_store().close_session()
    return {"ok": True}, 200
