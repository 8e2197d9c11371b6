# Overview: Public digital menu route; no dashboard session required.

from flask import Blueprint, current_app, request

from ..extensions import get_gateway, get_store
from ..validation import NotFoundError
from ..services.menu_service import build_menu, ALL_CATEGORIES
from ..services.sync_service import DashboardStore


menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")


def _public_snapshot():
    """
    The operator's snapshot when a session is open, otherwise a one-off
    read through a private store that never subscribes to changes.
    """
    store = get_store()
    if store.has_session and store.error is None:
        return store.snapshot, None

    reader = DashboardStore(get_gateway(), logger=current_app.logger, realtime=False)
    snapshot = reader.open_session("public-menu")
    return snapshot, reader.error


@menu_bp.get("")
def menu_route():
    """Query params: category - a category id or "all" (default)."""
    snapshot, error = _public_snapshot()
    if error:
        return {"error": "Menu temporarily unavailable"}, 503

    try:
        menu = build_menu(
            snapshot,
            request.args.get("category", ALL_CATEGORIES),
            business_name=current_app.config["BUSINESS_NAME"],
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404

    menu["currency"] = current_app.config["CURRENCY_CODE"]
    return menu
