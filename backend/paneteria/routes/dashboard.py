# Overview: Flask API routes for the dashboard; summary cards, performance metrics, product sales, manual refresh.

from flask import Blueprint, current_app, request

from ..extensions import get_store
from ..services import analytics_service
from ..decorators import require_session


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _store_state(store) -> dict:
    return {"loading": store.loading, "error": store.error}


@dashboard_bp.get("")
@require_session
def dashboard_route():
    store = get_store()
    limit = request.args.get("recent", type=int) or current_app.config["RECENT_ORDERS_LIMIT"]
    summary = analytics_service.dashboard_summary(store.snapshot, recent_limit=limit)
    return {**summary, **_store_state(store)}


@dashboard_bp.get("/performance")
@require_session
def performance_route():
    store = get_store()
    return {**analytics_service.performance_metrics(store.snapshot), **_store_state(store)}


@dashboard_bp.get("/product-sales")
@require_session
def product_sales_route():
    rows = analytics_service.product_sales(get_store().snapshot)
    return {"items": rows, "count": len(rows)}


@dashboard_bp.get("/snapshot")
@require_session
def snapshot_route():
    store = get_store()
    return {**store.snapshot.to_dict(), **_store_state(store)}


@dashboard_bp.post("/refresh")
@require_session
def refresh_route():
    """
    Re-read everything. 503 when the refresh failed; the previous snapshot
    stays in place and is still served.
    """
    store = get_store()
    snapshot = store.refresh()
    body = {
        "categories": len(snapshot.categories),
        "products": len(snapshot.products),
        "customers": len(snapshot.customers),
        "orders": len(snapshot.orders),
        **_store_state(store),
    }
    if store.error:
        return body, 503
    return body, 200
