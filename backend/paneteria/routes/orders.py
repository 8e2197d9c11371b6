# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/paneteria/routes/orders.py
"""
Order routes.

Orders are created with their items in one request:

    POST /api/orders
    {
        "customer_id": 3,
        "delivery_fee": "5.00",
        "items": [{"product_id": 7, "quantity": 2}]
    }

Totals are always computed server-side; subtotal/total in the payload are
rejected. A status change to cancelled also cancels the payment.
"""

from flask import Blueprint, request, current_app

from ..extensions import get_store
from ..models import Order
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_order,
    ValidationError,
    NotFoundError,
)
from ..services import analytics_service
from ..services.gateway import GatewayError
from ..services.order_lifecycle import OrderLifecycleError
from ..decorators import require_session

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "status",
        "payment_status",
        "payment_method",
        "delivery_method",
        "sales_channel",
        "delivery_fee",
        "order_discount",
        "notes",
        "order_date",
        "estimated_delivery",
        "completed_at",
        "payment_date",
    },
    required_on_create={"customer_id"},
    extra_fields={"items"},
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_session
def list_orders():
    """
    Newest first.

    Query params:
    - status: order status (optional)
    - start, end: ISO-8601 bounds on order_date (optional, inclusive)
    - customer_id: int (optional)
    """
    customer_id = request.args.get("customer_id", type=int)

    try:
        orders = analytics_service.orders_in_range(
            get_store().snapshot,
            start=request.args.get("start"),
            end=request.args.get("end"),
            status=request.args.get("status"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    if customer_id is not None:
        orders = [o for o in orders if o.customer_id == customer_id]
    return {"items": [o.to_dict() for o in orders], "count": len(orders)}


@orders_bp.get("/<int:order_id>")
@require_session
def get_order(order_id: int):
    order = get_store().snapshot.order(order_id)
    if order is None:
        return {"error": "Order not found"}, 404
    return order.to_dict()


@orders_bp.post("")
@require_session
def create_order_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Order, payload=payload, policy=ORDER_POLICY, partial=False)
        enforce_rules_order(patch, partial=False)
        order = get_store().add_order(patch)
    except (ValidationError, OrderLifecycleError) as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to create order")
        return {"error": "Internal server error"}, 500

    return order.to_dict(), 201


@orders_bp.put("/<int:order_id>")
@require_session
def update_order_route(order_id: int):
    """
    Patch an order. Status moves forward only; delivered and cancelled are final.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Order, payload=payload, policy=ORDER_POLICY, partial=True)
        enforce_rules_order(patch, partial=True)
        order = get_store().update_order(order_id, patch)
    except (ValidationError, OrderLifecycleError) as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to update order")
        return {"error": "Internal server error"}, 500

    return order.to_dict()


@orders_bp.delete("/<int:order_id>")
@require_session
def delete_order_route(order_id: int):
    try:
        get_store().delete_order(order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200
