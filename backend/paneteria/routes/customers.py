# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..extensions import get_store
from ..models import Customer
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
    NotFoundError,
)
from ..services.gateway import GatewayError
from ..decorators import require_session

# Order counters and spend totals are recomputed from orders, never written here
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "whatsapp",
        "email",
        "address",
        "observations",
        "delivery_preferences",
        "is_gift_eligible",
    },
    required_on_create={"name", "whatsapp"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_session
def list_customers():
    """Query params: q (optional) - case-insensitive match on name or whatsapp."""
    q = (request.args.get("q") or "").strip().lower()
    customers = get_store().snapshot.customers
    if q:
        customers = [c for c in customers if q in c.name.lower() or q in c.whatsapp.lower()]
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.get("/<int:customer_id>")
@require_session
def get_customer(customer_id: int):
    snapshot = get_store().snapshot
    customer = snapshot.customer(customer_id)
    if customer is None:
        return {"error": "Customer not found"}, 404

    result = customer.to_dict()
    result["orders"] = [o.to_dict() for o in snapshot.orders_for_customer(customer_id)]
    return result


@customers_bp.post("")
@require_session
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        customer = get_store().add_customer(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return {"error": "Internal server error"}, 500

    return customer.to_dict(), 201


@customers_bp.put("/<int:customer_id>")
@require_session
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        customer = get_store().update_customer(customer_id, patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return {"error": "Internal server error"}, 500

    return customer.to_dict()


@customers_bp.delete("/<int:customer_id>")
@require_session
def delete_customer_route(customer_id: int):
    """409 when the customer has orders on record."""
    try:
        deleted = get_store().delete_customer(customer_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Customer has orders"}, 409
    return {"ok": True}, 200
