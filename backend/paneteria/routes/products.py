# Overview: Flask API routes for products; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..extensions import get_store
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    NotFoundError,
)
from ..services.gateway import GatewayError
from ..decorators import require_session

# total_sold and price_history are maintained by the dashboard store
PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "category_id",
        "price",
        "image_url",
        "weight",
        "custom_packaging",
        "is_active",
    },
    required_on_create={"name", "category_id", "price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_session
def list_products():
    """
    Query params:
    - category_id: int (optional)
    - active: "true" to list only active products
    """
    category_id = request.args.get("category_id", type=int)
    active_only = request.args.get("active", "").lower() == "true"

    products = [
        p for p in get_store().snapshot.products
        if (category_id is None or p.category_id == category_id) and (p.is_active or not active_only)
    ]
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
@require_session
def get_product(product_id: int):
    product = get_store().snapshot.product(product_id)
    if product is None:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
@require_session
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = get_store().add_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return product.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_session
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = get_store().update_product(product_id, patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return product.to_dict()


@products_bp.delete("/<int:product_id>")
@require_session
def delete_product_route(product_id: int):
    """Allowed even when orders reference the product; their lines keep their prices."""
    try:
        get_store().delete_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200
