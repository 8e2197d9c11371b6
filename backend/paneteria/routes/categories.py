# Overview: Flask API routes for product categories; parses input and returns JSON responses.

from flask import Blueprint, request, current_app

from ..extensions import get_store
from ..models import ProductCategory
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
)
from ..services.gateway import GatewayError
from ..decorators import require_session

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_session
def list_categories():
    """Categories from the current snapshot, with product_count."""
    categories = get_store().snapshot.categories
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@categories_bp.get("/<int:category_id>")
@require_session
def get_category(category_id: int):
    category = get_store().snapshot.category(category_id)
    if category is None:
        return {"error": "Category not found"}, 404
    return category.to_dict()


@categories_bp.post("")
@require_session
def create_category_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ProductCategory, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = get_store().add_category(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500

    return category.to_dict(), 201


@categories_bp.put("/<int:category_id>")
@require_session
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ProductCategory, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = get_store().update_category(category_id, patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to update category")
        return {"error": "Internal server error"}, 500

    return category.to_dict()


@categories_bp.delete("/<int:category_id>")
@require_session
def delete_category_route(category_id: int):
    """409 when products still reference the category."""
    try:
        deleted = get_store().delete_category(category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except GatewayError as e:
        return {"error": str(e), "details": e.details}, 409
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Category still has products"}, 409
    return {"ok": True}, 200
