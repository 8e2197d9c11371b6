# Overview: Public digital menu; category tabs, visible products, and a simple quantity cart.

from __future__ import annotations

from decimal import Decimal

from ..validation import NotFoundError
from .entities import Snapshot
from .pricing import ZERO, CENT


ALL_CATEGORIES = "all"
MISSING_CATEGORY_NAME = "Category not found"
EMPTY_MENU_MESSAGE = "No products available in this category right now."


def _category_key(category_id):
    if category_id is None or category_id == ALL_CATEGORIES:
        return ALL_CATEGORIES
    try:
        return int(category_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"Category not found: {category_id}")


def build_menu(snapshot: Snapshot, category_id=ALL_CATEGORIES, business_name: str | None = None) -> dict:
    """
    Menu as shown to customers.

    A product is listed when it is active and its category is active. A
    product whose category no longer exists is treated as being in an
    active category.
    """
    selected = _category_key(category_id)
    categories = {c.id: c for c in snapshot.categories}

    current = None
    if selected != ALL_CATEGORIES:
        current = categories.get(selected)
        if current is None:
            raise NotFoundError(f"Category not found: {selected}")

    products = []
    for product in snapshot.products:
        category = categories.get(product.category_id)
        category_active = category.is_active if category else True
        if not product.is_active or not category_active:
            continue
        if selected != ALL_CATEGORIES and product.category_id != selected:
            continue
        products.append({
            "id": product.id,
            "name": product.name,
            "description": product.description,
            "price": f"{product.price:.2f}",
            "image_url": product.image_url,
            "weight": str(product.weight) if product.weight is not None else None,
            "category_id": product.category_id,
            "category_name": category.name if category else MISSING_CATEGORY_NAME,
        })

    return {
        "business_name": business_name,
        "selected_category": selected,
        "current_category": current.to_dict() if current else None,
        "categories": [
            {"id": c.id, "name": c.name, "description": c.description}
            for c in snapshot.categories
            if c.is_active
        ],
        "products": products,
        "empty_message": None if products else EMPTY_MENU_MESSAGE,
    }


class Cart:
    """Quantities keyed by product id, as kept by the public menu page."""

    def __init__(self, quantities: dict | None = None):
        self._quantities: dict[int, int] = {}
        for product_id, qty in (quantities or {}).items():
            if int(qty) > 0:
                self._quantities[int(product_id)] = int(qty)

    def add(self, product_id: int) -> int:
        self._quantities[product_id] = self._quantities.get(product_id, 0) + 1
        return self._quantities[product_id]

    def remove(self, product_id: int) -> int:
        """Decrement; the product leaves the cart when it reaches zero."""
        qty = self._quantities.get(product_id, 0)
        if qty > 1:
            self._quantities[product_id] = qty - 1
            return qty - 1
        self._quantities.pop(product_id, None)
        return 0

    @property
    def quantities(self) -> dict[int, int]:
        return dict(self._quantities)

    @property
    def item_count(self) -> int:
        return sum(self._quantities.values())

    def total(self, snapshot: Snapshot) -> Decimal:
        """Sum at current prices; products no longer in the snapshot are skipped."""
        total = ZERO
        for product_id, qty in self._quantities.items():
            product = snapshot.product(product_id)
            if product is None:
                continue
            total += product.price * qty
        return total.quantize(CENT)
