# Overview: Dashboard store; joined snapshot of the order-management collections, CRUD with full refresh, aggregate recomputation.

"""
Dashboard store.

The store owns the only published Snapshot. Every read the dashboard makes
goes through store.snapshot; every write goes through one of the CRUD
methods below, which call the gateway once and then rebuild the whole
snapshot from scratch.

REFRESH:
- reads categories, products, customers (each by name) and orders joined
  with their customer and items (newest first)
- if any read fails, or a row cannot be reshaped, the previous snapshot
  stays published and store.error is set
- otherwise the new snapshot replaces the old one in a single assignment
  and listeners are called with it

AGGREGATES (never written from caller input):
- category.product_count       computed during refresh
- most_sold_category           computed during refresh
- customer totals              update_customer_totals(), after order writes
- product.total_sold           update_product_sales(), after order writes

Aggregate recomputation is read-recompute-write without a version check.
A failure there is logged and does not undo the order write that caused it.
"""
from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Callable, Iterable

from ..time_utils import utcnow, to_utc_z
from ..validation import ValidationError, NotFoundError
from .entities import (
    Snapshot,
    SnapshotBuildError,
    category_from_row,
    product_from_row,
    customer_from_row,
    order_from_row,
)
from .gateway import (
    GatewayError,
    CATEGORIES,
    PRODUCTS,
    CUSTOMERS,
    ORDERS,
    ORDER_ITEMS,
    EMBED_ITEMS,
)
from .order_lifecycle import (
    prepare_status_patch,
    STATUS_DELIVERED,
    STATUS_CANCELLED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    VALID_STATUSES,
)
from .pricing import ZERO, line_totals, order_totals, to_money, to_quantity
from .realtime import ALL_EVENTS


CATEGORY_WRITABLE_FIELDS = {"name", "description", "is_active"}
PRODUCT_WRITABLE_FIELDS = {
    "name",
    "description",
    "category_id",
    "price",
    "image_url",
    "weight",
    "custom_packaging",
    "is_active",
}
CUSTOMER_WRITABLE_FIELDS = {
    "name",
    "whatsapp",
    "email",
    "address",
    "observations",
    "delivery_preferences",
    "is_gift_eligible",
}
ORDER_WRITABLE_FIELDS = {
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
}
ORDER_ITEM_WRITABLE_FIELDS = {"product_id", "quantity", "unit_price", "item_discount"}

# Collections whose change events trigger a refresh while a session is open
REALTIME_COLLECTIONS = (PRODUCTS, CATEGORIES, CUSTOMERS)

_ACTIVE_SALES_STATUSES = sorted(VALID_STATUSES - {STATUS_CANCELLED})


class SessionRequiredError(RuntimeError):
    """A mutation was attempted with no open dashboard session."""


def _writable(data: dict | None, allowed: set[str]) -> dict:
    return {k: v for k, v in (data or {}).items() if k in allowed}


class DashboardStore:
    def __init__(
        self,
        gateway,
        notify: Callable | None = None,
        logger: logging.Logger | None = None,
        realtime: bool = True,
    ):
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)
        self.realtime = realtime
        self._notify = notify

        self._snapshot: Snapshot = Snapshot.empty()
        self.error: str | None = None
        self.loading = False
        self.session_user: str | None = None

        self._subscriptions = []
        self._listeners: list[Callable[[Snapshot], None]] = []
        self._listeners_lock = threading.Lock()

    # ------------------------------------------------------------------
    # published state
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def add_listener(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Register a callback for every published snapshot. Returns a remover."""
        with self._listeners_lock:
            self._listeners.append(callback)

        def remove() -> None:
            with self._listeners_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return remove

    def _publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                self.logger.exception("Snapshot listener failed")

    def notify(self, title: str, message: str, severity: str = "info", action: dict | None = None) -> None:
        if self._notify is None:
            self.logger.info("%s: %s", title, message)
            return
        self._notify(title, message, severity, action)

    # ------------------------------------------------------------------
    # session
    # ------------------------------------------------------------------

    @property
    def has_session(self) -> bool:
        return self.session_user is not None

    def open_session(self, user: str) -> Snapshot:
        """Start a dashboard session for user, subscribe to changes and load the snapshot."""
        user = (user or "").strip() if isinstance(user, str) else ""
        if not user:
            raise ValidationError("user is required")

        if self.has_session:
            self.close_session()

        self.session_user = user
        if self.realtime:
            for collection in REALTIME_COLLECTIONS:
                self._subscriptions.append(
                    self.gateway.subscribe(collection, ALL_EVENTS, self._on_change)
                )
        self.logger.info("Dashboard session opened for %s", user)
        return self.refresh()

    def close_session(self) -> None:
        """Sign out: cancel subscriptions and discard the snapshot."""
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

        if self.session_user is not None:
            self.logger.info("Dashboard session closed for %s", self.session_user)
        self.session_user = None
        self.error = None
        self._publish(Snapshot.empty())

    def _on_change(self, event) -> None:
        self.logger.debug("Change on %s (%s); refreshing", event.collection, event.event_type)
        self.refresh()

    def _require_session(self) -> None:
        if not self.has_session:
            raise SessionRequiredError("No dashboard session is open")

    # ------------------------------------------------------------------
    # refresh
    # ------------------------------------------------------------------

    def refresh(self) -> Snapshot:
        """
        Re-read everything and publish a new snapshot.

        Never raises for read failures: the error is recorded on the store
        and the previous snapshot is returned unchanged.
        """
        if not self.has_session:
            self._publish(Snapshot.empty())
            return self._snapshot

        self.loading = True
        try:
            category_rows = self.gateway.select(CATEGORIES, order_by="name")
            product_rows = self.gateway.select(PRODUCTS, order_by="name")
            customer_rows = self.gateway.select(CUSTOMERS, order_by="name")
            order_rows = self.gateway.select(ORDERS, order_by="created_at", descending=True, embed=True)
            snapshot = self._build_snapshot(category_rows, product_rows, customer_rows, order_rows)
        except (GatewayError, SnapshotBuildError) as exc:
            self.error = str(exc) or "Failed to load data"
            self.logger.warning("Dashboard refresh failed: %s", exc)
            return self._snapshot
        finally:
            self.loading = False

        self.error = None
        self._publish(snapshot)
        return snapshot

    def _build_snapshot(self, category_rows, product_rows, customer_rows, order_rows) -> Snapshot:
        counts = Counter(row.get("category_id") for row in product_rows)
        categories = tuple(category_from_row(row, counts.get(row.get("id"), 0)) for row in category_rows)
        products = tuple(product_from_row(row) for row in product_rows)
        customers = tuple(customer_from_row(row) for row in customer_rows)
        orders = tuple(order_from_row(row) for row in order_rows)

        # Ties go to the first product in snapshot order (products are sorted by name)
        top = None
        for product in products:
            if top is None or product.total_sold > top.total_sold:
                top = product
        most_sold = None
        if top is not None:
            most_sold = next((c for c in categories if c.id == top.category_id), None)

        return Snapshot(
            categories=categories,
            products=products,
            customers=customers,
            orders=orders,
            most_sold_category=most_sold,
            loaded_at=utcnow(),
        )

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def _category(self, category_id):
        category = self._snapshot.category(category_id)
        if category is None:
            raise NotFoundError(f"Category not found: {category_id}")
        return category

    def _product(self, product_id):
        product = self._snapshot.product(product_id)
        if product is None:
            raise NotFoundError(f"Product not found: {product_id}")
        return product

    def _customer(self, customer_id):
        customer = self._snapshot.customer(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer not found: {customer_id}")
        return customer

    def _order(self, order_id):
        order = self._snapshot.order(order_id)
        if order is None:
            raise NotFoundError(f"Order not found: {order_id}")
        return order

    # ------------------------------------------------------------------
    # categories
    # ------------------------------------------------------------------

    def add_category(self, data: dict):
        self._require_session()
        fields = _writable(data, CATEGORY_WRITABLE_FIELDS)
        row = self.gateway.insert(CATEGORIES, fields)
        self.refresh()
        return self._snapshot.category(row["id"]) or category_from_row(row)

    def update_category(self, category_id: int, data: dict):
        self._require_session()
        self._category(category_id)
        fields = _writable(data, CATEGORY_WRITABLE_FIELDS)
        row = self.gateway.update(CATEGORIES, category_id, fields)
        self.refresh()
        return self._snapshot.category(category_id) or category_from_row(row)

    def delete_category(self, category_id: int) -> bool:
        """Returns False (and notifies) when products still use the category."""
        self._require_session()
        category = self._category(category_id)
        if category.product_count > 0:
            self.notify(
                "Cannot delete category",
                f"'{category.name}' still has {category.product_count} product(s). "
                "Move or delete them first.",
                "warning",
            )
            return False
        self.gateway.delete(CATEGORIES, category_id)
        self.refresh()
        return True

    # ------------------------------------------------------------------
    # products
    # ------------------------------------------------------------------

    def add_product(self, data: dict):
        self._require_session()
        fields = _writable(data, PRODUCT_WRITABLE_FIELDS)
        if "category_id" in fields:
            self._category(fields["category_id"])
        price = to_money(fields.get("price"), "price")
        fields["price_history"] = [{"date": to_utc_z(utcnow()), "price": f"{price:.2f}"}]

        row = self.gateway.insert(PRODUCTS, fields)
        self.refresh()
        return self._snapshot.product(row["id"]) or product_from_row(row)

    def update_product(self, product_id: int, data: dict):
        self._require_session()
        current = self._product(product_id)
        fields = _writable(data, PRODUCT_WRITABLE_FIELDS)
        if "category_id" in fields and fields["category_id"] != current.category_id:
            self._category(fields["category_id"])

        if "price" in fields:
            price = to_money(fields["price"], "price")
            if price != current.price:
                history = [entry.to_dict() for entry in current.price_history]
                history.append({"date": to_utc_z(utcnow()), "price": f"{price:.2f}"})
                fields["price_history"] = history

        row = self.gateway.update(PRODUCTS, product_id, fields)
        self.refresh()
        return self._snapshot.product(product_id) or product_from_row(row)

    def delete_product(self, product_id: int) -> bool:
        """
        Always proceeds. Line items that reference the product keep their
        own prices; their product link is cleared by the store.
        """
        self._require_session()
        product = self._product(product_id)
        referencing = len(self._snapshot.orders_for_product(product_id))
        if referencing:
            self.notify(
                "Product deleted",
                f"'{product.name}' appeared in {referencing} order(s); "
                "those orders keep their recorded prices.",
                "info",
            )
        self.gateway.delete(PRODUCTS, product_id)
        self.refresh()
        return True

    # ------------------------------------------------------------------
    # customers
    # ------------------------------------------------------------------

    def add_customer(self, data: dict):
        self._require_session()
        fields = _writable(data, CUSTOMER_WRITABLE_FIELDS)
        row = self.gateway.insert(CUSTOMERS, fields)
        self.refresh()
        return self._snapshot.customer(row["id"]) or customer_from_row(row)

    def update_customer(self, customer_id: int, data: dict):
        self._require_session()
        self._customer(customer_id)
        fields = _writable(data, CUSTOMER_WRITABLE_FIELDS)
        row = self.gateway.update(CUSTOMERS, customer_id, fields)
        self.refresh()
        return self._snapshot.customer(customer_id) or customer_from_row(row)

    def delete_customer(self, customer_id: int) -> bool:
        """Returns False (and notifies) when the customer has orders."""
        self._require_session()
        customer = self._customer(customer_id)
        order_count = len(self._snapshot.orders_for_customer(customer_id))
        if order_count > 0:
            self.notify(
                "Cannot delete customer",
                f"'{customer.name}' has {order_count} order(s) on record.",
                "warning",
            )
            return False
        self.gateway.delete(CUSTOMERS, customer_id)
        self.refresh()
        return True

    # ------------------------------------------------------------------
    # orders
    # ------------------------------------------------------------------

    def _price_items(self, items) -> list[dict]:
        """Resolve line items against the snapshot; unit price defaults to the current product price."""
        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError("An order needs at least one item")

        priced = []
        for raw in items:
            if not isinstance(raw, dict):
                raise ValidationError("Each order item must be an object")
            item = _writable(raw, ORDER_ITEM_WRITABLE_FIELDS)
            product = self._product(item.get("product_id"))

            unit_price = item.get("unit_price")
            if unit_price is None:
                unit_price = product.price
            unit_price = to_money(unit_price, "unit_price")
            discount = to_money(item.get("item_discount"), "item_discount")
            quantity = to_quantity(item.get("quantity"))
            final_unit_price, total = line_totals(unit_price, quantity, discount)

            priced.append({
                "product_id": product.id,
                "quantity": quantity,
                "unit_price": unit_price,
                "item_discount": discount,
                "final_unit_price": final_unit_price,
                "total": total,
            })
        return priced

    @staticmethod
    def _totals_fields(items: Iterable, delivery_fee, order_discount) -> dict:
        totals = order_totals(items, delivery_fee, order_discount)
        return {
            "subtotal": totals.subtotal,
            "delivery_fee": totals.delivery_fee,
            "order_discount": totals.order_discount,
            "total": totals.total,
        }

    def add_order(self, data: dict):
        """
        Create an order with its items in one write.

        data carries the order fields plus "items": [{product_id, quantity,
        unit_price?, item_discount?}, ...].
        """
        self._require_session()
        data = data or {}
        fields = _writable(data, ORDER_WRITABLE_FIELDS)
        self._customer(fields.get("customer_id"))

        items = self._price_items(data.get("items"))
        fields = prepare_status_patch(fields)
        fields.update(self._totals_fields(items, fields.get("delivery_fee"), fields.get("order_discount")))
        fields[EMBED_ITEMS] = items

        row = self.gateway.insert(ORDERS, fields)
        self.refresh()

        self._after_order_write(
            customer_ids={row["customer_id"]},
            product_ids={i["product_id"] for i in items},
        )
        return self._snapshot.order(row["id"]) or order_from_row(row)

    def update_order(self, order_id: int, data: dict):
        """
        Patch an order. Totals are always recomputed from the (new or
        existing) items, delivery fee and order discount.
        """
        self._require_session()
        data = data or {}
        current = self._order(order_id)
        fields = _writable(data, ORDER_WRITABLE_FIELDS)
        if "customer_id" in fields and fields["customer_id"] != current.customer_id:
            self._customer(fields["customer_id"])

        fields = prepare_status_patch(
            fields,
            current={
                "status": current.status,
                "payment_status": current.payment_status,
                "completed_at": current.completed_at,
                "payment_date": current.payment_date,
            },
        )

        product_ids = {i.product_id for i in current.items if i.product_id is not None}
        if "items" in data:
            items = self._price_items(data["items"])
            fields[EMBED_ITEMS] = items
            product_ids |= {i["product_id"] for i in items}
        else:
            items = current.items

        fields.update(self._totals_fields(
            items,
            fields.get("delivery_fee", current.delivery_fee),
            fields.get("order_discount", current.order_discount),
        ))

        row = self.gateway.update(ORDERS, order_id, fields)
        self.refresh()

        self._after_order_write(
            customer_ids={current.customer_id, row["customer_id"]},
            product_ids=product_ids,
        )
        return self._snapshot.order(order_id) or order_from_row(row)

    def delete_order(self, order_id: int) -> bool:
        self._require_session()
        current = self._order(order_id)
        self.gateway.delete(ORDERS, order_id)
        self.refresh()

        self._after_order_write(
            customer_ids={current.customer_id},
            product_ids={i.product_id for i in current.items if i.product_id is not None},
        )
        return True

    def _after_order_write(self, *, customer_ids: set, product_ids: set) -> None:
        for customer_id in sorted(customer_ids):
            self.update_customer_totals(customer_id)
        if product_ids:
            self.update_product_sales(sorted(product_ids))
        self.refresh()

    # ------------------------------------------------------------------
    # aggregates
    # ------------------------------------------------------------------

    def update_customer_totals(self, customer_id: int) -> dict | None:
        """
        Recompute one customer's order aggregates and write them in a single update.

        Returns the aggregates written, or None when the read or write failed
        (the failure is logged, never raised).
        """
        try:
            rows = self.gateway.select(ORDERS, filters={"customer_id": customer_id})

            aggregates = {
                "total_orders": len(rows),
                "total_spent": ZERO,
                "completed_orders": 0,
                "cancelled_orders": 0,
                "pending_orders": 0,
                "paid_spent": ZERO,
                "pending_spent": ZERO,
            }
            for row in rows:
                status = row.get("status")
                total = to_money(row.get("total"), "total")

                if status == STATUS_DELIVERED:
                    aggregates["completed_orders"] += 1
                elif status == STATUS_CANCELLED:
                    aggregates["cancelled_orders"] += 1
                    continue
                else:
                    aggregates["pending_orders"] += 1

                aggregates["total_spent"] += total
                if row.get("payment_status") == PAYMENT_PAID:
                    aggregates["paid_spent"] += total
                elif row.get("payment_status") == PAYMENT_PENDING:
                    aggregates["pending_spent"] += total

            self.gateway.update(CUSTOMERS, customer_id, aggregates)
        except (GatewayError, ValidationError):
            self.logger.exception("Failed to recompute totals for customer %s", customer_id)
            return None

        return aggregates

    def update_product_sales(self, product_ids: Iterable[int] | None = None) -> dict | None:
        """
        Recompute total_sold (quantity on non-cancelled orders) for the given
        products, or for every product when product_ids is None. Only products
        whose value changed are written.

        Returns {product_id: total_sold}, or None when the recomputation failed
        (logged, never raised).
        """
        try:
            product_filters = {} if product_ids is None else {"id": list(product_ids)}
            products = self.gateway.select(PRODUCTS, filters=product_filters)
            if not products:
                return {}

            active_orders = self.gateway.select(ORDERS, filters={"status": _ACTIVE_SALES_STATUSES})
            sold = Counter()
            if active_orders:
                items = self.gateway.select(
                    ORDER_ITEMS,
                    filters={
                        "order_id": [o["id"] for o in active_orders],
                        "product_id": [p["id"] for p in products],
                    },
                )
                for item in items:
                    sold[item["product_id"]] += int(item["quantity"])

            result = {}
            for product in products:
                total_sold = sold.get(product["id"], 0)
                result[product["id"]] = total_sold
                if int(product.get("total_sold") or 0) != total_sold:
                    self.gateway.update(PRODUCTS, product["id"], {"total_sold": total_sold})
        except GatewayError:
            self.logger.exception("Failed to recompute product sales")
            return None

        return result
