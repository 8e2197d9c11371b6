# Overview: Read-only view entities built from gateway rows; the shape published in a snapshot.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from paneteria.time_utils import parse_iso_datetime, to_utc_z
from .order_lifecycle import (
    OrderLifecycleError,
    normalize_choice,
    VALID_STATUSES,
    VALID_PAYMENT_STATUSES,
    VALID_PAYMENT_METHODS,
    VALID_DELIVERY_METHODS,
    VALID_SALES_CHANNELS,
)
from .pricing import CENT, ZERO, order_totals


class SnapshotBuildError(ValueError):
    """A gateway row could not be reshaped into an entity."""


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def _str_money(value: Decimal | None) -> str | None:
    return None if value is None else f"{value:.2f}"


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    description: str | None
    is_active: bool
    product_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "product_count": self.product_count,
        }


@dataclass(frozen=True)
class PriceHistoryEntry:
    date: datetime
    price: Decimal

    def to_dict(self) -> dict:
        return {"date": to_utc_z(self.date), "price": _str_money(self.price)}


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    description: str | None
    price: Decimal
    category_id: int
    is_active: bool
    total_sold: int
    created_at: datetime
    price_history: tuple[PriceHistoryEntry, ...] = ()
    image_url: str | None = None
    weight: Decimal | None = None
    custom_packaging: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": _str_money(self.price),
            "category_id": self.category_id,
            "is_active": self.is_active,
            "total_sold": self.total_sold,
            "created_at": to_utc_z(self.created_at),
            "price_history": [p.to_dict() for p in self.price_history],
            "image_url": self.image_url,
            "weight": str(self.weight) if self.weight is not None else None,
            "custom_packaging": self.custom_packaging,
        }


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    whatsapp: str
    created_at: datetime
    email: str | None = None
    address: str | None = None
    observations: str | None = None
    delivery_preferences: str | None = None
    is_gift_eligible: bool = False
    total_orders: int = 0
    total_spent: Decimal = ZERO
    completed_orders: int = 0
    cancelled_orders: int = 0
    pending_orders: int = 0
    paid_spent: Decimal = ZERO
    pending_spent: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "whatsapp": self.whatsapp,
            "email": self.email,
            "address": self.address,
            "observations": self.observations,
            "delivery_preferences": self.delivery_preferences,
            "created_at": to_utc_z(self.created_at),
            "is_gift_eligible": self.is_gift_eligible,
            "total_orders": self.total_orders,
            "total_spent": _str_money(self.total_spent),
            "completed_orders": self.completed_orders,
            "cancelled_orders": self.cancelled_orders,
            "pending_orders": self.pending_orders,
            "paid_spent": _str_money(self.paid_spent),
            "pending_spent": _str_money(self.pending_spent),
        }


@dataclass(frozen=True)
class OrderItem:
    """
    One order line. unit_price is the historical price at order time;
    product is the joined product row as currently stored (None once the
    product has been deleted).
    """
    id: int | None
    product_id: int | None
    product: Optional[Product]
    quantity: int
    unit_price: Decimal
    item_discount: Decimal = ZERO

    @property
    def final_unit_price(self) -> Decimal:
        return self.unit_price - self.item_discount

    @property
    def total(self) -> Decimal:
        return (self.final_unit_price * self.quantity).quantize(CENT)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": _str_money(self.unit_price),
            "item_discount": _str_money(self.item_discount),
            "final_unit_price": _str_money(self.final_unit_price),
            "total": _str_money(self.total),
        }


@dataclass(frozen=True)
class Order:
    """
    Joined order view. subtotal and total are derived from the items,
    the order discount and the delivery fee; they are never read back
    from storage independently of their components.
    """
    id: int
    number: int
    customer_id: int
    customer: Optional[Customer]
    items: tuple[OrderItem, ...]
    delivery_fee: Decimal
    order_discount: Decimal
    status: str
    payment_status: str
    payment_method: str
    delivery_method: str
    sales_channel: str
    order_date: datetime
    created_at: datetime
    notes: str | None = None
    estimated_delivery: datetime | None = None
    completed_at: datetime | None = None
    payment_date: datetime | None = None

    @property
    def totals(self):
        return order_totals(self.items, self.delivery_fee, self.order_discount)

    @property
    def subtotal(self) -> Decimal:
        return self.totals.subtotal

    @property
    def items_discount(self) -> Decimal:
        return self.totals.items_discount

    @property
    def total(self) -> Decimal:
        return self.totals.total

    def to_dict(self) -> dict:
        totals = self.totals
        return {
            "id": self.id,
            "number": self.number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "items": [i.to_dict() for i in self.items],
            "subtotal": _str_money(totals.subtotal),
            "items_discount": _str_money(totals.items_discount),
            "order_discount": _str_money(totals.order_discount),
            "delivery_fee": _str_money(totals.delivery_fee),
            "total": _str_money(totals.total),
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "delivery_method": self.delivery_method,
            "sales_channel": self.sales_channel,
            "notes": self.notes,
            "order_date": to_utc_z(self.order_date),
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "completed_at": to_utc_z(self.completed_at),
            "payment_date": to_utc_z(self.payment_date),
            "created_at": to_utc_z(self.created_at),
        }


@dataclass(frozen=True)
class Snapshot:
    """
    Complete joined state at one point in time.

    Published wholesale by the dashboard store and never mutated in place.
    loaded_at is excluded from equality so two refreshes over unchanged
    data compare equal.
    """
    categories: tuple[Category, ...] = ()
    products: tuple[Product, ...] = ()
    customers: tuple[Customer, ...] = ()
    orders: tuple[Order, ...] = ()
    most_sold_category: Optional[Category] = None
    loaded_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    def category(self, category_id: int) -> Category | None:
        return next((c for c in self.categories if c.id == category_id), None)

    def product(self, product_id: int) -> Product | None:
        return next((p for p in self.products if p.id == product_id), None)

    def customer(self, customer_id: int) -> Customer | None:
        return next((c for c in self.customers if c.id == customer_id), None)

    def order(self, order_id: int) -> Order | None:
        return next((o for o in self.orders if o.id == order_id), None)

    def orders_for_customer(self, customer_id: int) -> list[Order]:
        return [o for o in self.orders if o.customer_id == customer_id]

    def orders_for_product(self, product_id: int) -> list[Order]:
        return [o for o in self.orders if any(i.product_id == product_id for i in o.items)]

    def to_dict(self) -> dict:
        return {
            "categories": [c.to_dict() for c in self.categories],
            "products": [p.to_dict() for p in self.products],
            "customers": [c.to_dict() for c in self.customers],
            "orders": [o.to_dict() for o in self.orders],
            "most_sold_category": self.most_sold_category.to_dict() if self.most_sold_category else None,
            "loaded_at": to_utc_z(self.loaded_at),
        }


# ----------------------------------------------------------------------
# Row builders
# ----------------------------------------------------------------------

def _timestamp(row: dict, key: str, *, required: bool = False) -> datetime | None:
    value = parse_iso_datetime(row.get(key))
    if value is None and required:
        raise SnapshotBuildError(f"missing {key}")
    return value


def _choice(row: dict, key: str, allowed: frozenset) -> str:
    try:
        return normalize_choice(row.get(key), allowed, key)
    except OrderLifecycleError as exc:
        raise SnapshotBuildError(str(exc)) from exc


def category_from_row(row: dict, product_count: int = 0) -> Category:
    try:
        return Category(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            is_active=bool(row.get("is_active", True)),
            product_count=product_count,
        )
    except KeyError as exc:
        raise SnapshotBuildError(f"category row missing {exc}") from exc


def _price_history(row: dict, created_at: datetime, price: Decimal) -> tuple[PriceHistoryEntry, ...]:
    entries = []
    for entry in row.get("price_history") or []:
        date = parse_iso_datetime(entry.get("date"))
        if date is None:
            raise SnapshotBuildError("price history entry missing date")
        entries.append(PriceHistoryEntry(date=date, price=_money(entry.get("price"))))
    if not entries:
        entries.append(PriceHistoryEntry(date=created_at, price=price))
    return tuple(entries)


def product_from_row(row: dict) -> Product:
    try:
        created_at = _timestamp(row, "created_at", required=True)
        price = _money(row["price"])
        return Product(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            price=price,
            category_id=row["category_id"],
            is_active=bool(row.get("is_active", True)),
            total_sold=int(row.get("total_sold") or 0),
            created_at=created_at,
            price_history=_price_history(row, created_at, price),
            image_url=row.get("image_url") or None,
            weight=Decimal(str(row["weight"])) if row.get("weight") is not None else None,
            custom_packaging=bool(row.get("custom_packaging", False)),
        )
    except (KeyError, InvalidOperation, ValueError) as exc:
        if isinstance(exc, SnapshotBuildError):
            raise
        raise SnapshotBuildError(f"product row unreadable: {exc}") from exc


def customer_from_row(row: dict) -> Customer:
    try:
        return Customer(
            id=row["id"],
            name=row["name"],
            whatsapp=row["whatsapp"],
            created_at=_timestamp(row, "created_at", required=True),
            email=row.get("email"),
            address=row.get("address"),
            observations=row.get("observations") or None,
            delivery_preferences=row.get("delivery_preferences") or None,
            is_gift_eligible=bool(row.get("is_gift_eligible", False)),
            total_orders=int(row.get("total_orders") or 0),
            total_spent=_money(row.get("total_spent")),
            completed_orders=int(row.get("completed_orders") or 0),
            cancelled_orders=int(row.get("cancelled_orders") or 0),
            pending_orders=int(row.get("pending_orders") or 0),
            paid_spent=_money(row.get("paid_spent")),
            pending_spent=_money(row.get("pending_spent")),
        )
    except (KeyError, InvalidOperation, ValueError) as exc:
        if isinstance(exc, SnapshotBuildError):
            raise
        raise SnapshotBuildError(f"customer row unreadable: {exc}") from exc


def _item_from_row(row: dict) -> OrderItem:
    product_row = row.get("products")
    return OrderItem(
        id=row.get("id"),
        product_id=row.get("product_id"),
        product=product_from_row(product_row) if product_row else None,
        quantity=int(row["quantity"]),
        unit_price=_money(row["unit_price"]),
        item_discount=_money(row.get("item_discount")),
    )


def order_from_row(row: dict) -> Order:
    """Build an order from a joined row (customers + order_items[products] embedded)."""
    try:
        customer_row = row.get("customers")
        created_at = _timestamp(row, "created_at", required=True)
        return Order(
            id=row["id"],
            number=int(row["number"]),
            customer_id=row["customer_id"],
            customer=customer_from_row(customer_row) if customer_row else None,
            items=tuple(_item_from_row(i) for i in row.get("order_items") or []),
            delivery_fee=_money(row.get("delivery_fee")),
            order_discount=_money(row.get("order_discount")),
            status=_choice(row, "status", VALID_STATUSES),
            payment_status=_choice(row, "payment_status", VALID_PAYMENT_STATUSES),
            payment_method=_choice(row, "payment_method", VALID_PAYMENT_METHODS),
            delivery_method=_choice(row, "delivery_method", VALID_DELIVERY_METHODS),
            sales_channel=_choice(row, "sales_channel", VALID_SALES_CHANNELS),
            order_date=_timestamp(row, "order_date") or created_at,
            created_at=created_at,
            notes=row.get("notes") or None,
            estimated_delivery=_timestamp(row, "estimated_delivery"),
            completed_at=_timestamp(row, "completed_at"),
            payment_date=_timestamp(row, "payment_date"),
        )
    except (KeyError, InvalidOperation, ValueError) as exc:
        if isinstance(exc, SnapshotBuildError):
            raise
        raise SnapshotBuildError(f"order row unreadable: {exc}") from exc
