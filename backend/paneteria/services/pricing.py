# Overview: Order money math; line totals, order totals, currency rounding.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from ..validation import ValidationError, coerce_decimal


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value, field: str = "amount") -> Decimal:
    """Coerce to Decimal rounded half-up to cents. None counts as zero."""
    if value is None:
        return ZERO
    return coerce_decimal(field, value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        else:
            raise ValidationError("quantity must be a positive integer")
    if value <= 0:
        raise ValidationError("quantity must be a positive integer")
    return value


def line_totals(unit_price, quantity, item_discount=None) -> tuple[Decimal, Decimal]:
    """
    Returns (final_unit_price, line_total) for one order line.

    final_unit_price = unit_price - item_discount
    line_total = final_unit_price * quantity
    """
    unit_price = to_money(unit_price, "unit_price")
    discount = to_money(item_discount, "item_discount")
    quantity = to_quantity(quantity)

    if unit_price < 0:
        raise ValidationError("unit_price must be >= 0")
    if discount < 0:
        raise ValidationError("item_discount must be >= 0")
    if discount > unit_price:
        raise ValidationError("item_discount cannot exceed unit_price")

    final_unit_price = unit_price - discount
    return final_unit_price, (final_unit_price * quantity).quantize(CENT)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    items_discount: Decimal
    order_discount: Decimal
    delivery_fee: Decimal
    total: Decimal


def _field(item, key):
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


def order_totals(items: Iterable, delivery_fee=None, order_discount=None) -> OrderTotals:
    """
    total = subtotal - items_discount - order_discount + delivery_fee

    subtotal is the sum of unit_price * quantity (before item discounts).
    items may be dicts or objects exposing unit_price, quantity, item_discount.
    """
    delivery_fee = to_money(delivery_fee, "delivery_fee")
    order_discount = to_money(order_discount, "order_discount")
    if delivery_fee < 0:
        raise ValidationError("delivery_fee must be >= 0")
    if order_discount < 0:
        raise ValidationError("order_discount must be >= 0")

    subtotal = ZERO
    items_discount = ZERO
    for item in items:
        quantity = to_quantity(_field(item, "quantity"))
        unit_price = to_money(_field(item, "unit_price"), "unit_price")
        discount = to_money(_field(item, "item_discount"), "item_discount")
        subtotal += unit_price * quantity
        items_discount += discount * quantity

    total = subtotal - items_discount - order_discount + delivery_fee
    if total < 0:
        raise ValidationError("order_discount cannot exceed the order value")

    return OrderTotals(
        subtotal=subtotal.quantize(CENT),
        items_discount=items_discount.quantize(CENT),
        order_discount=order_discount,
        delivery_fee=delivery_fee,
        total=total.quantize(CENT),
    )
