# Overview: Dashboard analytics over a published snapshot; summary cards, performance metrics, per-product sales.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal

from paneteria.time_utils import parse_iso_datetime, utcnow, to_utc_z, start_of_day, end_of_day
from ..validation import ValidationError
from .entities import Snapshot, Order
from .order_lifecycle import (
    OrderLifecycleError,
    normalize_choice,
    CONFIRMED_STATUSES,
    STATUS_CANCELLED,
    STATUS_DELIVERED,
    PAYMENT_PAID,
    VALID_STATUSES,
)
from .pricing import ZERO


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def _pct(part: int | Decimal, whole: int | Decimal) -> float:
    if not whole:
        return 0.0
    return round(float(part) / float(whole) * 100, 1)


def _paid_total(orders) -> Decimal:
    return sum((o.total for o in orders if o.payment_status == PAYMENT_PAID), ZERO)


def _on_day(orders, day: datetime) -> list[Order]:
    lo, hi = start_of_day(day), end_of_day(day)
    return [o for o in orders if lo <= o.order_date <= hi]


def orders_in_range(
    snapshot: Snapshot,
    start: str | datetime | None = None,
    end: str | datetime | None = None,
    status: str | None = None,
) -> list[Order]:
    """
    Orders whose order_date falls in [start, end] (either bound optional),
    optionally restricted to one status. Keeps snapshot order (newest first).
    """
    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 datetimes")
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")

    if status is not None:
        try:
            status = normalize_choice(status, VALID_STATUSES, "status")
        except OrderLifecycleError as exc:
            raise ValidationError(str(exc))

    result = []
    for order in snapshot.orders:
        if start_dt and order.order_date < start_dt:
            continue
        if end_dt and order.order_date > end_dt:
            continue
        if status and order.status != status:
            continue
        result.append(order)
    return result


def dashboard_summary(snapshot: Snapshot, now: datetime | None = None, recent_limit: int = 5) -> dict:
    now = now or utcnow()
    today = _on_day(snapshot.orders, now)
    most_sold = snapshot.most_sold_category

    return {
        "today_orders": len(today),
        "paid_revenue": _money(_paid_total(snapshot.orders)),
        "customer_count": len(snapshot.customers),
        "active_product_count": sum(1 for p in snapshot.products if p.is_active),
        "recent_orders": [o.to_dict() for o in snapshot.orders[:max(recent_limit, 0)]],
        "most_sold_category": most_sold.to_dict() if most_sold else None,
        "generated_at": to_utc_z(now),
    }


def performance_metrics(snapshot: Snapshot, now: datetime | None = None) -> dict:
    """
    Operational KPIs.

    - conversion_rate: share of orders that reached confirmed or beyond
    - cancellation_rate: share of cancelled orders
    - avg_preparation_minutes: order_date -> completed_at over delivered orders
    - revenue_change: today's paid revenue vs yesterday's, in percent
      (0 when yesterday had no paid revenue)
    """
    now = now or utcnow()
    orders = snapshot.orders
    today = _on_day(orders, now)
    yesterday = _on_day(orders, now - timedelta(days=1))
    last_week = [o for o in orders if o.order_date >= now - timedelta(days=7)]
    last_month = [o for o in orders if o.order_date >= now - timedelta(days=30)]

    today_revenue = _paid_total(today)
    yesterday_revenue = _paid_total(yesterday)
    revenue_change = 0.0
    if yesterday_revenue > 0:
        revenue_change = _pct(today_revenue - yesterday_revenue, yesterday_revenue)

    confirmed = sum(1 for o in orders if o.status in CONFIRMED_STATUSES)
    cancelled = sum(1 for o in orders if o.status == STATUS_CANCELLED)

    delivered = [o for o in orders if o.status == STATUS_DELIVERED and o.completed_at]
    avg_minutes = 0.0
    if delivered:
        seconds = sum((o.completed_at - o.order_date).total_seconds() for o in delivered)
        avg_minutes = round(seconds / len(delivered) / 60, 1)

    return {
        "today_orders": len(today),
        "yesterday_orders": len(yesterday),
        "week_orders": len(last_week),
        "month_orders": len(last_month),
        "today_revenue": _money(today_revenue),
        "yesterday_revenue": _money(yesterday_revenue),
        "revenue_change": revenue_change,
        "conversion_rate": _pct(confirmed, len(orders)),
        "cancellation_rate": _pct(cancelled, len(orders)),
        "avg_preparation_minutes": avg_minutes,
    }


def product_sales(snapshot: Snapshot) -> list[dict]:
    """Quantity sold and revenue per product across non-cancelled orders, best sellers first."""
    quantity = defaultdict(int)
    revenue = defaultdict(lambda: ZERO)
    for order in snapshot.orders:
        if order.status == STATUS_CANCELLED:
            continue
        for item in order.items:
            if item.product_id is None:
                continue
            quantity[item.product_id] += item.quantity
            revenue[item.product_id] += item.total

    rows = []
    for product in snapshot.products:
        category = snapshot.category(product.category_id)
        rows.append({
            "product_id": product.id,
            "name": product.name,
            "category": category.name if category else None,
            "price": _money(product.price),
            "quantity_sold": quantity[product.id],
            "revenue": _money(revenue[product.id]),
            "is_active": product.is_active,
        })
    rows.sort(key=lambda r: -r["quantity_sold"])
    return rows
