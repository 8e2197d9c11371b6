# Overview: Order and payment status rules; enum normalization, allowed transitions, cancellation cascade.

"""
Order lifecycle rules.

STATE MACHINE (order status):
    pending -> confirmed -> preparing -> ready -> delivered
    any non-terminal state -> cancelled

    Forward jumps are allowed (a walk-in sale goes pending -> delivered).
    delivered and cancelled are terminal. Moving backwards is forbidden.

STATE MACHINE (payment status):
    pending -> paid
    pending | paid -> cancelled

CASCADE: an order written with status cancelled always carries payment
status cancelled, whatever the caller asked for.
"""
from __future__ import annotations

from datetime import datetime

from paneteria.time_utils import utcnow


STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_PREPARING = "preparing"
STATUS_READY = "ready"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

# Progression order; index defines "forward"
STATUS_FLOW = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_PREPARING, STATUS_READY, STATUS_DELIVERED)
VALID_STATUSES = frozenset(STATUS_FLOW + (STATUS_CANCELLED,))
TERMINAL_STATUSES = frozenset({STATUS_DELIVERED, STATUS_CANCELLED})
# Counted as "in progress" in customer aggregates and conversion metrics
CONFIRMED_STATUSES = frozenset({STATUS_CONFIRMED, STATUS_PREPARING, STATUS_READY, STATUS_DELIVERED})

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_CANCELLED = "cancelled"
VALID_PAYMENT_STATUSES = frozenset({PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_CANCELLED})

VALID_PAYMENT_METHODS = frozenset({"cash", "card", "pix", "transfer"})
VALID_DELIVERY_METHODS = frozenset({"pickup", "delivery"})
VALID_SALES_CHANNELS = frozenset({"direct", "whatsapp", "99food", "ifood"})

_PAYMENT_TRANSITIONS = {
    PAYMENT_PENDING: {PAYMENT_PAID, PAYMENT_CANCELLED},
    PAYMENT_PAID: {PAYMENT_CANCELLED},
    PAYMENT_CANCELLED: set(),
}


class OrderLifecycleError(ValueError):
    """
    Raised for an unknown enum value or a forbidden status transition.

    This is a domain error: the caller asked for something the order
    workflow does not allow.
    """


def normalize_choice(value, allowed: frozenset, field: str) -> str:
    """Trim and lower-case an enum value; raise if it is not one of allowed."""
    normalized = (value or "").strip().lower() if isinstance(value, str) or value is None else None
    if normalized not in allowed:
        raise OrderLifecycleError(
            f"Invalid {field} '{value}'. Must be one of: {', '.join(sorted(allowed))}"
        )
    return normalized


def can_transition(from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True
    if from_status in TERMINAL_STATUSES:
        return False
    if to_status == STATUS_CANCELLED:
        return True
    return STATUS_FLOW.index(to_status) > STATUS_FLOW.index(from_status)


def can_transition_payment(from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True
    return to_status in _PAYMENT_TRANSITIONS[from_status]


_ENUM_FIELDS = {
    "status": (VALID_STATUSES, "status"),
    "payment_status": (VALID_PAYMENT_STATUSES, "payment status"),
    "payment_method": (VALID_PAYMENT_METHODS, "payment method"),
    "delivery_method": (VALID_DELIVERY_METHODS, "delivery method"),
    "sales_channel": (VALID_SALES_CHANNELS, "sales channel"),
}


def prepare_status_patch(patch: dict, current: dict | None = None, now: datetime | None = None) -> dict:
    """
    Normalize the enum fields of an order write payload and apply the
    status side effects.

    current is the persisted order row for updates (None on create).
    Returns a new dict; the input is not modified.

    - status cancelled forces payment_status cancelled
    - status delivered stamps completed_at if neither the patch nor the
      current row has one
    - payment_status paid stamps payment_date the same way
    - transitions are checked against current when present
    """
    now = now or utcnow()
    out = dict(patch)

    for key, (allowed, label) in _ENUM_FIELDS.items():
        if key in out and out[key] is not None:
            out[key] = normalize_choice(out[key], allowed, label)

    status = out.get("status")
    if status == STATUS_CANCELLED:
        out["payment_status"] = PAYMENT_CANCELLED

    if current is not None:
        old_status = current.get("status")
        if status is not None and not can_transition(old_status, status):
            raise OrderLifecycleError(f"Cannot move order from {old_status} to {status}")

        old_payment = current.get("payment_status")
        new_payment = out.get("payment_status")
        if new_payment is not None and not can_transition_payment(old_payment, new_payment):
            raise OrderLifecycleError(f"Cannot move payment from {old_payment} to {new_payment}")

    current = current or {}
    if status == STATUS_DELIVERED and not out.get("completed_at") and not current.get("completed_at"):
        out["completed_at"] = now
    if out.get("payment_status") == PAYMENT_PAID and not out.get("payment_date") and not current.get("payment_date"):
        out["payment_date"] = now

    return out
