# Overview: In-app notification center; alert list, read state, optional native mirror, realtime order/customer alerts.

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..time_utils import utcnow, to_utc_z
from ..validation import ValidationError, NotFoundError
from .gateway import ORDERS, CUSTOMERS
from .realtime import EVENT_INSERT, EVENT_UPDATE


SEVERITY_SUCCESS = "success"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"
SEVERITY_INFO = "info"
VALID_SEVERITIES = frozenset({SEVERITY_SUCCESS, SEVERITY_WARNING, SEVERITY_ERROR, SEVERITY_INFO})

STATUS_MESSAGES = {
    "confirmed": "Order confirmed",
    "preparing": "Order being prepared",
    "ready": "Order ready for delivery",
    "delivered": "Order delivered",
    "cancelled": "Order cancelled",
}


@dataclass
class Notification:
    id: str
    title: str
    message: str
    severity: str
    timestamp: datetime
    read: bool = False
    # {"label": ..., "target": ...}
    action: dict | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "timestamp": to_utc_z(self.timestamp),
            "read": self.read,
            "action": dict(self.action) if self.action else None,
        }


class NotificationCenter:
    """
    Ordered list of transient alerts, newest first.

    When a mirror callable is configured, permission has been granted and
    the operator is not looking at the dashboard (focused is False), each
    new notification is also forwarded to the mirror (the host's native
    notification surface).
    """

    def __init__(
        self,
        mirror: Callable[[Notification], None] | None = None,
        logger: logging.Logger | None = None,
        permission_granted: bool = False,
        focused: bool = True,
    ):
        self.mirror = mirror
        self.logger = logger or logging.getLogger(__name__)
        self.permission_granted = permission_granted
        self.focused = focused

        self._items: list[Notification] = []
        self._subscriptions = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # list operations
    # ------------------------------------------------------------------

    def notify(self, title: str, message: str, severity: str = SEVERITY_INFO, action: dict | None = None) -> Notification:
        if severity not in VALID_SEVERITIES:
            raise ValidationError(
                f"Invalid severity '{severity}'. Must be one of: {', '.join(sorted(VALID_SEVERITIES))}"
            )
        if action is not None and not ({"label", "target"} <= set(action)):
            raise ValidationError("action requires label and target")

        notification = Notification(
            id=str(uuid.uuid4()),
            title=title,
            message=message,
            severity=severity,
            timestamp=utcnow(),
            action=dict(action) if action else None,
        )
        with self._lock:
            self._items.insert(0, notification)

        self._mirror(notification)
        return notification

    def _mirror(self, notification: Notification) -> None:
        if self.mirror is None or not self.permission_granted or self.focused:
            return
        try:
            self.mirror(notification)
        except Exception:
            self.logger.exception("Native notification mirror failed")

    def _find(self, notification_id: str) -> Notification:
        for notification in self._items:
            if notification.id == notification_id:
                return notification
        raise NotFoundError(f"Notification not found: {notification_id}")

    def mark_read(self, notification_id: str) -> Notification:
        with self._lock:
            notification = self._find(notification_id)
            notification.read = True
        return notification

    def mark_all_read(self) -> int:
        """Returns how many notifications changed."""
        with self._lock:
            changed = 0
            for notification in self._items:
                if not notification.read:
                    notification.read = True
                    changed += 1
        return changed

    def remove(self, notification_id: str) -> None:
        with self._lock:
            self._items.remove(self._find(notification_id))

    def clear_all(self) -> None:
        with self._lock:
            self._items.clear()

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def list(self, unread_only: bool = False) -> list[Notification]:
        with self._lock:
            items = list(self._items)
        if unread_only:
            items = [n for n in items if not n.read]
        return items

    # ------------------------------------------------------------------
    # realtime alerts
    # ------------------------------------------------------------------

    def attach(self, gateway) -> None:
        """Subscribe to order and customer changes on the gateway's feed."""
        self.detach()
        self._subscriptions = [
            gateway.subscribe(ORDERS, {EVENT_INSERT}, self._on_order_created),
            gateway.subscribe(ORDERS, {EVENT_UPDATE}, self._on_order_updated),
            gateway.subscribe(CUSTOMERS, {EVENT_INSERT}, self._on_customer_created),
        ]

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    @staticmethod
    def _order_label(row: dict) -> str:
        return f"Order #{row.get('number') or row.get('id')}"

    def _on_order_created(self, event) -> None:
        row = event.new or {}
        self.notify(
            "New order!",
            f"{self._order_label(row)} was created",
            SEVERITY_INFO,
            action={"label": "View order", "target": f"orders/{row.get('id')}"},
        )

    def _on_order_updated(self, event) -> None:
        old_status = (event.old or {}).get("status")
        row = event.new or {}
        new_status = row.get("status")
        if old_status == new_status:
            return

        self.notify(
            "Status updated",
            f"{self._order_label(row)}: {STATUS_MESSAGES.get(new_status, new_status)}",
            SEVERITY_WARNING if new_status == "cancelled" else SEVERITY_SUCCESS,
        )

    def _on_customer_created(self, event) -> None:
        row = event.new or {}
        self.notify("New customer!", f"{row.get('name')} was registered", SEVERITY_SUCCESS)
