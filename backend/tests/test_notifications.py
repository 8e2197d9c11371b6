# Overview: Pytest coverage for the notification center and its realtime alerts.

import pytest

from paneteria.services.notification_service import NotificationCenter
from paneteria.services.realtime import ChangeEvent, EVENT_INSERT, EVENT_UPDATE
from paneteria.services.gateway import CUSTOMERS, ORDERS
from paneteria.validation import ValidationError, NotFoundError


class TestNotificationCenter:
    def test_newest_first_and_unread_count(self):
        center = NotificationCenter()
        center.notify("One", "first")
        second = center.notify("Two", "second", "success")

        assert [n.title for n in center.list()] == ["Two", "One"]
        assert center.unread_count == 2

        center.mark_read(second.id)
        assert center.unread_count == 1
        assert [n.title for n in center.list(unread_only=True)] == ["One"]

    def test_mark_all_read(self):
        center = NotificationCenter()
        center.notify("One", "first")
        center.notify("Two", "second")

        assert center.mark_all_read() == 2
        assert center.unread_count == 0

    def test_remove_and_clear(self):
        center = NotificationCenter()
        first = center.notify("One", "first")
        center.notify("Two", "second")

        center.remove(first.id)
        assert [n.title for n in center.list()] == ["Two"]

        center.clear_all()
        assert center.list() == []

    def test_unknown_id(self):
        with pytest.raises(NotFoundError):
            NotificationCenter().mark_read("missing")

    def test_invalid_severity(self):
        with pytest.raises(ValidationError):
            NotificationCenter().notify("x", "y", "critical")

    def test_action_needs_label_and_target(self):
        with pytest.raises(ValidationError):
            NotificationCenter().notify("x", "y", action={"label": "Open"})


class TestNativeMirror:
    def test_mirrors_only_when_permitted_and_unfocused(self):
        mirrored = []
        center = NotificationCenter(mirror=mirrored.append, permission_granted=True, focused=True)

        center.notify("Seen", "on screen")
        assert mirrored == []

        center.focused = False
        note = center.notify("Away", "operator away")
        assert mirrored == [note]

        center.permission_granted = False
        center.notify("Denied", "no permission")
        assert mirrored == [note]

    def test_mirror_failure_is_logged(self, caplog):
        def broken(notification):
            raise OSError("no display")

        center = NotificationCenter(mirror=broken, permission_granted=True, focused=False)
        center.notify("Hello", "world")

        assert len(center.list()) == 1
        assert "Native notification mirror failed" in caplog.text


class TestRealtimeAlerts:
    def test_order_and_customer_events(self, gateway):
        center = NotificationCenter()
        center.attach(gateway)

        gateway.feed.publish(ChangeEvent(ORDERS, EVENT_INSERT, new={"id": 4, "number": 12}))
        gateway.feed.publish(ChangeEvent(
            ORDERS, EVENT_UPDATE, new={"id": 4, "number": 12, "status": "cancelled"}, old={"status": "pending"},
        ))
        gateway.feed.publish(ChangeEvent(CUSTOMERS, EVENT_INSERT, new={"id": 9, "name": "Ana"}))

        customer, status, created = center.list()
        assert created.title == "New order!"
        assert created.action["target"] == "orders/4"
        assert "Order #12" in created.message
        assert status.severity == "warning"
        assert "cancelled" in status.message
        assert customer.message == "Ana was registered"

    def test_update_without_status_change_is_silent(self, gateway):
        center = NotificationCenter()
        center.attach(gateway)

        gateway.feed.publish(ChangeEvent(
            ORDERS, EVENT_UPDATE, new={"id": 1, "status": "ready", "notes": "x"}, old={"status": "ready"},
        ))
        assert center.list() == []

    def test_status_change_to_delivered_is_success(self, gateway):
        center = NotificationCenter()
        center.attach(gateway)

        gateway.feed.publish(ChangeEvent(
            ORDERS, EVENT_UPDATE, new={"id": 1, "number": 1, "status": "delivered"}, old={"status": "ready"},
        ))
        [note] = center.list()
        assert note.severity == "success"
        assert note.message == "Order #1: Order delivered"

    def test_detach_stops_alerts(self, gateway):
        center = NotificationCenter()
        center.attach(gateway)
        center.detach()

        gateway.feed.publish(ChangeEvent(CUSTOMERS, EVENT_INSERT, new={"name": "Ana"}))
        assert center.list() == []
        assert not center.attached

    def test_store_writes_raise_alerts(self, gateway, store, sourdough, ana):
        center = NotificationCenter()
        center.attach(gateway)

        order = store.add_order({"customer_id": ana.id, "items": [{"product_id": sourdough.id, "quantity": 1}]})
        store.update_order(order.id, {"status": "confirmed"})

        titles = [n.title for n in center.list()]
        assert titles == ["Status updated", "New order!"]
