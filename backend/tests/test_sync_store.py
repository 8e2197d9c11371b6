# Overview: Pytest coverage for the dashboard store; refresh, derived aggregates, guarded deletes, order writes.

"""
Dashboard Store Tests

Covers:
- refresh keeps the previous snapshot when any read fails
- product_count and most_sold_category after every refresh
- order totals recomputed from items, fee and discount
- cancellation cascade and status transitions
- deletion guards (no gateway call, warning notification)
- customer and product aggregates after order writes
- realtime refresh while a session is open
"""

import logging
from decimal import Decimal

import pytest

from paneteria.services.gateway import (
    GatewayError,
    CATEGORIES,
    PRODUCTS,
    CUSTOMERS,
    ORDERS,
)
from paneteria.services.order_lifecycle import OrderLifecycleError
from paneteria.services.sync_service import DashboardStore, SessionRequiredError
from paneteria.services.entities import Snapshot
from paneteria.validation import NotFoundError, ValidationError


class FlakyGateway:
    """Wraps a real gateway; selected operations can be made to fail."""

    def __init__(self, inner):
        self.inner = inner
        self.fail_select_on = None
        self.fail_update_on = None
        self.deletes = []

    def select(self, collection, *args, **kwargs):
        if collection == self.fail_select_on:
            raise GatewayError(f"connection lost reading {collection}")
        return self.inner.select(collection, *args, **kwargs)

    def update(self, collection, row_id, fields):
        if collection == self.fail_update_on:
            raise GatewayError(f"write rejected on {collection}")
        return self.inner.update(collection, row_id, fields)

    def delete(self, collection, row_id):
        self.deletes.append((collection, row_id))
        return self.inner.delete(collection, row_id)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.fixture
def flaky(gateway):
    return FlakyGateway(gateway)


@pytest.fixture
def flaky_store(flaky, notices):
    store = DashboardStore(flaky, notify=notices, logger=logging.getLogger("paneteria.tests"))
    store.open_session("tester")
    yield store
    store.close_session()


def _order(store, customer, *lines, **fields):
    items = [{"product_id": p.id, "quantity": q} for p, q in lines]
    return store.add_order({"customer_id": customer.id, "items": items, **fields})


class TestSession:
    def test_no_session_publishes_empty_snapshot(self, gateway):
        store = DashboardStore(gateway)
        assert store.refresh() == Snapshot.empty()
        assert store.error is None

    def test_mutation_without_session_raises(self, gateway):
        store = DashboardStore(gateway)
        with pytest.raises(SessionRequiredError):
            store.add_category({"name": "Breads"})

    def test_open_session_requires_user(self, gateway):
        store = DashboardStore(gateway)
        with pytest.raises(ValidationError):
            store.open_session("  ")

    def test_close_session_discards_snapshot(self, store, breads):
        assert len(store.snapshot.categories) == 1

        store.close_session()

        assert store.snapshot == Snapshot.empty()
        assert store.session_user is None

    def test_listeners_receive_each_snapshot(self, store):
        seen = []
        remove = store.add_listener(seen.append)

        store.add_category({"name": "Cakes"})
        assert seen and seen[-1] is store.snapshot

        remove()
        count = len(seen)
        store.refresh()
        assert len(seen) == count


class TestRefresh:
    @pytest.mark.parametrize("collection", [CATEGORIES, PRODUCTS, CUSTOMERS, ORDERS])
    def test_failed_read_keeps_previous_snapshot(self, flaky, flaky_store, collection):
        flaky_store.add_category({"name": "Breads"})
        before = flaky_store.snapshot

        flaky.fail_select_on = collection
        result = flaky_store.refresh()

        assert result is before
        assert flaky_store.snapshot is before
        assert collection in flaky_store.error
        assert flaky_store.loading is False

    def test_successful_refresh_clears_error(self, flaky, flaky_store):
        flaky.fail_select_on = PRODUCTS
        flaky_store.refresh()
        assert flaky_store.error

        flaky.fail_select_on = None
        flaky_store.refresh()
        assert flaky_store.error is None

    def test_refresh_twice_is_structurally_equal(self, store, sourdough, ana):
        _order(store, ana, (sourdough, 2))

        first = store.refresh()
        second = store.refresh()

        assert first is not second
        assert first == second

    def test_product_count_per_category(self, store, breads, sourdough):
        cakes = store.add_category({"name": "Cakes"})
        store.add_product({"name": "Focaccia", "price": "28.00", "category_id": breads.id})

        snapshot = store.snapshot
        counts = {c.id: c.product_count for c in snapshot.categories}
        assert counts[breads.id] == 2
        assert counts[cakes.id] == 0
        for category in snapshot.categories:
            assert category.product_count == sum(1 for p in snapshot.products if p.category_id == category.id)

    def test_most_sold_category_none_without_products(self, store, breads):
        assert store.snapshot.most_sold_category is None

    def test_most_sold_category_follows_total_sold(self, store, gateway, breads, sourdough):
        cakes = store.add_category({"name": "Cakes"})
        carrot = store.add_product({"name": "Carrot Cake", "price": "45.00", "category_id": cakes.id})

        gateway.update(PRODUCTS, carrot.id, {"total_sold": 7})
        gateway.update(PRODUCTS, sourdough.id, {"total_sold": 3})

        # realtime refresh already ran on the product updates
        assert store.snapshot.most_sold_category.id == cakes.id

    def test_most_sold_tie_goes_to_first_product_by_name(self, store, gateway, breads):
        cakes = store.add_category({"name": "Cakes"})
        apple = store.add_product({"name": "Apple Pie", "price": "30.00", "category_id": cakes.id})
        zebra = store.add_product({"name": "Zebra Loaf", "price": "15.00", "category_id": breads.id})

        gateway.update(PRODUCTS, zebra.id, {"total_sold": 4})
        gateway.update(PRODUCTS, apple.id, {"total_sold": 4})

        assert store.snapshot.most_sold_category.id == cakes.id

    def test_product_gets_default_price_history(self, store, gateway, breads):
        row = gateway.insert(PRODUCTS, {"name": "Bare", "price": Decimal("3.00"), "category_id": breads.id})

        product = store.snapshot.product(row["id"])
        assert len(product.price_history) == 1
        assert product.price_history[0].price == Decimal("3.00")


class TestCatalogWrites:
    def test_add_product_seeds_price_history(self, sourdough):
        assert [e.price for e in sourdough.price_history] == [Decimal("20.00")]

    def test_price_change_appends_history(self, store, sourdough):
        updated = store.update_product(sourdough.id, {"price": "22.50"})

        assert updated.price == Decimal("22.50")
        assert [e.price for e in updated.price_history] == [Decimal("20.00"), Decimal("22.50")]

    def test_same_price_does_not_append_history(self, store, sourdough):
        updated = store.update_product(sourdough.id, {"price": "20.00", "description": "Crusty"})
        assert len(updated.price_history) == 1
        assert updated.description == "Crusty"

    def test_derived_fields_are_ignored(self, store, breads):
        product = store.add_product({
            "name": "Rye",
            "price": "18.00",
            "category_id": breads.id,
            "total_sold": 999,
        })
        assert product.total_sold == 0

    def test_unknown_category_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.add_product({"name": "Orphan", "price": "1.00", "category_id": 4242})

    def test_update_unknown_customer_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.update_customer(4242, {"name": "Nobody"})

    def test_gateway_errors_propagate(self, store):
        with pytest.raises(GatewayError):
            store.add_customer({"name": "No phone"})


class TestDeletionGuards:
    def test_category_with_products_is_refused(self, flaky, flaky_store, notices):
        breads = flaky_store.add_category({"name": "Breads"})
        flaky_store.add_product({"name": "Sourdough", "price": "20.00", "category_id": breads.id})

        assert flaky_store.delete_category(breads.id) is False
        assert flaky.deletes == []
        assert notices.severities == ["warning"]
        assert flaky_store.snapshot.category(breads.id) is not None

    def test_empty_category_is_deleted(self, flaky, flaky_store):
        cakes = flaky_store.add_category({"name": "Cakes"})

        assert flaky_store.delete_category(cakes.id) is True
        assert flaky.deletes == [(CATEGORIES, cakes.id)]
        assert flaky_store.snapshot.category(cakes.id) is None

    def test_customer_with_orders_is_refused(self, flaky, flaky_store, notices):
        breads = flaky_store.add_category({"name": "Breads"})
        loaf = flaky_store.add_product({"name": "Sourdough", "price": "20.00", "category_id": breads.id})
        ana = flaky_store.add_customer({"name": "Ana", "whatsapp": "+5511912345678"})
        _order(flaky_store, ana, (loaf, 1))

        assert flaky_store.delete_customer(ana.id) is False
        assert flaky.deletes == []
        assert notices.severities == ["warning"]

    def test_customer_without_orders_is_deleted(self, store, ana):
        assert store.delete_customer(ana.id) is True
        assert store.snapshot.customer(ana.id) is None

    def test_product_in_orders_is_deleted_with_info_notice(self, store, notices, sourdough, ana):
        order = _order(store, ana, (sourdough, 2))

        assert store.delete_product(sourdough.id) is True

        assert notices.severities == ["info"]
        kept = store.snapshot.order(order.id)
        assert kept.items[0].product_id is None
        assert kept.items[0].product is None
        assert kept.total == Decimal("40.00")


class TestOrders:
    def test_totals_from_items_fee_and_discounts(self, store, breads, ana):
        loaf = store.add_product({"name": "Sourdough", "price": "20.00", "category_id": breads.id})
        bun = store.add_product({"name": "Bun", "price": "3.00", "category_id": breads.id})

        order = store.add_order({
            "customer_id": ana.id,
            "delivery_fee": "5.00",
            "order_discount": "2.00",
            "items": [
                {"product_id": loaf.id, "quantity": 2, "item_discount": "1.50"},
                {"product_id": bun.id, "quantity": 3},
            ],
        })

        assert order.subtotal == Decimal("49.00")
        assert order.items_discount == Decimal("3.00")
        assert order.total == Decimal("49.00")
        expected = sum(i.final_unit_price * i.quantity for i in order.items) + order.delivery_fee - order.order_discount
        assert order.total == expected

    def test_stored_total_matches_components(self, store, gateway, sourdough, ana):
        order = _order(store, ana, (sourdough, 2), delivery_fee="5.00")

        row = gateway.get(ORDERS, order.id)
        assert row["subtotal"] == Decimal("40.00")
        assert row["total"] == Decimal("45.00")
        assert row["order_items"][0]["unit_price"] == Decimal("20.00")
        assert row["order_items"][0]["total"] == Decimal("40.00")

    def test_unit_price_is_historical(self, store, sourdough, ana):
        order = _order(store, ana, (sourdough, 1))
        store.update_product(sourdough.id, {"price": "25.00"})

        item = store.snapshot.order(order.id).items[0]
        assert item.unit_price == Decimal("20.00")
        assert item.product.price == Decimal("25.00")

    def test_order_requires_items(self, store, ana):
        with pytest.raises(ValidationError):
            store.add_order({"customer_id": ana.id, "items": []})

    def test_order_number_is_sequential(self, store, sourdough, ana):
        first = _order(store, ana, (sourdough, 1))
        second = _order(store, ana, (sourdough, 1))
        assert second.number == first.number + 1

    def test_cancel_forces_payment_cancelled(self, store, gateway, sourdough, ana):
        order = _order(store, ana, (sourdough, 1))
        store.update_order(order.id, {"status": "confirmed", "payment_status": "paid"})

        updated = store.update_order(order.id, {"status": "cancelled", "payment_status": "paid"})

        assert updated.payment_status == "cancelled"
        assert gateway.get(ORDERS, order.id)["payment_status"] == "cancelled"

    def test_delivered_stamps_completed_at(self, store, sourdough, ana):
        order = _order(store, ana, (sourdough, 1))
        updated = store.update_order(order.id, {"status": "delivered"})
        assert updated.completed_at is not None

    def test_backwards_transition_is_rejected(self, store, sourdough, ana):
        order = _order(store, ana, (sourdough, 1))
        store.update_order(order.id, {"status": "ready"})

        with pytest.raises(OrderLifecycleError):
            store.update_order(order.id, {"status": "confirmed"})

    def test_replacing_items_recomputes_totals_and_sales(self, store, breads, sourdough, ana):
        bun = store.add_product({"name": "Bun", "price": "3.00", "category_id": breads.id})
        order = _order(store, ana, (sourdough, 2))

        updated = store.update_order(order.id, {"items": [{"product_id": bun.id, "quantity": 5}]})

        assert updated.total == Decimal("15.00")
        assert store.snapshot.product(sourdough.id).total_sold == 0
        assert store.snapshot.product(bun.id).total_sold == 5

    def test_moving_order_recomputes_both_customers(self, store, sourdough, ana):
        bruno = store.add_customer({"name": "Bruno", "whatsapp": "+5511998765432"})
        order = _order(store, ana, (sourdough, 1))

        store.update_order(order.id, {"customer_id": bruno.id})

        assert store.snapshot.customer(ana.id).total_orders == 0
        assert store.snapshot.customer(bruno.id).total_orders == 1

    def test_delete_order_recomputes_aggregates(self, store, sourdough, ana):
        order = _order(store, ana, (sourdough, 3))
        assert store.snapshot.product(sourdough.id).total_sold == 3

        store.delete_order(order.id)

        assert store.snapshot.product(sourdough.id).total_sold == 0
        assert store.snapshot.customer(ana.id).total_orders == 0


class TestAggregates:
    def test_customer_totals_mixed_orders(self, store, breads, ana):
        hundred = store.add_product({"name": "Hamper", "price": "100.00", "category_id": breads.id})
        fifty = store.add_product({"name": "Panettone", "price": "50.00", "category_id": breads.id})
        thirty = store.add_product({"name": "Tart", "price": "30.00", "category_id": breads.id})

        delivered = _order(store, ana, (hundred, 1))
        store.update_order(delivered.id, {"status": "delivered", "payment_status": "paid"})
        _order(store, ana, (fifty, 1))
        cancelled = _order(store, ana, (thirty, 1))
        store.update_order(cancelled.id, {"status": "cancelled"})

        aggregates = store.update_customer_totals(ana.id)

        assert aggregates["completed_orders"] == 1
        assert aggregates["pending_orders"] == 1
        assert aggregates["cancelled_orders"] == 1
        assert aggregates["paid_spent"] == Decimal("100.00")
        assert aggregates["pending_spent"] == Decimal("50.00")
        assert aggregates["total_orders"] == 3

        customer = store.snapshot.customer(ana.id)
        assert customer.completed_orders == 1
        assert customer.paid_spent == Decimal("100.00")
        assert customer.pending_spent == Decimal("50.00")

    def test_cancelled_orders_do_not_count_as_sold(self, store, sourdough, ana):
        order = _order(store, ana, (sourdough, 4))
        store.update_order(order.id, {"status": "cancelled"})

        assert store.snapshot.product(sourdough.id).total_sold == 0

    def test_customer_totals_failure_is_logged_not_raised(self, flaky, flaky_store, caplog):
        ana = flaky_store.add_customer({"name": "Ana", "whatsapp": "+5511912345678"})
        flaky.fail_update_on = CUSTOMERS

        with caplog.at_level(logging.ERROR, logger="paneteria.tests"):
            assert flaky_store.update_customer_totals(ana.id) is None
        assert "Failed to recompute totals" in caplog.text

    def test_order_write_survives_failed_recomputation(self, flaky, flaky_store):
        breads = flaky_store.add_category({"name": "Breads"})
        loaf = flaky_store.add_product({"name": "Sourdough", "price": "20.00", "category_id": breads.id})
        ana = flaky_store.add_customer({"name": "Ana", "whatsapp": "+5511912345678"})
        flaky.fail_update_on = CUSTOMERS

        order = _order(flaky_store, ana, (loaf, 1))

        assert flaky_store.snapshot.order(order.id) is not None
        assert flaky_store.snapshot.customer(ana.id).total_orders == 0

    def test_product_sales_only_writes_changes(self, store, gateway, sourdough, ana):
        _order(store, ana, (sourdough, 2))
        writes = []
        gateway.subscribe(PRODUCTS, {"UPDATE"}, writes.append)

        assert store.update_product_sales() == {sourdough.id: 2}
        assert writes == []


class TestRealtime:
    def test_external_insert_triggers_refresh(self, store, gateway):
        row = gateway.insert(CUSTOMERS, {"name": "Walk-in", "whatsapp": "+5511900000000"})
        assert store.snapshot.customer(row["id"]) is not None

    def test_orders_are_not_subscribed(self, store, gateway):
        assert gateway.feed.subscriber_count(ORDERS) == 0
        assert gateway.feed.subscriber_count(PRODUCTS) == 1

    def test_closed_session_stops_refreshing(self, store, gateway):
        store.close_session()
        gateway.insert(CATEGORIES, {"name": "Late"})
        assert store.snapshot == Snapshot.empty()
        assert gateway.feed.subscriber_count() == 0


class TestEndToEnd:
    def test_breads_sourdough_ana(self, store):
        breads = store.add_category({"name": "Breads", "is_active": True})
        sourdough = store.add_product({"name": "Sourdough", "price": "20.00", "category_id": breads.id})
        ana = store.add_customer({"name": "Ana", "whatsapp": "+55 11 91234-5678"})

        order = store.add_order({
            "customer_id": ana.id,
            "delivery_fee": "5.00",
            "items": [{"product_id": sourdough.id, "quantity": 2}],
        })

        assert order.total == Decimal("45.00")
        assert order.payment_status == "pending"

        snapshot = store.snapshot
        assert snapshot.product(sourdough.id).total_sold == 2
        customer = snapshot.customer(ana.id)
        assert customer.total_orders == 1
        assert customer.pending_spent == Decimal("45.00")
        assert snapshot.most_sold_category.id == breads.id
        assert snapshot.category(breads.id).product_count == 1
