import asyncio
import random

import pytest

from ecomevents.catalog import Catalog
from ecomevents.config import Settings
from ecomevents.errors import SimulationError
from ecomevents.simulator import WorkflowSimulator


def make_simulator(publisher, seed=1, **overrides):
    overrides.setdefault("payment_delay_sec", 0.01)
    settings = Settings(**overrides)
    return WorkflowSimulator(publisher, catalog=Catalog(), settings=settings, rng=random.Random(seed))


def test_empty_catalog_is_rejected(recording_publisher):
    with pytest.raises(SimulationError):
        WorkflowSimulator(recording_publisher, catalog=Catalog(products=[]))
    with pytest.raises(SimulationError):
        WorkflowSimulator(recording_publisher, catalog=Catalog(customers=[]))


def test_drop_into_low_stock_emits_update_then_alert(recording_publisher):
    sim = make_simulator(recording_publisher)
    product = sim.catalog.product("p1001")

    sim.apply_inventory_change(product, -45)

    assert product.stock == 5
    assert recording_publisher.types() == ["InventoryUpdated", "LowStock"]
    updated = recording_publisher.sent[0][1].data
    assert updated == {
        "productId": "p1001",
        "productName": "Smartphone",
        "previousStock": 50,
        "currentStock": 5,
        "change": -45,
    }
    low = recording_publisher.sent[1][1].data
    assert low["currentStock"] == 5
    assert low["threshold"] == 10


def test_stock_is_floored_at_zero_and_reported_out_of_stock(recording_publisher):
    sim = make_simulator(recording_publisher)
    product = sim.catalog.product("p1005")

    sim.apply_inventory_change(product, -40)

    assert product.stock == 0
    assert recording_publisher.types() == ["InventoryUpdated", "OutOfStock"]
    assert recording_publisher.sent[0][1].data["currentStock"] == 0
    assert recording_publisher.sent[0][0] == "ecommerce/inventory/updated"
    assert recording_publisher.sent[1][0] == "ecommerce/inventory/out-of-stock"


def test_healthy_stock_emits_only_the_update(recording_publisher):
    sim = make_simulator(recording_publisher)
    sim.apply_inventory_change(sim.catalog.product("p1003"), 7)
    assert recording_publisher.types() == ["InventoryUpdated"]


def test_random_inventory_changes_keep_stock_valid(recording_publisher):
    sim = make_simulator(recording_publisher, seed=42)
    for _ in range(500):
        before = len(recording_publisher.sent)
        sim.simulate_inventory_change()
        emitted = [e.event_type for _, e in recording_publisher.sent[before:]]
        assert emitted[0] == "InventoryUpdated"
        assert not ("LowStock" in emitted and "OutOfStock" in emitted)
        assert all(p.stock >= 0 for p in sim.catalog.products)


def test_registration_never_reuses_seeded_customer_ids(recording_publisher):
    sim = make_simulator(recording_publisher)
    seeded = set(sim.catalog.customer_ids())
    for _ in range(50):
        sim.simulate_registration()
    for topic, envelope in recording_publisher.sent:
        assert topic == "ecommerce/customers/registered"
        assert envelope.data["customerId"] not in seeded
        assert envelope.data["email"] == f"customer{envelope.data['customerId']}@example.com"


def test_order_ids_are_unique(recording_publisher):
    sim = make_simulator(recording_publisher)
    ids = {sim.new_order_id() for _ in range(500)}
    assert len(ids) == 500
    assert all(i.startswith("ord-") for i in ids)


def test_order_totals_add_up(recording_publisher):
    async def scenario():
        sim = make_simulator(recording_publisher, seed=3)
        orders = [sim.simulate_order() for _ in range(20)]
        sim.stop()
        return orders

    orders = asyncio.run(scenario())
    for order in orders:
        assert 1 <= len(order.items) <= 3
        for item in order.items:
            assert 1 <= item.quantity <= 3
            assert item.subtotal == round(item.unit_price * item.quantity, 2)
        assert order.total_amount == round(sum(i.subtotal for i in order.items), 2)


def test_successful_settlement_is_correlated(recording_publisher):
    async def scenario():
        sim = make_simulator(recording_publisher, payment_success_rate=1.0)
        order = sim.simulate_order()
        assert sim.pending_orders() == [order.order_id]
        await asyncio.sleep(0.05)
        assert sim.pending_orders() == []
        return order

    order = asyncio.run(scenario())

    assert recording_publisher.types() == ["OrderCreated", "PaymentAuthorized", "OrderUpdated"]
    assert {e.correlation_id for _, e in recording_publisher.sent} == {order.order_id}
    authorized = recording_publisher.sent[1][1].data
    assert authorized["amount"] == order.total_amount
    assert authorized["paymentMethod"] == "credit_card"
    assert authorized["transactionId"].startswith("tx-")
    updated = recording_publisher.sent[2][1].data
    assert (updated["previousStatus"], updated["currentStatus"]) == ("created", "paid")
    assert updated["updateReason"] == "payment_received"


def test_failed_settlement_cancels_the_order(recording_publisher):
    async def scenario():
        sim = make_simulator(recording_publisher, payment_success_rate=0.0)
        order = sim.simulate_order()
        await asyncio.sleep(0.05)
        return order

    order = asyncio.run(scenario())

    assert recording_publisher.types() == ["OrderCreated", "PaymentFailed", "OrderCancelled"]
    assert {e.correlation_id for _, e in recording_publisher.sent} == {order.order_id}
    failed = recording_publisher.sent[1][1].data
    assert failed["failureReason"] == "insufficient_funds"
    cancelled = recording_publisher.sent[2][1].data
    assert cancelled["cancellationReason"] == "payment_failed"
    assert cancelled["previousStatus"] == "created"


def test_stop_cancels_pending_settlements(recording_publisher):
    async def scenario():
        sim = make_simulator(recording_publisher, payment_success_rate=1.0)
        sim.simulate_order()
        sim.simulate_order()
        sim.stop()
        await asyncio.sleep(0.05)
        return sim

    sim = asyncio.run(scenario())

    assert sim.pending_orders() == []
    assert recording_publisher.types() == ["OrderCreated", "OrderCreated"]


def test_run_forever_steps_until_stopped(recording_publisher):
    async def scenario():
        sim = make_simulator(recording_publisher, seed=5, payment_delay_sec=60)
        task = sim.start(0.001)
        assert sim.start(0.001) is task
        await asyncio.sleep(0.05)
        assert sim.running
        sim.stop()
        await asyncio.sleep(0.01)
        return sim, task

    sim, task = asyncio.run(scenario())

    assert task.cancelled()
    assert not sim.running
    assert len(recording_publisher.sent) > 0


def test_order_ids_from_earlier_milliseconds_are_forgotten(recording_publisher, monkeypatch):
    clock = [1]
    monkeypatch.setattr("ecomevents.simulator._millis", lambda: clock[0])
    sim = make_simulator(recording_publisher)

    first = {sim.new_order_id() for _ in range(50)}
    clock[0] = 2
    later = sim.new_order_id()

    assert len(first) == 50
    assert all(order_id.startswith("ord-1-") for order_id in first)
    assert later.startswith("ord-2-")
    assert sim._order_ids == {later}
