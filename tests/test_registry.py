from ecomevents.protocol import (
    ERROR_ALREADY_SUBSCRIBED,
    ERROR_INVALID_PATTERN,
    ERROR_NOT_SUBSCRIBED,
)
from ecomevents.registry import SubscriptionRegistry


def make_registry():
    registry = SubscriptionRegistry()
    registry.register("ecommerce/orders/*", "All Order Events")
    registry.register("ecommerce/inventory/low-stock", "Low Stock Alerts")
    registry.register("ecommerce/>", "All E-commerce Events")
    return registry


def test_new_entries_start_inactive():
    registry = SubscriptionRegistry()
    entry, err = registry.register("ecommerce/orders/*", "All Order Events")
    assert err is None
    assert entry.active is False
    assert registry.snapshot() == [("ecommerce/orders/*", "All Order Events", False)]


def test_duplicate_registration_is_reported_and_keeps_one_entry():
    registry = SubscriptionRegistry()
    registry.register("ecommerce/>", "first")
    registry.confirm("ecommerce/>")

    entry, err = registry.register("ecommerce/>", "second")

    assert entry is None
    assert err == ERROR_ALREADY_SUBSCRIBED
    assert len(registry) == 1
    assert registry.snapshot() == [("ecommerce/>", "first", True)]


def test_invalid_patterns_are_rejected_at_registration():
    registry = SubscriptionRegistry()
    assert registry.register("ecommerce/>/orders", "bad") == (None, ERROR_INVALID_PATTERN)
    assert registry.register("ecommerce/>/>", "bad") == (None, ERROR_INVALID_PATTERN)
    assert len(registry) == 0


def test_confirm_and_fail_toggle_active():
    registry = make_registry()
    assert registry.confirm("ecommerce/orders/*")
    assert registry.get("ecommerce/orders/*").active
    assert registry.fail("ecommerce/orders/*")
    assert not registry.get("ecommerce/orders/*").active


def test_confirm_and_fail_of_unknown_pattern_are_no_ops():
    registry = make_registry()
    before = registry.snapshot()
    assert registry.confirm("ecommerce/payments/*") is False
    assert registry.fail("ecommerce/payments/*") is False
    assert registry.snapshot() == before


def test_unregister_unknown_pattern_reports_not_subscribed():
    registry = make_registry()
    before = registry.snapshot()
    assert registry.unregister("never/registered") == (None, ERROR_NOT_SUBSCRIBED)
    assert registry.snapshot() == before


def test_unregister_inactive_pattern_reports_not_subscribed():
    registry = make_registry()
    assert registry.unregister("ecommerce/>") == (None, ERROR_NOT_SUBSCRIBED)
    assert "ecommerce/>" in registry


def test_unregister_active_pattern_removes_it():
    registry = make_registry()
    registry.confirm("ecommerce/>")
    entry, err = registry.unregister("ecommerce/>")
    assert err is None
    assert entry.pattern == "ecommerce/>"
    assert "ecommerce/>" not in registry


def test_unregister_all_only_touches_active_entries():
    registry = make_registry()
    registry.confirm("ecommerce/orders/*")
    registry.confirm("ecommerce/>")

    removed = registry.unregister_all()

    assert [e.pattern for e in removed] == ["ecommerce/orders/*", "ecommerce/>"]
    assert registry.snapshot() == [("ecommerce/inventory/low-stock", "Low Stock Alerts", False)]


def test_matching_entries_ignore_confirmation_and_keep_registration_order():
    registry = make_registry()
    registry.confirm("ecommerce/>")

    orders = registry.matching_entries("ecommerce/orders/created")
    low = registry.matching_entries("ecommerce/inventory/low-stock")
    other = registry.matching_entries("sample/topic")

    assert [e.pattern for e in orders] == ["ecommerce/orders/*", "ecommerce/>"]
    assert [e.pattern for e in low] == ["ecommerce/inventory/low-stock", "ecommerce/>"]
    assert other == []


def test_clear_forgets_everything():
    registry = make_registry()
    registry.clear()
    assert registry.snapshot() == []


def test_discard_removes_inactive_entries():
    registry = make_registry()
    assert registry.discard("ecommerce/>")
    assert registry.discard("ecommerce/>") is False
    assert "ecommerce/>" not in registry
