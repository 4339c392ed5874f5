"""E-commerce topic namespace: base paths (categories) and the known leaf topics."""

from enum import Enum
from typing import Dict, Optional

from ecomevents.matcher import MULTI_WILDCARD, SEPARATOR, SINGLE_WILDCARD

ROOT = "ecommerce"


class Category(Enum):
    """Domain category of a topic, identified by its base path."""

    ORDERS = "ecommerce/orders"
    INVENTORY = "ecommerce/inventory"
    CUSTOMERS = "ecommerce/customers"
    PAYMENTS = "ecommerce/payments"
    UNCATEGORIZED = ""

    @property
    def base(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        """Heading used when rendering events of this category."""
        return _LABELS[self]

    def wildcard(self) -> str:
        """Pattern matching exactly one segment under this base."""
        return f"{self.value}{SEPARATOR}{SINGLE_WILDCARD}"


class EventKind(Enum):
    """Every leaf topic of the namespace. Value is the full topic string."""

    ORDER_CREATED = "ecommerce/orders/created"
    ORDER_UPDATED = "ecommerce/orders/updated"
    ORDER_CANCELLED = "ecommerce/orders/cancelled"
    ORDER_SHIPPED = "ecommerce/orders/shipped"
    ORDER_DELIVERED = "ecommerce/orders/delivered"

    INVENTORY_UPDATED = "ecommerce/inventory/updated"
    INVENTORY_LOW_STOCK = "ecommerce/inventory/low-stock"
    INVENTORY_OUT_OF_STOCK = "ecommerce/inventory/out-of-stock"
    INVENTORY_RESTOCKED = "ecommerce/inventory/restocked"

    CUSTOMER_REGISTERED = "ecommerce/customers/registered"
    CUSTOMER_LOGGED_IN = "ecommerce/customers/logged-in"
    CUSTOMER_PROFILE_UPDATED = "ecommerce/customers/profile-updated"

    PAYMENT_AUTHORIZED = "ecommerce/payments/authorized"
    PAYMENT_CAPTURED = "ecommerce/payments/captured"
    PAYMENT_FAILED = "ecommerce/payments/failed"
    PAYMENT_REFUNDED = "ecommerce/payments/refunded"

    @property
    def topic(self) -> str:
        return self.value

    @property
    def category(self) -> Category:
        return resolve_category(self.value)


ALL_ECOMMERCE = f"{ROOT}{SEPARATOR}{MULTI_WILDCARD}"

_LABELS: Dict[Category, str] = {
    Category.ORDERS: "ORDER",
    Category.INVENTORY: "INVENTORY",
    Category.CUSTOMERS: "CUSTOMER",
    Category.PAYMENTS: "PAYMENT",
    Category.UNCATEGORIZED: "UNCATEGORIZED",
}

_BASES = sorted(
    (c for c in Category if c is not Category.UNCATEGORIZED),
    key=lambda c: len(c.value),
    reverse=True,
)
_KINDS_BY_TOPIC: Dict[str, EventKind] = {k.value: k for k in EventKind}


def resolve_category(topic: str) -> Category:
    """Longest base path that is the topic itself or a whole-segment prefix of it."""
    for category in _BASES:
        base = category.value
        if topic == base or topic.startswith(base + SEPARATOR):
            return category
    return Category.UNCATEGORIZED


def resolve_kind(topic: str) -> Optional[EventKind]:
    """Leaf kind for an exact known topic, or None."""
    return _KINDS_BY_TOPIC.get(topic)
