"""Domain event variants. Field names are snake_case in Python, camelCase on the wire."""

from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ecomevents.topics import EventKind


class DomainEvent(BaseModel):
    """Base for all event payloads. EVENT_TYPE is the envelope tag, KIND the publish topic."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    EVENT_TYPE: ClassVar[str] = ""
    KIND: ClassVar[EventKind]

    @property
    def topic(self) -> str:
        return self.KIND.topic

    def to_data(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---- Customers ----

class CustomerRegistered(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "CustomerRegistered"
    KIND: ClassVar[EventKind] = EventKind.CUSTOMER_REGISTERED

    customer_id: str
    name: str
    email: str
    registration_date: str


# ---- Inventory ----

class InventoryUpdated(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "InventoryUpdated"
    KIND: ClassVar[EventKind] = EventKind.INVENTORY_UPDATED

    product_id: str
    product_name: str
    previous_stock: int
    current_stock: int
    change: int


class LowStock(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "LowStock"
    KIND: ClassVar[EventKind] = EventKind.INVENTORY_LOW_STOCK

    product_id: str
    product_name: str
    current_stock: int
    threshold: int


class OutOfStock(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "OutOfStock"
    KIND: ClassVar[EventKind] = EventKind.INVENTORY_OUT_OF_STOCK

    product_id: str
    product_name: str
    last_sold: str


# ---- Orders ----

class OrderItem(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    product_id: str
    product_name: str
    quantity: int
    unit_price: float
    subtotal: float


class OrderCreated(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "OrderCreated"
    KIND: ClassVar[EventKind] = EventKind.ORDER_CREATED

    order_id: str
    customer_id: str
    customer_name: str
    order_date: str
    items: List[OrderItem]
    total_amount: float
    status: str = "created"


class OrderUpdated(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "OrderUpdated"
    KIND: ClassVar[EventKind] = EventKind.ORDER_UPDATED

    order_id: str
    previous_status: str
    current_status: str
    update_reason: str


class OrderCancelled(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "OrderCancelled"
    KIND: ClassVar[EventKind] = EventKind.ORDER_CANCELLED

    order_id: str
    previous_status: str
    cancellation_reason: str


# ---- Payments ----

class PaymentAuthorized(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "PaymentAuthorized"
    KIND: ClassVar[EventKind] = EventKind.PAYMENT_AUTHORIZED

    order_id: str
    customer_id: str
    amount: float
    payment_method: str = "credit_card"
    transaction_id: str


class PaymentFailed(DomainEvent):
    EVENT_TYPE: ClassVar[str] = "PaymentFailed"
    KIND: ClassVar[EventKind] = EventKind.PAYMENT_FAILED

    order_id: str
    customer_id: str
    amount: float
    payment_method: str = "credit_card"
    failure_reason: str


EVENT_TYPES: Dict[str, Type[DomainEvent]] = {
    cls.EVENT_TYPE: cls
    for cls in (
        CustomerRegistered,
        InventoryUpdated,
        LowStock,
        OutOfStock,
        OrderCreated,
        OrderUpdated,
        OrderCancelled,
        PaymentAuthorized,
        PaymentFailed,
    )
}

EVENTS_BY_KIND: Dict[EventKind, Type[DomainEvent]] = {cls.KIND: cls for cls in EVENT_TYPES.values()}


def model_for(kind: Optional[EventKind]) -> Optional[Type[DomainEvent]]:
    """Payload model published on a leaf topic, if any."""
    if kind is None:
        return None
    return EVENTS_BY_KIND.get(kind)
