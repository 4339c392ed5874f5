"""
Dispatch and presentation of inbound messages.

Every inbound message is rendered. The topic picks a category (by base
path) and, for known leaf topics, a tailored set of lines; the
subscription registry only reports which patterns the topic satisfied.
Bodies that are not JSON, or that do not fit the expected event shape, fall
back to a generic rendering and are flagged on the result, never raised.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from ecomevents.envelope import Envelope, iso_ms, utc_now
from ecomevents.events import (
    CustomerRegistered,
    DomainEvent,
    InventoryUpdated,
    LowStock,
    OrderCancelled,
    OrderCreated,
    OrderUpdated,
    OutOfStock,
    PaymentAuthorized,
    PaymentFailed,
    model_for,
)
from ecomevents.observability import Metrics, get_logger
from ecomevents.protocol import ERROR_PAYLOAD_INVALID, ERROR_PAYLOAD_PARSE, decode_body
from ecomevents.registry import SubscriptionRegistry
from ecomevents.topics import Category, EventKind, resolve_category, resolve_kind
from ecomevents.transport import WireMessage

SEPARATOR_LINE = "-" * 35


def money(amount: float) -> str:
    return f"${amount:.2f}"


@dataclass
class Rendering:
    """Result of handling one inbound message."""
    topic: str
    category: Category
    kind: Optional[EventKind]
    event_type: Optional[str]
    correlation_id: Optional[str]
    received_at: str
    matched: List[str] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def heading(self) -> str:
        return f"{self.category.label} EVENT:"

    def to_text(self) -> str:
        """Human-readable block, one indented line per detail."""
        out = [self.heading]
        out.append(f"   Topic: {self.topic}")
        out.append(f"   Time: {self.received_at}")
        if self.event_type is not None:
            out.append(f"   Type: {self.event_type}")
        if self.correlation_id is not None:
            out.append(f"   Correlation ID: {self.correlation_id}")
        out.extend(f"   {line}" for line in self.lines)
        if self.matched:
            out.append(f"   Matched: {', '.join(self.matched)}")
        out.append(SEPARATOR_LINE)
        return "\n".join(out)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "category": self.category.name.lower(),
            "kind": self.kind.name.lower() if self.kind else None,
            "event_type": self.event_type,
            "correlation_id": self.correlation_id,
            "received_at": self.received_at,
            "matched": list(self.matched),
            "lines": list(self.lines),
            "error": self.error,
        }


# ---- Tailored renderers (one per leaf topic that has a payload model) ----

def _order_created(e: OrderCreated) -> List[str]:
    return [
        f"Order ID: {e.order_id}",
        f"Customer: {e.customer_name}",
        f"Total: {money(e.total_amount)}",
        f"Items: {len(e.items)}",
    ]


def _order_updated(e: OrderUpdated) -> List[str]:
    return [
        f"Order ID: {e.order_id}",
        f"Status Change: {e.previous_status} → {e.current_status}",
        f"Reason: {e.update_reason}",
    ]


def _order_cancelled(e: OrderCancelled) -> List[str]:
    return [
        f"Order ID: {e.order_id}",
        f"Previous Status: {e.previous_status}",
        f"Reason: {e.cancellation_reason}",
    ]


def _inventory_updated(e: InventoryUpdated) -> List[str]:
    return [
        f"Product: {e.product_name}",
        f"Stock Change: {e.previous_stock} → {e.current_stock}",
    ]


def _low_stock(e: LowStock) -> List[str]:
    return [
        "LOW STOCK ALERT",
        f"Product: {e.product_name}",
        f"Current Stock: {e.current_stock}",
        f"Threshold: {e.threshold}",
    ]


def _out_of_stock(e: OutOfStock) -> List[str]:
    return [
        "OUT OF STOCK ALERT",
        f"Product: {e.product_name}",
        f"Last Sold: {e.last_sold}",
    ]


def _payment_authorized(e: PaymentAuthorized) -> List[str]:
    return [
        "PAYMENT AUTHORIZED",
        f"Order ID: {e.order_id}",
        f"Amount: {money(e.amount)}",
        f"Transaction ID: {e.transaction_id}",
    ]


def _payment_failed(e: PaymentFailed) -> List[str]:
    return [
        "PAYMENT FAILED",
        f"Order ID: {e.order_id}",
        f"Amount: {money(e.amount)}",
        f"Reason: {e.failure_reason}",
    ]


def _customer_registered(e: CustomerRegistered) -> List[str]:
    return [
        "NEW CUSTOMER",
        f"ID: {e.customer_id}",
        f"Name: {e.name}",
        f"Email: {e.email}",
    ]


RENDERERS: Dict[EventKind, Callable[[Any], List[str]]] = {
    EventKind.ORDER_CREATED: _order_created,
    EventKind.ORDER_UPDATED: _order_updated,
    EventKind.ORDER_CANCELLED: _order_cancelled,
    EventKind.INVENTORY_UPDATED: _inventory_updated,
    EventKind.INVENTORY_LOW_STOCK: _low_stock,
    EventKind.INVENTORY_OUT_OF_STOCK: _out_of_stock,
    EventKind.PAYMENT_AUTHORIZED: _payment_authorized,
    EventKind.PAYMENT_FAILED: _payment_failed,
    EventKind.CUSTOMER_REGISTERED: _customer_registered,
}


def _generic(data: Any) -> List[str]:
    return [f"Data: {json.dumps(data, sort_keys=True, default=str)}"]


def _property(message: WireMessage, name: str) -> Optional[str]:
    """Out-of-band property as a string; properties that are not a mapping are ignored."""
    properties = message.properties
    if not isinstance(properties, Mapping):
        return None
    value = properties.get(name)
    return None if value is None else str(value)


class Dispatcher:
    """Turns inbound messages into Renderings and hands each one to the sinks."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._registry = registry
        self._metrics = metrics or Metrics()
        self._sinks: List[Callable[[Rendering], None]] = []
        self._logger = get_logger("ecomevents.dispatch")

    def add_sink(self, sink: Callable[[Rendering], None]) -> None:
        self._sinks.append(sink)

    def on_inbound(self, message: WireMessage) -> Rendering:
        topic = message.topic
        category = resolve_category(topic)
        kind = resolve_kind(topic)
        rendering = Rendering(
            topic=topic,
            category=category,
            kind=kind,
            event_type=None,
            correlation_id=_property(message, "correlationId"),
            received_at=iso_ms(utc_now()),
            matched=[e.pattern for e in self._registry.matching_entries(topic)],
        )
        self._metrics.increment("received", label=category.name.lower())
        if category is Category.UNCATEGORIZED:
            self._metrics.increment("uncategorized")
            self._logger.warning("uncategorized_topic", extra={"topic": topic})

        content, parse_error = decode_body(message.body)
        if parse_error is not None:
            self._metrics.increment("parse_errors")
            self._logger.warning("payload_parse_failed", extra={"topic": topic, "error": parse_error})
            rendering.error = ERROR_PAYLOAD_PARSE
            rendering.lines = [f"Raw: {content}"]
            return self._emit(rendering)

        try:
            envelope = Envelope.from_dict(content)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            return self._invalid(rendering, content, f"not an event envelope: {e!s}")

        rendering.event_type = envelope.event_type
        if envelope.correlation_id is not None:
            rendering.correlation_id = envelope.correlation_id

        model = model_for(kind)
        renderer = RENDERERS.get(kind) if kind is not None else None
        if model is None or renderer is None:
            rendering.lines = _generic(envelope.data)
            return self._emit(rendering)
        try:
            event: DomainEvent = model.model_validate(envelope.data)
        except ValidationError as e:
            return self._invalid(rendering, envelope.data, f"{e.error_count()} invalid field(s)")
        rendering.lines = renderer(event)
        return self._emit(rendering)

    def _invalid(self, rendering: Rendering, data: Any, reason: str) -> Rendering:
        self._metrics.increment("invalid_payloads")
        self._logger.warning("payload_invalid", extra={"topic": rendering.topic, "error": reason})
        rendering.error = ERROR_PAYLOAD_INVALID
        rendering.lines = _generic(data)
        return self._emit(rendering)

    def _emit(self, rendering: Rendering) -> Rendering:
        for sink in self._sinks:
            try:
                sink(rendering)
            except Exception as e:
                self._logger.exception("sink_failed", extra={"topic": rendering.topic, "error": str(e)})
        return rendering
