"""Event subscriber: declares pattern subscriptions and renders whatever arrives."""

from typing import List, Optional, Tuple

from ecomevents.dispatch import Dispatcher, Rendering
from ecomevents.errors import TransportError
from ecomevents.observability import Metrics, get_logger
from ecomevents.protocol import ERROR_ALREADY_SUBSCRIBED, ERROR_NOT_CONNECTED, ERROR_NOT_SUBSCRIBED
from ecomevents.registry import SubscriptionEntry, SubscriptionRegistry
from ecomevents.topics import ALL_ECOMMERCE, Category, EventKind
from ecomevents.transport import SessionListener, Transport, WireMessage

DEFAULT_SUBSCRIPTIONS: List[Tuple[str, str]] = [
    (Category.ORDERS.wildcard(), "All Order Events"),
    (EventKind.INVENTORY_LOW_STOCK.topic, "Low Stock Alerts"),
    (EventKind.INVENTORY_OUT_OF_STOCK.topic, "Out of Stock Alerts"),
    (Category.PAYMENTS.wildcard(), "All Payment Events"),
    (EventKind.CUSTOMER_REGISTERED.topic, "New Customer Registrations"),
    (ALL_ECOMMERCE, "All E-commerce Events (for logging)"),
]


class EventSubscriber(SessionListener):
    """
    Subscribing role. Owns the subscription registry and the dispatcher;
    session notifications flip entries active/inactive, inbound messages go
    to the dispatcher and the resulting renderings are logged.
    """

    def __init__(
        self,
        subscriber_id: str,
        transport: Transport,
        subscriptions: Optional[List[Tuple[str, str]]] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._subscriber_id = subscriber_id
        self._transport = transport
        self._metrics = metrics or Metrics()
        self._subscriptions = list(subscriptions if subscriptions is not None else DEFAULT_SUBSCRIPTIONS)
        self._registry = SubscriptionRegistry()
        self._dispatcher = Dispatcher(self._registry, self._metrics)
        self._dispatcher.add_sink(self._log_rendering)
        self._logger = get_logger(f"ecomevents.subscriber.{subscriber_id}")
        transport.set_listener(self)
        transport.on_message(self.on_message)

    @property
    def subscriber_id(self) -> str:
        return self._subscriber_id

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    def subscribe(self, pattern: str, description: str) -> Optional[str]:
        """Register and request a subscription. Returns None or an error code (already logged)."""
        if not self._transport.connected:
            self._logger.warning("subscribe_skipped_not_connected", extra={"pattern": pattern})
            return ERROR_NOT_CONNECTED
        _, err = self._registry.register(pattern, description)
        if err == ERROR_ALREADY_SUBSCRIBED:
            self._logger.info("already_subscribed", extra={"pattern": pattern})
            return err
        if err is not None:
            self._logger.error("subscribe_rejected", extra={"pattern": pattern, "error": err})
            return err
        self._logger.info("subscribing", extra={"pattern": pattern, "description": description})
        try:
            self._transport.subscribe(pattern)
        except TransportError as e:
            self._registry.discard(pattern)
            self._logger.error("subscribe_failed", extra={"pattern": pattern, "error": str(e)})
            return ERROR_NOT_CONNECTED
        return None

    def setup_subscriptions(self) -> None:
        for pattern, description in self._subscriptions:
            self.subscribe(pattern, description)

    def unsubscribe(self, pattern: str) -> Optional[str]:
        """Returns None or an error code (already logged)."""
        if not self._transport.connected:
            self._logger.warning("unsubscribe_skipped_not_connected", extra={"pattern": pattern})
            return ERROR_NOT_CONNECTED
        entry = self._registry.get(pattern)
        if entry is None or not entry.active:
            self._logger.warning("not_subscribed", extra={"pattern": pattern})
            return ERROR_NOT_SUBSCRIBED
        self._logger.info("unsubscribing", extra={"pattern": pattern})
        try:
            self._transport.unsubscribe(pattern)
        except TransportError as e:
            self._logger.error("unsubscribe_failed", extra={"pattern": pattern, "error": str(e)})
        self._registry.unregister(pattern)
        return None

    def unsubscribe_all(self) -> List[str]:
        """Unsubscribe every active pattern; returns the patterns dropped."""
        if not self._transport.connected:
            return []
        return [p for p in self._registry.active_patterns() if self.unsubscribe(p) is None]

    async def disconnect(self) -> None:
        """Orderly shutdown: drop subscriptions first, then the session."""
        self.unsubscribe_all()
        await self._transport.disconnect()

    def status_report(self) -> str:
        lines = ["Current Subscriptions:", "-" * 35]
        snapshot = self._registry.snapshot()
        if not snapshot:
            lines.append("No subscriptions.")
        for pattern, description, active in snapshot:
            lines.append(f"[{'x' if active else ' '}] {pattern} - {description}")
        lines.append("-" * 35)
        return "\n".join(lines)

    def show_subscriptions(self) -> None:
        self._logger.info("\n" + self.status_report())

    def on_message(self, message: WireMessage) -> Rendering:
        return self._dispatcher.on_inbound(message)

    def _log_rendering(self, rendering: Rendering) -> None:
        self._logger.info(
            "\n" + rendering.to_text(),
            extra={"matched": len(rendering.matched)},
        )

    # ---- SessionListener ----

    def on_up(self) -> None:
        self._logger.info("connected", extra={"subscriber_id": self._subscriber_id})
        self.setup_subscriptions()

    def on_connect_failed(self, reason: str) -> None:
        self._logger.error("connect_failed", extra={"reason": reason})

    def on_disconnected(self) -> None:
        self._registry.clear()
        self._logger.info("disconnected", extra={"subscriber_id": self._subscriber_id})

    def on_subscription_ok(self, pattern: str) -> None:
        if self._registry.confirm(pattern):
            entry: SubscriptionEntry = self._registry.get(pattern)
            self._logger.info(
                "subscription_confirmed",
                extra={"pattern": pattern, "description": entry.description},
            )

    def on_subscription_error(self, pattern: str, reason: str) -> None:
        self._registry.fail(pattern)
        self._logger.error("subscription_failed", extra={"pattern": pattern, "reason": reason})

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._subscriber_id!r})"
