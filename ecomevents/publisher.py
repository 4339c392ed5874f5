"""Event publisher: wraps domain events in envelopes and hands them to the transport."""

from typing import Callable, Dict, List, Optional

from ecomevents.envelope import Envelope
from ecomevents.errors import TransportError
from ecomevents.events import DomainEvent
from ecomevents.observability import Metrics, get_logger
from ecomevents.protocol import encode_envelope
from ecomevents.transport import SessionListener, Transport


class EventPublisher(SessionListener):
    """
    Publishing role. Publish failures are logged and counted per envelope
    and never raised, so a simulation loop keeps going through them.
    """

    def __init__(
        self,
        publisher_id: str,
        transport: Transport,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._publisher_id = publisher_id
        self._transport = transport
        self._metrics = metrics or Metrics()
        self._logger = get_logger(f"ecomevents.publisher.{publisher_id}")
        self._on_connected: List[Callable[[], None]] = []
        self._on_disconnected: List[Callable[[], None]] = []
        transport.set_listener(self)

    @property
    def publisher_id(self) -> str:
        return self._publisher_id

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    def when_connected(self, callback: Callable[[], None]) -> None:
        """Run callback on every successful connect (e.g. start the simulator)."""
        self._on_connected.append(callback)

    def when_disconnected(self, callback: Callable[[], None]) -> None:
        self._on_disconnected.append(callback)

    def publish(
        self,
        event: DomainEvent,
        correlation_id: Optional[str] = None,
    ) -> Optional[Envelope]:
        """Envelope the event and send it on the event's topic. Returns the envelope, or None on failure."""
        envelope = Envelope.from_event(event, correlation_id=correlation_id)
        if self.send_envelope(event.topic, envelope):
            return envelope
        return None

    def send_envelope(self, topic: str, envelope: Envelope) -> bool:
        if not self._transport.connected:
            self._logger.warning(
                "publish_skipped_not_connected",
                extra={"topic": topic, "event_type": envelope.event_type},
            )
            self._metrics.increment("publish_failed", label=topic)
            return False
        body, properties = encode_envelope(envelope)
        return self.send_raw(topic, body, properties, event_type=envelope.event_type)

    def send_raw(
        self,
        topic: str,
        body: str,
        properties: Optional[Dict[str, str]] = None,
        event_type: Optional[str] = None,
    ) -> bool:
        """Send an arbitrary body (plain-text samples go through here too)."""
        try:
            self._transport.send(topic, body, properties or {})
        except TransportError as e:
            self._logger.error(
                "publish_failed",
                extra={"topic": topic, "event_type": event_type, "error": str(e)},
            )
            self._metrics.increment("publish_failed", label=topic)
            return False
        self._metrics.increment("published", label=topic)
        self._logger.info(
            "published",
            extra={
                "topic": topic,
                "event_type": event_type,
                "correlation_id": (properties or {}).get("correlationId"),
                "publisher_id": self._publisher_id,
            },
        )
        self._logger.debug(body)
        return True

    # ---- SessionListener ----

    def on_up(self) -> None:
        self._logger.info("connected", extra={"publisher_id": self._publisher_id})
        for callback in list(self._on_connected):
            callback()

    def on_connect_failed(self, reason: str) -> None:
        self._logger.error("connect_failed", extra={"reason": reason})

    def on_disconnected(self) -> None:
        self._logger.info("disconnected", extra={"publisher_id": self._publisher_id})
        for callback in list(self._on_disconnected):
            callback()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._publisher_id!r})"
