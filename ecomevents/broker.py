"""In-process broker: routes published messages to clients by subscription pattern."""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ecomevents.errors import TransportError
from ecomevents.matcher import matches, validate_pattern, validate_topic
from ecomevents.observability import Metrics, get_logger
from ecomevents.protocol import (
    ERROR_ALREADY_SUBSCRIBED,
    ERROR_INVALID_PATTERN,
    ERROR_INVALID_TOPIC,
    ERROR_NOT_CONNECTED,
    ERROR_NOT_SUBSCRIBED,
)
from ecomevents.transport import Transport, WireMessage


class BrokerClient(ABC):
    """Anything the broker can deliver to (a local transport, a WebSocket connection)."""

    @property
    @abstractmethod
    def client_id(self) -> str:
        pass

    @abstractmethod
    def deliver(self, message: WireMessage) -> None:
        """Called by Broker.route() for every matching message. Must not block."""
        pass

    def broker_closed(self) -> None:
        """Called when the broker shuts down while this client is attached."""
        pass


class Broker:
    """Clients and their patterns. A message reaches a client once, however many of its patterns match."""

    def __init__(self, metrics: Optional[Metrics] = None) -> None:
        self._clients: Dict[str, BrokerClient] = {}
        self._patterns: Dict[str, List[str]] = {}
        self._metrics = metrics or Metrics()
        self._closed = False
        self._logger = get_logger("ecomevents.broker")

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, client: BrokerClient) -> Optional[str]:
        """Register a client. Returns NOT_CONNECTED if the broker is closed."""
        if self._closed:
            return ERROR_NOT_CONNECTED
        self._clients[client.client_id] = client
        self._patterns.setdefault(client.client_id, [])
        self._metrics.set_gauge("clients", len(self._clients))
        self._logger.info("client_attached", extra={"client_id": client.client_id})
        return None

    def detach(self, client_id: str) -> bool:
        """Remove a client and all of its subscriptions."""
        if self._clients.pop(client_id, None) is None:
            return False
        self._patterns.pop(client_id, None)
        self._metrics.set_gauge("clients", len(self._clients))
        self._logger.info("client_detached", extra={"client_id": client_id})
        return True

    def close(self) -> None:
        """Stop accepting clients and drop the attached ones."""
        self._closed = True
        clients = list(self._clients.values())
        for client in clients:
            self.detach(client.client_id)
            client.broker_closed()

    def subscribe(self, client_id: str, pattern: str) -> Optional[str]:
        """Returns None on success or an error code."""
        if client_id not in self._clients:
            return ERROR_NOT_CONNECTED
        if validate_pattern(pattern) is not None:
            return ERROR_INVALID_PATTERN
        patterns = self._patterns[client_id]
        if pattern in patterns:
            return ERROR_ALREADY_SUBSCRIBED
        patterns.append(pattern)
        self._logger.info("subscribed", extra={"client_id": client_id, "pattern": pattern})
        return None

    def unsubscribe(self, client_id: str, pattern: str) -> Optional[str]:
        """Returns None on success or an error code."""
        patterns = self._patterns.get(client_id)
        if patterns is None:
            return ERROR_NOT_CONNECTED
        if pattern not in patterns:
            return ERROR_NOT_SUBSCRIBED
        patterns.remove(pattern)
        self._logger.info("unsubscribed", extra={"client_id": client_id, "pattern": pattern})
        return None

    def patterns_for(self, client_id: str) -> List[str]:
        return list(self._patterns.get(client_id, []))

    def route(self, message: WireMessage) -> Tuple[int, Optional[str]]:
        """
        Deliver message to every client with at least one matching pattern.
        Returns (clients delivered to, None) or (0, INVALID_TOPIC).
        A failing client is logged and skipped.
        """
        if validate_topic(message.topic) is not None:
            return 0, ERROR_INVALID_TOPIC
        targets = [
            self._clients[cid]
            for cid, patterns in self._patterns.items()
            if cid in self._clients and any(matches(message.topic, p) for p in patterns)
        ]
        self._metrics.increment("routed", label=message.topic)
        delivered = 0
        for client in targets:
            try:
                client.deliver(message)
                delivered += 1
            except Exception as e:
                self._logger.exception(
                    "delivery_failed",
                    extra={
                        "client_id": client.client_id,
                        "topic": message.topic,
                        "error": str(e),
                    },
                )
        self._logger.debug(
            "routed",
            extra={"topic": message.topic, "subscriber_count": delivered},
        )
        return delivered, None

    def client_count(self) -> int:
        return len(self._clients)

    def topic_stats(self) -> Dict[str, Dict[str, int]]:
        """Return { topic: { messages, subscribers } } for every topic routed so far."""
        return {
            topic: {
                "messages": count,
                "subscribers": sum(
                    1 for patterns in self._patterns.values()
                    if any(matches(topic, p) for p in patterns)
                ),
            }
            for topic, count in self._metrics.by_label("routed").items()
        }

    def subscription_list(self) -> List[Dict[str, object]]:
        return [
            {"client_id": cid, "patterns": list(patterns)}
            for cid, patterns in self._patterns.items()
        ]


class LocalTransport(Transport, BrokerClient):
    """
    Transport bound to an in-process Broker. Deliveries and session
    notifications are deferred with loop.call_soon so they run as separate
    loop callbacks, never re-entrantly inside send() or subscribe().
    """

    def __init__(self, broker: Broker, client_id: Optional[str] = None) -> None:
        super().__init__()
        self._broker = broker
        self._client_id = client_id or f"local_{uuid.uuid4().hex[:8]}"
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected = False
        self._logger = get_logger(f"ecomevents.transport.{self._client_id}")

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def connected(self) -> bool:
        return self._connected

    def _notify(self, callback, *args) -> None:
        if self._loop is not None:
            self._loop.call_soon(callback, *args)

    async def connect(self) -> bool:
        self._loop = asyncio.get_running_loop()
        if self._connected:
            self._logger.info("already_connected")
            return True
        err = self._broker.attach(self)
        if err is not None:
            self._notify(self._listener.on_connect_failed, f"broker refused connection ({err})")
            return False
        self._connected = True
        self._notify(self._listener.on_up)
        return True

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._broker.detach(self._client_id)
        self._notify(self._listener.on_disconnected)

    def broker_closed(self) -> None:
        if self._connected:
            self._connected = False
            self._notify(self._listener.on_disconnected)

    def send(self, topic: str, body: str, properties: Dict[str, str]) -> None:
        if not self._connected:
            raise TransportError("not connected")
        message = WireMessage(
            topic=topic,
            body=body,
            properties=dict(properties),
            message_id=uuid.uuid4().hex,
        )
        _, err = self._broker.route(message)
        if err is not None:
            raise TransportError(f"{err}: {topic!r}")

    def subscribe(self, pattern: str) -> None:
        if not self._connected:
            raise TransportError("not connected")
        err = self._broker.subscribe(self._client_id, pattern)
        if err is not None:
            self._notify(self._listener.on_subscription_error, pattern, err)
        else:
            self._notify(self._listener.on_subscription_ok, pattern)

    def unsubscribe(self, pattern: str) -> None:
        if not self._connected:
            raise TransportError("not connected")
        err = self._broker.unsubscribe(self._client_id, pattern)
        if err is not None:
            self._logger.warning("unsubscribe_failed", extra={"pattern": pattern, "error": err})

    def deliver(self, message: WireMessage) -> None:
        if self._loop is None:
            return
        self._loop.call_soon(self._dispatch, message)
