"""Transport and session seams. Concrete transports live in broker.py and ws_transport.py."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional


@dataclass(frozen=True)
class WireMessage:
    """A message as it travels: topic, raw body and out-of-band properties."""
    topic: str
    body: str
    properties: Dict[str, str] = field(default_factory=dict)
    message_id: Optional[str] = None


MessageHandler = Callable[[WireMessage], None]


class SessionListener:
    """Receives session notifications. Every method defaults to a no-op."""

    def on_up(self) -> None:
        pass

    def on_connect_failed(self, reason: str) -> None:
        pass

    def on_disconnected(self) -> None:
        pass

    def on_subscription_ok(self, pattern: str) -> None:
        pass

    def on_subscription_error(self, pattern: str, reason: str) -> None:
        pass


class SessionLifecycle(ABC):
    """Connect/disconnect with outcomes reported to a SessionListener."""

    def __init__(self) -> None:
        self._listener: SessionListener = SessionListener()

    def set_listener(self, listener: SessionListener) -> None:
        self._listener = listener

    @property
    @abstractmethod
    def connected(self) -> bool:
        pass

    @abstractmethod
    async def connect(self) -> bool:
        """
        Open the session. Returns True once it is up (after on_up has been
        scheduled), False on failure (after on_connect_failed).
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session; on_disconnected follows."""
        pass


class Transport(SessionLifecycle):
    """Fire-and-forget send plus pattern subscriptions confirmed asynchronously."""

    def __init__(self) -> None:
        super().__init__()
        self._handler: Optional[MessageHandler] = None

    def on_message(self, handler: Optional[MessageHandler]) -> None:
        """Set (or clear) the callback invoked for every inbound message."""
        self._handler = handler

    def _dispatch(self, message: WireMessage) -> None:
        if self._handler is not None:
            self._handler(message)

    @abstractmethod
    def send(self, topic: str, body: str, properties: Dict[str, str]) -> None:
        """Hand a message to the transport. Raises TransportError when it cannot."""
        pass

    @abstractmethod
    def subscribe(self, pattern: str) -> None:
        """Request a subscription; on_subscription_ok / on_subscription_error follows."""
        pass

    @abstractmethod
    def unsubscribe(self, pattern: str) -> None:
        """Drop a subscription. Raises TransportError when not connected."""
        pass
