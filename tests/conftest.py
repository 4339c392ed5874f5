import pytest

from ecomevents.envelope import Envelope
from ecomevents.transport import SessionListener


class RecordingPublisher:
    """Stands in for EventPublisher: envelopes every event and keeps it."""

    def __init__(self):
        self.sent = []

    def publish(self, event, correlation_id=None):
        envelope = Envelope.from_event(event, correlation_id=correlation_id)
        self.sent.append((event.topic, envelope))
        return envelope

    def types(self):
        return [envelope.event_type for _, envelope in self.sent]


class RecordingListener(SessionListener):

    def __init__(self):
        self.events = []

    def on_up(self):
        self.events.append(("up",))

    def on_connect_failed(self, reason):
        self.events.append(("connect_failed", reason))

    def on_disconnected(self):
        self.events.append(("disconnected",))

    def on_subscription_ok(self, pattern):
        self.events.append(("subscription_ok", pattern))

    def on_subscription_error(self, pattern, reason):
        self.events.append(("subscription_error", pattern, reason))


@pytest.fixture
def recording_publisher():
    return RecordingPublisher()


@pytest.fixture
def recording_listener():
    return RecordingListener()
