"""E-commerce domain events over hierarchical topics with wildcard subscriptions."""

from ecomevents.envelope import Envelope
from ecomevents.matcher import matches, validate_pattern
from ecomevents.registry import SubscriptionEntry, SubscriptionRegistry
from ecomevents.simulator import WorkflowSimulator
from ecomevents.dispatch import Dispatcher, Rendering
from ecomevents.broker import Broker, LocalTransport
from ecomevents.publisher import EventPublisher
from ecomevents.subscriber import EventSubscriber

__all__ = [
    "Envelope",
    "matches",
    "validate_pattern",
    "SubscriptionEntry",
    "SubscriptionRegistry",
    "WorkflowSimulator",
    "Dispatcher",
    "Rendering",
    "Broker",
    "LocalTransport",
    "EventPublisher",
    "EventSubscriber",
]
