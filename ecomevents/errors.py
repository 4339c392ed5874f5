"""Exceptions raised across ecomevents (transport failures, simulation invariants)."""


class EcomEventsError(Exception):
    """Base class for ecomevents errors."""


class TransportError(EcomEventsError):
    """A send, subscribe or unsubscribe could not be handed to the transport."""


class SimulationError(EcomEventsError):
    """Simulator invariant violated (e.g. empty reference data). Not retried."""
