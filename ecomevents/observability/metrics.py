"""Metrics for observability (published, received, parse errors, per-topic routing)."""

from collections import defaultdict
from typing import Dict, Optional, Tuple

_Key = Tuple[str, Optional[str]]


class Metrics:
    """
    In-memory counters and gauges. A counter may carry one label (usually a
    topic or a category) so that per-topic figures and totals share a name:
    increment("routed", label="ecommerce/orders/created") also bumps "routed".
    """

    def __init__(self) -> None:
        self._counters: Dict[_Key, int] = defaultdict(int)
        self._gauges: Dict[str, int] = {}

    def increment(self, name: str, value: int = 1, label: Optional[str] = None) -> None:
        """Increment a counter (and its unlabelled total when a label is given)."""
        self._counters[(name, None)] += value
        if label is not None:
            self._counters[(name, label)] += value

    def set_gauge(self, name: str, value: int) -> None:
        self._gauges[name] = value

    def get_counter(self, name: str, label: Optional[str] = None) -> int:
        return self._counters.get((name, label), 0)

    def get_gauge(self, name: str) -> int:
        return self._gauges.get(name, 0)

    def by_label(self, name: str) -> Dict[str, int]:
        """All labelled values of one counter, e.g. messages routed per topic."""
        return {
            label: value
            for (counter, label), value in self._counters.items()
            if counter == name and label is not None
        }

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        """Unlabelled counters and all gauges."""
        return {
            "counters": {name: v for (name, label), v in self._counters.items() if label is None},
            "gauges": dict(self._gauges),
        }
