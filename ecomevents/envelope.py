"""Envelope: the immutable record carrying one domain event."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ecomevents.events import DomainEvent


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_ms(ts: datetime) -> str:
    """ISO 8601 with millisecond precision and a Z suffix (2025-08-25T10:00:00.123Z)."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class Envelope:
    """Event type tag, creation time, optional correlation id and variant payload."""

    event_type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=utc_now)
    correlation_id: Optional[str] = None

    @classmethod
    def from_event(cls, event: "DomainEvent", correlation_id: Optional[str] = None) -> "Envelope":
        return cls(
            event_type=event.EVENT_TYPE,
            data=event.to_data(),
            correlation_id=correlation_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape: eventType, timestamp, correlationId (only when set), data."""
        out: Dict[str, Any] = {
            "eventType": self.event_type,
            "timestamp": iso_ms(self.timestamp),
        }
        if self.correlation_id is not None:
            out["correlationId"] = self.correlation_id
        out["data"] = self.data
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Envelope":
        """Inverse of to_dict. Raises KeyError/ValueError/TypeError on malformed input."""
        data = d["data"]
        if not isinstance(data, dict):
            raise TypeError("data must be an object")
        timestamp = d.get("timestamp")
        return cls(
            event_type=str(d["eventType"]),
            data=data,
            timestamp=parse_iso(timestamp) if timestamp else utc_now(),
            correlation_id=d.get("correlationId"),
        )
