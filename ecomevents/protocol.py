"""Wire protocol: envelope codec, error codes, HTTP response shapes and WebSocket frames."""

import json
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

from ecomevents.envelope import Envelope

CONTENT_TYPE_JSON = "application/json"

# Error codes (use with ws_error and the (result, error) return convention)
ERROR_BAD_REQUEST = "BAD_REQUEST"
ERROR_UNAUTHORIZED = "UNAUTHORIZED"
ERROR_INTERNAL = "INTERNAL"
ERROR_INVALID_PATTERN = "INVALID_PATTERN"
ERROR_INVALID_TOPIC = "INVALID_TOPIC"
ERROR_ALREADY_SUBSCRIBED = "ALREADY_SUBSCRIBED"
ERROR_NOT_SUBSCRIBED = "NOT_SUBSCRIBED"
ERROR_UNKNOWN_SUBSCRIPTION = "UNKNOWN_SUBSCRIPTION"
ERROR_NOT_CONNECTED = "NOT_CONNECTED"
ERROR_PAYLOAD_PARSE = "PAYLOAD_PARSE_ERROR"
ERROR_PAYLOAD_INVALID = "PAYLOAD_INVALID"


# ---- Envelope codec ----

def encode_envelope(envelope: Envelope) -> Tuple[str, Dict[str, str]]:
    """
    Serialize an envelope to a JSON body plus out-of-band properties
    (contentType, correlationId when present, send timestamp in epoch ms).
    """
    body = json.dumps(envelope.to_dict())
    properties: Dict[str, str] = {"contentType": CONTENT_TYPE_JSON}
    if envelope.correlation_id:
        properties["correlationId"] = envelope.correlation_id
    properties["timestamp"] = str(int(time.time() * 1000))
    return body, properties


def decode_body(body: Any) -> Tuple[Any, Optional[str]]:
    """
    Parse a message body as JSON.
    Returns (content, None) on success, (raw body, "<reason>") when it is not JSON.
    """
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as e:
            return body, str(e)
    try:
        return json.loads(body), None
    except (json.JSONDecodeError, TypeError) as e:
        return body, str(e)


# ---- Health / stats ----

@dataclass
class HealthResponse:
    """Response for GET /health."""
    uptime_sec: float
    topics: int
    subscribers: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_sec": int(self.uptime_sec),
            "topics": self.topics,
            "subscribers": self.subscribers,
        }


def stats_response(
    topics_stats: Dict[str, Dict[str, int]],
    metrics: Optional[Dict[str, Dict[str, int]]] = None,
) -> Dict[str, Any]:
    """Response for GET /stats."""
    out: Dict[str, Any] = {"topics": topics_stats}
    if metrics is not None:
        out["metrics"] = metrics
    return out


def subscriptions_response(subscriptions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Response for GET /subscriptions."""
    return {"subscriptions": subscriptions}


@dataclass
class PublishResponse:
    """Response for POST /publish."""
    topic: str
    delivered: int
    status: str = "published"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---- WebSocket: Server → Client ----

def ws_ts() -> str:
    """Current UTC timestamp in ISO 8601 (e.g. 2025-08-25T10:00:00Z)."""
    from datetime import datetime, timezone
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def ws_ack(request_id: Optional[str], ts: str, **fields: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "ack", "status": "ok", "ts": ts}
    if request_id is not None:
        out["request_id"] = request_id
    for key, value in fields.items():
        if value is not None:
            out[key] = value
    return out


def ws_event(topic: str, message: Dict[str, Any], ts: str) -> Dict[str, Any]:
    return {"type": "event", "topic": topic, "message": message, "ts": ts}


def ws_error(request_id: Optional[str], code: str, message: str, ts: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": "error",
        "error": {"code": code, "message": message},
        "ts": ts,
    }
    if request_id is not None:
        out["request_id"] = request_id
    return out


def ws_pong(request_id: str, ts: str) -> Dict[str, Any]:
    return {"type": "pong", "request_id": request_id, "ts": ts}


def ws_info(msg: str, ts: str) -> Dict[str, Any]:
    return {"type": "info", "msg": msg, "ts": ts}


# ---- WebSocket: Client → Server ----

def ws_subscribe(request_id: str, pattern: str) -> Dict[str, Any]:
    return {"type": "subscribe", "request_id": request_id, "pattern": pattern}


def ws_unsubscribe(request_id: str, pattern: str) -> Dict[str, Any]:
    return {"type": "unsubscribe", "request_id": request_id, "pattern": pattern}


def ws_publish(
    request_id: str,
    topic: str,
    message_id: str,
    body: str,
    properties: Dict[str, str],
) -> Dict[str, Any]:
    return {
        "type": "publish",
        "request_id": request_id,
        "topic": topic,
        "message": {"id": message_id, "payload": body, "properties": properties},
    }
