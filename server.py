"""Broker server. HTTP: health, stats, subscriptions, publish. WebSocket: ping, subscribe, unsubscribe, publish."""

from dotenv import load_dotenv
load_dotenv()

import asyncio
import json
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from ecomevents.broker import Broker, BrokerClient
from ecomevents.config import Settings, load_settings
from ecomevents.matcher import validate_pattern, validate_topic
from ecomevents.observability import get_logger
from ecomevents.protocol import (
    HealthResponse,
    PublishResponse,
    stats_response,
    subscriptions_response,
    ws_ack,
    ws_error,
    ws_event,
    ws_info,
    ws_pong,
    ws_ts,
    ERROR_BAD_REQUEST,
    ERROR_INVALID_PATTERN,
    ERROR_INVALID_TOPIC,
    ERROR_UNAUTHORIZED,
    ERROR_INTERNAL,
)
from ecomevents.transport import WireMessage

broker = Broker()
logger = get_logger("ecomevents.server")
settings: Settings = load_settings(os.environ)
_start_time: float = 0.0

# Active WebSocket connections for server-initiated heartbeat
_ws_connections: set = set()
_heartbeat_task: asyncio.Task | None = None


# X-API-Key is compulsory: API_KEY must be set in env (or .env); read at startup
def _get_expected_api_key() -> str | None:
    return settings.api_key


class XAPIKeyMiddleware(BaseHTTPMiddleware):
    """Require X-API-Key header; API_KEY env must be set."""
    async def dispatch(self, request: Request, call_next):
        if request.scope.get("type") == "websocket":
            return await call_next(request)
        expected = _get_expected_api_key()
        if not expected:
            return JSONResponse(
                status_code=503,
                content={"error": ERROR_UNAUTHORIZED, "message": "X-API-Key required (API_KEY env not set)"},
            )
        key = (request.headers.get("X-API-Key") or request.headers.get("x-api-key") or "").strip()
        if key != expected:
            return JSONResponse(
                status_code=401,
                content={"error": ERROR_UNAUTHORIZED, "message": "invalid or missing X-API-Key"},
            )
        return await call_next(request)


async def _heartbeat_loop() -> None:
    """Periodically send info heartbeat (msg: ping) to all connected WebSocket clients."""
    interval = settings.heartbeat_interval_sec
    if interval <= 0:
        return
    while True:
        await asyncio.sleep(interval)
        payload = ws_info("ping", ws_ts())
        dead = []
        for ws in _ws_connections:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)
        for ws in dead:
            _ws_connections.discard(ws)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global settings, _start_time, _heartbeat_task
    settings = load_settings(os.environ)
    _start_time = time.time()
    _heartbeat_task = asyncio.create_task(_heartbeat_loop())
    yield
    if _heartbeat_task is not None:
        _heartbeat_task.cancel()
        try:
            await _heartbeat_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="E-commerce Event Broker", lifespan=lifespan)
app.add_middleware(XAPIKeyMiddleware)

router = APIRouter(prefix="/api/v1")


# ---- Health ----

@router.get("/health")
def health() -> JSONResponse:
    """GET /health → { uptime_sec, topics, subscribers }."""
    uptime = time.time() - _start_time
    body = HealthResponse(
        uptime_sec=uptime,
        topics=len(broker.topic_stats()),
        subscribers=broker.client_count(),
    ).to_dict()
    return JSONResponse(content=body, status_code=200)


# ---- Stats ----

@router.get("/stats")
def stats() -> JSONResponse:
    """GET /stats → { topics: { name: { messages, subscribers } }, metrics }."""
    body = stats_response(broker.topic_stats(), broker.metrics.snapshot())
    return JSONResponse(content=body, status_code=200)


@router.get("/subscriptions")
def subscriptions() -> JSONResponse:
    """GET /subscriptions → { subscriptions: [ { client_id, patterns } ] }."""
    return JSONResponse(content=subscriptions_response(broker.subscription_list()), status_code=200)


# ---- Publish ----

class PublishBody(BaseModel):
    topic: str
    body: str
    properties: Dict[str, str] = {}


@router.post("/publish")
async def publish(body: PublishBody) -> JSONResponse:
    """POST /publish { topic, body, properties } → { status, topic, delivered } or 400."""
    reason = validate_topic(body.topic)
    if reason is not None:
        return JSONResponse(
            content={"error": ERROR_INVALID_TOPIC, "message": reason, "topic": body.topic},
            status_code=400,
        )
    delivered, _ = broker.route(WireMessage(
        topic=body.topic,
        body=body.body,
        properties=dict(body.properties),
        message_id=uuid.uuid4().hex,
    ))
    return JSONResponse(
        content=PublishResponse(topic=body.topic, delivered=delivered).to_dict(),
        status_code=200,
    )


# ---- WebSocket (ping, subscribe, unsubscribe, publish) ----

class WebSocketClient(BrokerClient):
    """Broker client backed by one WebSocket; deliveries are scheduled as sends on the loop."""

    def __init__(self, websocket: WebSocket, client_id: str | None = None) -> None:
        self._websocket = websocket
        self._client_id = client_id or f"ws_{uuid.uuid4().hex[:8]}"

    @property
    def client_id(self) -> str:
        return self._client_id

    def deliver(self, message: WireMessage) -> None:
        frame = ws_event(
            message.topic,
            {"id": message.message_id, "payload": message.body, "properties": message.properties},
            ws_ts(),
        )
        asyncio.get_running_loop().create_task(_ws_send(self._websocket, frame))


async def _ws_send(websocket: WebSocket, payload: dict) -> None:
    """Send JSON to client; a failed send is logged and dropped."""
    try:
        await websocket.send_json(payload)
    except Exception as e:
        logger.warning("ws_send_failed", extra={"error": str(e)})


def _ws_api_key_ok(websocket: WebSocket) -> bool:
    """Return True if X-API-Key matches API_KEY env. API_KEY must be set."""
    expected = _get_expected_api_key()
    if not expected:
        return False
    raw = websocket.scope.get("headers") or []
    key = ""
    for k, v in raw:
        name = k.decode("utf-8", errors="ignore").lower()
        if name == "x-api-key":
            key = v.decode("utf-8", errors="ignore").strip()
            break
    return key == expected


@router.websocket("/ws")
async def websocket_handler(websocket: WebSocket) -> None:
    """
    WebSocket endpoint. Messages: ping, subscribe, unsubscribe, publish.
    Server replies: pong, ack, event, error, info.
    """
    await websocket.accept()
    if not _ws_api_key_ok(websocket):
        await websocket.send_json(ws_error(
            None, ERROR_UNAUTHORIZED,
            "invalid or missing X-API-Key",
            ws_ts(),
        ))
        await websocket.close()
        return
    client = WebSocketClient(websocket)
    broker.attach(client)
    _ws_connections.add(websocket)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Invalid JSON", ws_ts()))
                continue
            msg_type = msg.get("type")
            request_id = msg.get("request_id")

            if msg_type == "ping":
                await websocket.send_json(ws_pong(msg.get("request_id", ""), ws_ts()))
                continue

            if msg_type in ("subscribe", "unsubscribe"):
                pattern = msg.get("pattern")
                if pattern is None:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        f"{msg_type} requires pattern",
                        ws_ts(),
                    ))
                    continue
                if msg_type == "subscribe":
                    err = broker.subscribe(client.client_id, pattern)
                else:
                    err = broker.unsubscribe(client.client_id, pattern)
                if err:
                    detail = validate_pattern(pattern) if err == ERROR_INVALID_PATTERN else None
                    await websocket.send_json(ws_error(
                        request_id, err,
                        detail or f"{msg_type} {pattern!r} rejected",
                        ws_ts(),
                    ))
                    continue
                await websocket.send_json(ws_ack(request_id, ws_ts(), pattern=pattern))
                continue

            if msg_type == "publish":
                topic_name = msg.get("topic")
                message_body = msg.get("message")
                if not topic_name:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "publish requires topic",
                        ws_ts(),
                    ))
                    continue
                if not message_body or not isinstance(message_body, dict):
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "publish requires message object with id and payload",
                        ws_ts(),
                    ))
                    continue
                properties = message_body.get("properties") or {}
                if not isinstance(properties, dict):
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "message properties must be an object",
                        ws_ts(),
                    ))
                    continue
                payload = message_body.get("payload", "")
                if not isinstance(payload, str):
                    payload = json.dumps(payload)
                delivered, err = broker.route(WireMessage(
                    topic=topic_name,
                    body=payload,
                    properties={str(k): str(v) for k, v in properties.items()},
                    message_id=message_body.get("id"),
                ))
                if err:
                    await websocket.send_json(ws_error(
                        request_id, err,
                        validate_topic(topic_name) or f"cannot publish to {topic_name!r}",
                        ws_ts(),
                    ))
                    continue
                await websocket.send_json(ws_ack(request_id, ws_ts(), topic=topic_name, delivered=delivered))
                continue

            await websocket.send_json(ws_error(
                request_id, ERROR_BAD_REQUEST,
                f"Unknown type: {msg_type!r}",
                ws_ts(),
            ))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("ws_handler_failed", extra={"client_id": client.client_id})
        try:
            await websocket.send_json(ws_error(
                None, ERROR_INTERNAL,
                f"Unexpected server error: {e!s}",
                ws_ts(),
            ))
        except Exception:
            pass
    finally:
        broker.detach(client.client_id)
        _ws_connections.discard(websocket)


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.environ.get("HOST", "127.0.0.1"), port=int(os.environ.get("PORT", "8000")))
