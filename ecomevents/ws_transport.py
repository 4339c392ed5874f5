"""WebSocket transport: talks to the broker server (server.py) with aiohttp."""

import asyncio
import json
import uuid
from typing import Any, Dict, Optional, Set, Tuple

import aiohttp

from ecomevents.errors import TransportError
from ecomevents.observability import get_logger
from ecomevents.protocol import ws_publish, ws_subscribe, ws_unsubscribe
from ecomevents.transport import Transport, WireMessage

DEFAULT_CONNECT_TIMEOUT_SEC = 10.0


class WebSocketTransport(Transport):
    """
    One WebSocket per session. Frames are written from short-lived tasks so
    send()/subscribe() never block the caller; a reader task turns server
    frames into inbound messages and subscription confirmations, correlated
    by request_id.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        client_id: Optional[str] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SEC,
    ) -> None:
        super().__init__()
        self._url = url
        self._api_key = api_key
        self._client_id = client_id or f"ws_{uuid.uuid4().hex[:8]}"
        self._connect_timeout = connect_timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._writes: Set[asyncio.Task] = set()
        self._pending: Dict[str, Tuple[str, str]] = {}
        self._closing = False
        self._logger = get_logger(f"ecomevents.transport.{self._client_id}")

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> bool:
        loop = asyncio.get_running_loop()
        if self.connected:
            self._logger.info("already_connected")
            return True
        self._closing = False
        timeout = aiohttp.ClientTimeout(total=None, connect=self._connect_timeout)
        headers = {"X-API-Key": self._api_key} if self._api_key else None
        self._session = aiohttp.ClientSession(timeout=timeout)
        try:
            self._ws = await self._session.ws_connect(self._url, headers=headers)
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            await self._session.close()
            self._session = None
            reason = str(e) or type(e).__name__
            self._logger.error("connect_failed", extra={"url": self._url, "error": reason})
            loop.call_soon(self._listener.on_connect_failed, reason)
            return False
        self._logger.info("connected", extra={"url": self._url})
        self._reader = loop.create_task(self._read_loop())
        loop.call_soon(self._listener.on_up)
        return True

    async def disconnect(self) -> None:
        if self._ws is None:
            return
        self._closing = True
        if self._writes:
            await asyncio.gather(*self._writes, return_exceptions=True)
        await self._ws.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        await self._cleanup()
        self._logger.info("disconnected", extra={"url": self._url})
        self._listener.on_disconnected()

    async def _cleanup(self) -> None:
        self._ws = None
        self._pending.clear()
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ---- Outbound ----

    def _write(self, frame: Dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._send_frame(frame))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _send_frame(self, frame: Dict[str, Any]) -> None:
        try:
            await self._ws.send_json(frame)
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError, AttributeError) as e:
            self._pending.pop(frame.get("request_id"), None)
            self._logger.error(
                "send_failed",
                extra={"type": frame.get("type"), "topic": frame.get("topic"), "error": str(e)},
            )

    def _request(self, kind: str, target: str) -> str:
        if not self.connected:
            raise TransportError("not connected")
        request_id = uuid.uuid4().hex[:12]
        self._pending[request_id] = (kind, target)
        return request_id

    def send(self, topic: str, body: str, properties: Dict[str, str]) -> None:
        request_id = self._request("publish", topic)
        self._write(ws_publish(request_id, topic, uuid.uuid4().hex, body, dict(properties)))

    def subscribe(self, pattern: str) -> None:
        request_id = self._request("subscribe", pattern)
        self._write(ws_subscribe(request_id, pattern))

    def unsubscribe(self, pattern: str) -> None:
        request_id = self._request("unsubscribe", pattern)
        self._write(ws_unsubscribe(request_id, pattern))

    # ---- Inbound ----

    async def _read_loop(self) -> None:
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._logger.error("socket_error", extra={"error": str(self._ws.exception())})
                    break
        finally:
            if not self._closing:
                self._logger.warning("connection_lost", extra={"url": self._url})
                await self._cleanup()
                self._listener.on_disconnected()

    def handle_frame(self, data: str) -> None:
        """Apply one server frame: event → inbound message, ack/error → pending request outcome."""
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            self._logger.warning("bad_frame", extra={"data": data[:200]})
            return
        if not isinstance(frame, dict):
            self._logger.warning("bad_frame", extra={"data": data[:200]})
            return
        frame_type = frame.get("type")
        if frame_type == "event":
            message = frame.get("message")
            if not isinstance(message, dict):
                self._logger.warning("bad_event_frame", extra={"topic": frame.get("topic")})
                return
            properties = message.get("properties")
            payload = message.get("payload", "")
            self._dispatch(WireMessage(
                topic=str(frame.get("topic", "")),
                body=payload if isinstance(payload, str) else json.dumps(payload),
                properties=properties if isinstance(properties, dict) else {},
                message_id=message.get("id"),
            ))
        elif frame_type == "ack":
            kind, target = self._take_pending(frame.get("request_id"))
            if kind == "subscribe":
                self._listener.on_subscription_ok(target)
        elif frame_type == "error":
            error = frame.get("error")
            if not isinstance(error, dict):
                error = {}
            code = error.get("code", "")
            kind, target = self._take_pending(frame.get("request_id"))
            if kind == "subscribe":
                self._listener.on_subscription_error(target, code)
            elif kind == "publish":
                self._logger.error("publish_failed", extra={"topic": target, "error": code})
            else:
                self._logger.error(
                    "server_error",
                    extra={"kind": kind, "target": target, "error": code, "detail": error.get("message")},
                )
        else:
            self._logger.debug("frame", extra={"type": frame_type})

    def _take_pending(self, request_id: Any) -> Tuple[Optional[str], Optional[str]]:
        if not isinstance(request_id, str):
            return None, None
        return self._pending.pop(request_id, (None, None))
