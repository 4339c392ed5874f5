import pytest
from fastapi.testclient import TestClient

import server

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("API_KEY", API_KEY)
    with TestClient(server.app) as c:
        yield c


def test_health_requires_configured_key(monkeypatch):
    monkeypatch.delenv("API_KEY", raising=False)
    with TestClient(server.app) as c:
        response = c.get("/api/v1/health", headers=HEADERS)
    assert response.status_code == 503
    assert response.json()["error"] == "UNAUTHORIZED"


def test_health_rejects_wrong_key(client):
    response = client.get("/api/v1/health", headers={"X-API-Key": "nope"})
    assert response.status_code == 401


def test_health(client):
    response = client.get("/api/v1/health", headers=HEADERS)
    assert response.status_code == 200
    assert set(response.json()) == {"uptime_sec", "topics", "subscribers"}


def test_publish_rejects_invalid_topic(client):
    response = client.post(
        "/api/v1/publish",
        json={"topic": "ecommerce/orders/*", "body": "x"},
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_TOPIC"


def test_publish_and_stats(client):
    response = client.post(
        "/api/v1/publish",
        json={"topic": "sample/http", "body": "hello"},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json() == {"topic": "sample/http", "delivered": 0, "status": "published"}

    stats = client.get("/api/v1/stats", headers=HEADERS).json()
    assert stats["topics"]["sample/http"]["messages"] >= 1


def test_websocket_requires_key(client):
    with client.websocket_connect("/api/v1/ws") as ws:
        frame = ws.receive_json()
    assert frame["type"] == "error"
    assert frame["error"]["code"] == "UNAUTHORIZED"


def test_websocket_ping(client):
    with client.websocket_connect("/api/v1/ws", headers=HEADERS) as ws:
        ws.send_json({"type": "ping", "request_id": "p1"})
        frame = ws.receive_json()
    assert frame["type"] == "pong"
    assert frame["request_id"] == "p1"


def test_websocket_rejects_invalid_pattern(client):
    with client.websocket_connect("/api/v1/ws", headers=HEADERS) as ws:
        ws.send_json({"type": "subscribe", "request_id": "r1", "pattern": "ecommerce/>/x"})
        frame = ws.receive_json()
    assert frame["type"] == "error"
    assert frame["request_id"] == "r1"
    assert frame["error"]["code"] == "INVALID_PATTERN"


def test_websocket_routes_by_pattern(client):
    with client.websocket_connect("/api/v1/ws", headers=HEADERS) as sub, \
            client.websocket_connect("/api/v1/ws", headers=HEADERS) as pub:
        sub.send_json({"type": "subscribe", "request_id": "r1", "pattern": "ecommerce/orders/*"})
        ack = sub.receive_json()
        assert ack["type"] == "ack"
        assert ack["pattern"] == "ecommerce/orders/*"

        sub.send_json({"type": "subscribe", "request_id": "r2", "pattern": "ecommerce/orders/*"})
        assert sub.receive_json()["error"]["code"] == "ALREADY_SUBSCRIBED"

        pub.send_json({
            "type": "publish",
            "request_id": "r3",
            "topic": "ecommerce/payments/failed",
            "message": {"id": "m0", "payload": "ignored"},
        })
        assert pub.receive_json()["delivered"] == 0

        pub.send_json({
            "type": "publish",
            "request_id": "r4",
            "topic": "ecommerce/orders/created",
            "message": {"id": "m1", "payload": "hello", "properties": {"correlationId": "ord-1"}},
        })
        published = pub.receive_json()
        assert published["type"] == "ack"
        assert published["delivered"] == 1

        event = sub.receive_json()
        assert event["type"] == "event"
        assert event["topic"] == "ecommerce/orders/created"
        assert event["message"]["payload"] == "hello"
        assert event["message"]["properties"] == {"correlationId": "ord-1"}

        sub.send_json({"type": "unsubscribe", "request_id": "r5", "pattern": "ecommerce/orders/*"})
        assert sub.receive_json()["type"] == "ack"
        sub.send_json({"type": "unsubscribe", "request_id": "r6", "pattern": "ecommerce/orders/*"})
        assert sub.receive_json()["error"]["code"] == "NOT_SUBSCRIBED"


def test_websocket_publish_rejects_non_object_properties(client):
    with client.websocket_connect("/api/v1/ws", headers=HEADERS) as sub, \
            client.websocket_connect("/api/v1/ws", headers=HEADERS) as pub:
        sub.send_json({"type": "subscribe", "request_id": "r1", "pattern": "ecommerce/>"})
        assert sub.receive_json()["type"] == "ack"

        pub.send_json({
            "type": "publish",
            "request_id": "r2",
            "topic": "ecommerce/orders/created",
            "message": {"id": "m1", "payload": "hello", "properties": "oops"},
        })
        frame = pub.receive_json()
        assert frame["type"] == "error"
        assert frame["request_id"] == "r2"
        assert frame["error"]["code"] == "BAD_REQUEST"

        sub.send_json({"type": "ping", "request_id": "p1"})
        assert sub.receive_json()["type"] == "pong"


def test_startup_reads_key_and_heartbeat_from_one_settings_object(monkeypatch):
    monkeypatch.setenv("API_KEY", "startup-key")
    monkeypatch.setenv("HEARTBEAT_INTERVAL_SEC", "5")
    with TestClient(server.app) as c:
        assert server.settings.api_key == "startup-key"
        assert server.settings.heartbeat_interval_sec == 5.0
        monkeypatch.setenv("API_KEY", "changed-later")
        response = c.get("/api/v1/health", headers={"X-API-Key": "startup-key"})
    assert response.status_code == 200
