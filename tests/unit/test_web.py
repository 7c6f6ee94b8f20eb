"""Tests for the FastAPI app: websocket capture and REST endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from dlogstream.devices import ConnectResult, Device
from dlogstream.errors import LaunchFailure
from dlogstream.session.handler import ConnectionHandler
from dlogstream.session.manager import SessionManager
from dlogstream.web.app import create_app


@pytest.fixture
def client(config, spawner):
    async def spawn(program, *args, **kwargs):
        process = await spawner(program, *args, **kwargs)
        process.stdout.feed(b"01-01 I/Tag: hello\n")
        process.stdout.feed_eof()
        return process

    manager = SessionManager(config=config, spawn=spawn)
    app = create_app(config, manager=manager)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def idle_client(config, spawner):
    manager = SessionManager(config=config, spawn=spawner)
    app = create_app(config, manager=manager)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": "0.1.0", "sessions": 0}


def test_unknown_session_404(client):
    assert client.get("/api/sessions/nope").status_code == 404
    assert client.post("/api/sessions/nope/stop").status_code == 404
    assert client.get("/api/sessions").json() == []


def test_websocket_local_capture(client, spawner):
    with client.websocket_connect("/api/ws/capture") as ws:
        ws.send_json(
            {"event": "start-local-capture", "data": {"deviceId": "d1", "tags": ["Tag"]}}
        )
        connected = ws.receive_json()
        log = ws.receive_json()
        closed = ws.receive_json()

    assert connected == {
        "event": "capture-status",
        "data": {
            "transport": "local",
            "status": "connected",
            "message": "SDB Shell Connected to d1",
        },
    }
    assert log == {"event": "log-data", "data": "01-01 I/Tag: hello\n"}
    assert closed["event"] == "capture-status"
    assert closed["data"]["status"] == "disconnected"
    assert spawner.calls[0][:4] == ["sdb", "-s", "d1", "shell"]


def test_websocket_invalid_request(client, spawner):
    with client.websocket_connect("/api/ws/capture") as ws:
        ws.send_text("not json")
        ws.send_json({"event": "start-remote-capture", "data": {}})
        reply = ws.receive_json()

    assert reply["event"] == "remote-transport-error"
    assert reply["data"]["kind"] == "invalid_request"
    assert spawner.calls == []


def test_list_devices_endpoint(client):
    found = [Device("emulator-26101", "device")]
    with patch("dlogstream.devices.list_devices", AsyncMock(return_value=found)):
        response = client.get("/api/devices")

    assert response.status_code == 200
    assert response.json() == [{"id": "emulator-26101", "type": "device"}]


def test_list_devices_endpoint_error(client):
    error = LaunchFailure("SDB command not found")
    with patch("dlogstream.devices.list_devices", AsyncMock(side_effect=error)):
        response = client.get("/api/devices")

    assert response.status_code == 502
    assert response.json()["detail"] == "SDB command not found"


def test_connect_device_endpoint(client):
    result = ConnectResult(True, "Connected to 10.0.0.7")
    with patch("dlogstream.devices.connect_device", AsyncMock(return_value=result)):
        response = client.post("/api/devices/connect", json={"ip": "10.0.0.7"})

    assert response.json() == {"success": True, "message": "Connected to 10.0.0.7"}
    assert client.post("/api/devices/connect", json={}).status_code == 422


def test_failing_handler_keeps_socket_open(client):
    failing = AsyncMock(side_effect=RuntimeError("boom"))
    with patch.object(ConnectionHandler, "start_local", failing):
        with client.websocket_connect("/api/ws/capture") as ws:
            ws.send_json({"event": "start-local-capture", "data": {}})
            ws.send_json({"event": "start-remote-capture", "data": {}})
            reply = ws.receive_json()

    failing.assert_awaited_once()
    assert reply["event"] == "remote-transport-error"
    assert reply["data"]["kind"] == "invalid_request"


def test_rest_stop_notifies_websocket_client(idle_client, spawner):
    with idle_client.websocket_connect("/api/ws/capture") as ws:
        ws.send_json({"event": "start-local-capture", "data": {"deviceId": "d1"}})
        connected = ws.receive_json()
        sessions = idle_client.get("/api/sessions").json()
        response = idle_client.post(f"/api/sessions/{sessions[0]['id']}/stop")
        stopped = ws.receive_json()

    assert connected["data"]["status"] == "connected"
    assert response.json() == {"status": "stopped", "session_id": sessions[0]["id"]}
    assert stopped == {
        "event": "capture-status",
        "data": {
            "transport": "local",
            "status": "disconnected",
            "message": "Capture stopped by server request",
        },
    }
    spawner.last.terminate.assert_called_once()
    assert idle_client.get("/api/sessions").json() == []
