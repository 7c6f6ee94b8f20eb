"""Connection handler — maps one client connection's events onto the manager."""

from __future__ import annotations

import logging
from typing import Any

from dlogstream import devices
from dlogstream.config import DlogStreamConfig
from dlogstream.errors import TransportError
from dlogstream.session.manager import SessionManager
from dlogstream.session.models import (
    AUTH_RESPONSE,
    CONNECT_DEVICE,
    DEVICE_CONNECT_RESULT,
    DEVICES,
    DISCONNECT,
    LIST_DEVICES,
    LOCAL_ERROR,
    REMOTE_ERROR,
    START_LOCAL,
    START_REMOTE,
    STOP_CAPTURE,
    WRITE_INPUT,
    Emitter,
    LocalCaptureRequest,
    RemoteCaptureRequest,
)
from dlogstream.transport.process import Spawner
from dlogstream.transport.remote import Connector

logger = logging.getLogger(__name__)


class ConnectionHandler:
    """Dispatches inbound events for one client; holds no capture state itself.

    ``spawn`` and ``ssh_connect`` replace the subprocess launcher and the SSH
    client when the handler builds its own manager.
    """

    def __init__(
        self,
        client_id: str,
        emit: Emitter,
        manager: SessionManager | None = None,
        config: DlogStreamConfig | None = None,
        spawn: Spawner | None = None,
        ssh_connect: Connector | None = None,
    ) -> None:
        self.client_id = client_id
        self._emit = emit
        self._spawn = spawn
        self.manager = manager or SessionManager(
            config=config, spawn=spawn, ssh_connect=ssh_connect
        )
        self._handlers = {
            START_LOCAL: self.start_local,
            START_REMOTE: self.start_remote,
            STOP_CAPTURE: self.stop_capture,
            WRITE_INPUT: self.write_input,
            LIST_DEVICES: self.list_devices,
            CONNECT_DEVICE: self.connect_device,
            DISCONNECT: self.disconnect,
            AUTH_RESPONSE: self.auth_response,
        }

    async def dispatch(self, event: str, payload: Any = None) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning("Client %s: ignoring unknown event %r", self.client_id, event)
            return
        await handler(payload)

    async def start_local(self, payload: Any = None) -> None:
        try:
            request = LocalCaptureRequest.from_payload(_mapping(payload))
        except ValueError as exc:
            self._emit(LOCAL_ERROR, {"message": str(exc), "kind": "invalid_request"})
            return
        await self.manager.start_local(self.client_id, request, self._emit)

    async def start_remote(self, payload: Any = None) -> None:
        try:
            request = RemoteCaptureRequest.from_payload(_mapping(payload))
        except ValueError as exc:
            self._emit(REMOTE_ERROR, {"message": str(exc), "kind": "invalid_request"})
            return
        await self.manager.start_remote(self.client_id, request, self._emit)

    async def stop_capture(self, payload: Any = None) -> None:
        self.manager.stop(self.client_id)

    async def write_input(self, payload: Any = None) -> None:
        if isinstance(payload, dict):
            payload = payload.get("data")
        if not isinstance(payload, str):
            return
        if not self.manager.write(self.client_id, payload):
            logger.debug("Client %s: no writable session, input dropped", self.client_id)

    async def list_devices(self, payload: Any = None) -> None:
        sdb_path = _options(payload).get("sdbPath") or self.manager.config.sdb_path
        try:
            found = await devices.list_devices(sdb_path, spawn=self._spawn)
        except TransportError as exc:
            self._emit(LOCAL_ERROR, exc.to_payload())
            return
        self._emit(DEVICES, [d.to_dict() for d in found])

    async def connect_device(self, payload: Any = None) -> None:
        data = _options(payload)
        ip = data.get("ip")
        if not ip:
            self._emit(DEVICE_CONNECT_RESULT, {"success": False, "message": "ip is required"})
            return
        try:
            result = await devices.connect_device(
                str(ip),
                sdb_path=data.get("sdbPath") or self.manager.config.sdb_path,
                spawn=self._spawn,
                timeout=self.manager.config.device_connect_timeout,
            )
        except TransportError as exc:
            self._emit(LOCAL_ERROR, exc.to_payload())
            return
        self._emit(DEVICE_CONNECT_RESULT, result.to_dict())

    async def auth_response(self, payload: Any = None) -> None:
        if isinstance(payload, dict):
            payload = payload.get("response")
        if not isinstance(payload, str):
            return
        if not self.manager.answer_auth(self.client_id, payload):
            logger.debug("Client %s: no prompt pending, answer dropped", self.client_id)

    async def disconnect(self, payload: Any = None) -> None:
        self.close()

    def close(self) -> None:
        """Release the client's session; used when the connection drops."""
        if self.manager.on_disconnect(self.client_id):
            logger.info("Client %s disconnected, session released", self.client_id)


def _mapping(payload: Any) -> dict[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("payload must be an object")
    return payload


def _options(payload: Any) -> dict[str, Any]:
    return payload if isinstance(payload, dict) else {}
