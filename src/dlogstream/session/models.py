"""Session data models — capture requests, session state and event names."""

from __future__ import annotations

import enum
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from dlogstream.recorder import CaptureRecorder
from dlogstream.transport.base import Transport, TransportKind
from dlogstream.transport.remote import DEFAULT_SSH_PORT, RemoteTarget

# Inbound client events
START_LOCAL = "start-local-capture"
START_REMOTE = "start-remote-capture"
STOP_CAPTURE = "stop-capture"
WRITE_INPUT = "write-input"
LIST_DEVICES = "list-devices"
CONNECT_DEVICE = "connect-device"
DISCONNECT = "disconnect"
AUTH_RESPONSE = "ssh-auth-response"

# Outbound client events
LOG_DATA = "log-data"
LOCAL_ERROR = "local-transport-error"
REMOTE_ERROR = "remote-transport-error"
CAPTURE_STATUS = "capture-status"
DEVICES = "devices"
DEVICE_CONNECT_RESULT = "device-connect-result"
AUTH_REQUEST = "ssh-auth-request"

ERROR_EVENTS = {
    TransportKind.LOCAL: LOCAL_ERROR,
    TransportKind.REMOTE: REMOTE_ERROR,
}

Emitter = Callable[[str, Any], None]


class SessionStatus(enum.Enum):
    """Lifecycle state of a capture session."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


def _tags(payload: dict[str, Any]) -> list[str]:
    tags = payload.get("tags") or []
    if isinstance(tags, str) or not isinstance(tags, (list, tuple)):
        raise ValueError("tags must be a list of strings")
    return [str(t) for t in tags]


def _optional_str(payload: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            if not isinstance(value, str):
                raise ValueError(f"{key} must be a string")
            return value
    return None


@dataclass
class LocalCaptureRequest:
    """Parameters of a start-local-capture event."""

    device_id: str | None = None
    command: str | None = None
    tags: list[str] = field(default_factory=list)
    save_to_file: bool = False
    sdb_path: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> LocalCaptureRequest:
        payload = payload or {}
        return cls(
            device_id=_optional_str(payload, "deviceId", "device_id"),
            command=_optional_str(payload, "command"),
            tags=_tags(payload),
            save_to_file=bool(payload.get("saveToFile", payload.get("save_to_file"))),
            sdb_path=_optional_str(payload, "sdbPath", "sdb_path"),
        )


@dataclass
class RemoteCaptureRequest:
    """Parameters of a start-remote-capture event."""

    host: str
    port: int = DEFAULT_SSH_PORT
    username: str = "root"
    password: str | None = None
    key_path: str | None = None
    command: str | None = None
    tags: list[str] = field(default_factory=list)
    save_to_file: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> RemoteCaptureRequest:
        payload = payload or {}
        host = _optional_str(payload, "host")
        if not host:
            raise ValueError("host is required")

        port = payload.get("port") or DEFAULT_SSH_PORT
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid port: {payload.get('port')!r}") from None
        if not 1 <= port <= 65535:
            raise ValueError(f"Invalid port: {port} (must be 1-65535)")

        return cls(
            host=host,
            port=port,
            username=_optional_str(payload, "username") or "root",
            password=_optional_str(payload, "password"),
            key_path=_optional_str(payload, "keyPath", "key_path", "key"),
            command=_optional_str(payload, "command"),
            tags=_tags(payload),
            save_to_file=bool(payload.get("saveToFile", payload.get("save_to_file"))),
        )

    @property
    def target(self) -> RemoteTarget:
        return RemoteTarget(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            key_path=self.key_path,
        )


@dataclass
class Session:
    """The live capture bound to one client connection and one transport."""

    client_id: str
    kind: TransportKind
    target: str
    command: str
    tags: tuple[str, ...] = ()
    status: SessionStatus = SessionStatus.PENDING
    transport: Transport | None = field(default=None, repr=False)
    recorder: CaptureRecorder | None = field(default=None, repr=False)
    emit: Emitter | None = field(default=None, repr=False, compare=False)
    chunks: int = 0
    bytes_received: int = 0
    start_time: float = field(default_factory=time.time)
    end_time: float | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "transport": self.kind.value,
            "target": self.target,
            "command": self.command,
            "tags": list(self.tags),
            "status": self.status.value,
            "chunks": self.chunks,
            "bytes_received": self.bytes_received,
            "recording": str(self.recorder.path) if self.recorder else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }
