"""Transport error hierarchy — every failure the client can be told about."""

from __future__ import annotations

from dlogstream.transport.base import TransportKind


class TransportError(Exception):
    """Base class for capture failures reported to the client."""

    kind = "transport_error"
    transport = TransportKind.LOCAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"message": self.message, "kind": self.kind}


class LaunchFailure(TransportError):
    """The sdb executable is missing or could not be spawned."""

    kind = "launch_failure"


class ProcessRuntimeError(TransportError):
    """The sdb process failed after it was launched."""

    kind = "process_error"


class AuthenticationFailure(TransportError):
    """The SSH server rejected the supplied credentials."""

    kind = "authentication_failure"
    transport = TransportKind.REMOTE


class RemoteConnectionError(TransportError):
    """Network-level SSH failure, in any phase."""

    kind = "connection_error"
    transport = TransportKind.REMOTE


class ChannelError(TransportError):
    """The interactive shell channel could not be opened or failed."""

    kind = "channel_error"
    transport = TransportKind.REMOTE
