"""Transport protocols — every capture transport and its listener satisfy these."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from dlogstream.errors import TransportError

# Bytes requested per read from a process pipe or shell channel
CHUNK_SIZE = 4096


class TransportKind(enum.Enum):
    """Which path a capture takes to the device."""

    LOCAL = "local"
    REMOTE = "remote"


class TransportListener(Protocol):
    """Receives lifecycle notifications from a running transport."""

    def on_ready(self, message: str) -> None:
        """The transport is connected and output may start flowing."""
        ...

    def on_data(self, text: str) -> None:
        """One decoded chunk of captured output."""
        ...

    def on_error(self, error: TransportError) -> None:
        """The transport failed. No further callbacks follow."""
        ...

    def on_closed(self, reason: str) -> None:
        """The process exited or the shell closed. No further callbacks follow."""
        ...


@runtime_checkable
class Transport(Protocol):
    """Owned handle to one running capture."""

    kind: TransportKind

    def stop(self) -> None:
        """Release the underlying process or connection. Idempotent."""
        ...

    def write(self, data: str) -> bool:
        """Send raw input to the device side. Returns False if not writable."""
        ...

    @property
    def is_active(self) -> bool:
        """Whether the transport may still deliver callbacks."""
        ...
