"""Remote capture — an interactive SSH shell that runs the log command.

The connect → shell → settle → write sequence is an explicit state machine.
Every event (connection ready, channel open, settle timer, output, EOF, error)
is posted to one queue and handled in order by a single dispatch task, so a
``stop()`` that lands during the settle delay is just another transition: the
late timer message finds the transport closed and writes nothing.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import asyncssh

from dlogstream.errors import (
    AuthenticationFailure,
    ChannelError,
    RemoteConnectionError,
    TransportError,
)
from dlogstream.transport.base import CHUNK_SIZE, TransportKind, TransportListener

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
DEFAULT_SETTLE_DELAY = 1.0

Connector = Callable[..., Awaitable[Any]]
# Answers one keyboard-interactive prompt: (prompt text, echo) -> response
Prompter = Callable[[str, bool], Awaitable[str]]


class RemoteState(enum.Enum):
    """Lifecycle of one remote shell capture."""

    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    SHELL_OPEN = "shell_open"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERRORED = "errored"


_TERMINAL = frozenset({RemoteState.CLOSED, RemoteState.ERRORED})


class _Msg(enum.Enum):
    READY = "ready"
    CHANNEL_OPEN = "channel_open"
    TIMER = "timer"
    DATA = "data"
    EOF = "eof"
    ERROR = "error"


@dataclass(frozen=True)
class RemoteTarget:
    """Where and as whom to open the shell."""

    host: str
    port: int = DEFAULT_SSH_PORT
    username: str = "root"
    password: str | None = None
    key_path: str | None = None

    def __str__(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


class _PromptRelayClient(asyncssh.SSHClient):
    """Answers keyboard-interactive challenges by asking the client, one prompt at a time."""

    def __init__(self, prompter: Prompter) -> None:
        self._prompter = prompter

    def kbdint_auth_requested(self) -> str:
        return ""

    async def kbdint_challenge_received(
        self,
        name: str,
        instructions: str,
        lang: str,
        prompts: list[tuple[str, bool]],
    ) -> list[str]:
        return [await self._prompter(prompt, echo) for prompt, echo in prompts]


class RemoteShellTransport:
    """Owns exactly one SSH connection and shell channel for one session."""

    kind = TransportKind.REMOTE

    def __init__(
        self,
        listener: TransportListener,
        connect: Connector | None = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        connect_timeout: float = 20.0,
        keepalive_interval: float = 10.0,
        term_type: str = "xterm",
        prompter: Prompter | None = None,
    ) -> None:
        self._listener = listener
        self._connect = connect or asyncssh.connect
        self._settle_delay = settle_delay
        self._connect_timeout = connect_timeout
        self._keepalive_interval = keepalive_interval
        self._term_type = term_type
        self._prompter = prompter

        self._state = RemoteState.IDLE
        self._command = ""
        self._queue: asyncio.Queue[tuple[_Msg, Any]] | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._timer: asyncio.TimerHandle | None = None
        self._conn: Any = None
        self._process: Any = None

    @property
    def state(self) -> RemoteState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state not in _TERMINAL and self._state is not RemoteState.IDLE

    async def start(self, target: RemoteTarget, command: str) -> None:
        """Begin connecting. Returns once the attempt is under way."""
        if self._state is not RemoteState.IDLE:
            raise RuntimeError("RemoteShellTransport already started")
        self._command = command
        self._queue = asyncio.Queue()
        self._state = RemoteState.CONNECTING
        logger.info("Connecting to %s", target)
        self._spawn(self._dispatch_loop())
        self._spawn(self._open_connection(target))

    def stop(self) -> None:
        """End the connection (and with it the channel). Idempotent."""
        if self._state in _TERMINAL:
            return
        logger.info("Closing SSH session (state %s)", self._state.value)
        self._state = RemoteState.CLOSED
        self._release()

    def write(self, data: str) -> bool:
        if self._state not in (RemoteState.SHELL_OPEN, RemoteState.STREAMING):
            return False
        try:
            self._process.stdin.write(data.encode("utf-8"))
        except (OSError, asyncssh.Error) as exc:
            self._post(_Msg.ERROR, ChannelError(f"Shell write failed: {exc}"))
            return False
        return True

    # -- producers: each posts messages, never touches state ---------------

    async def _open_connection(self, target: RemoteTarget) -> None:
        options: dict[str, Any] = {
            "username": target.username,
            "known_hosts": None,
            "keepalive_interval": self._keepalive_interval,
            "keepalive_count_max": 3,
        }
        if target.password is not None:
            options["password"] = target.password
        if target.key_path:
            options["client_keys"] = [target.key_path]
        if target.password is None and self._prompter is not None:
            prompter = self._prompter
            options["client_factory"] = lambda: _PromptRelayClient(prompter)

        try:
            conn = await asyncio.wait_for(
                self._connect(target.host, target.port, **options),
                timeout=self._connect_timeout,
            )
        except asyncssh.PermissionDenied as exc:
            self._post(
                _Msg.ERROR,
                AuthenticationFailure(
                    f"Authentication failed with provided credentials: {exc}"
                ),
            )
        except asyncio.TimeoutError:
            self._post(
                _Msg.ERROR,
                RemoteConnectionError(
                    f"Connection timed out after {self._connect_timeout:g}s"
                ),
            )
        except ConnectionRefusedError as exc:
            self._post(
                _Msg.ERROR,
                RemoteConnectionError(
                    f"Connection refused (is SSH enabled on the device?): {exc}"
                ),
            )
        except (OSError, asyncssh.Error, ValueError) as exc:
            self._post(_Msg.ERROR, RemoteConnectionError(f"SSH error: {exc}"))
        except Exception as exc:
            logger.exception("Unexpected error connecting to %s", target)
            self._post(_Msg.ERROR, RemoteConnectionError(f"SSH error: {exc}"))
        else:
            self._post(_Msg.READY, conn)

    async def _open_shell(self, conn: Any) -> None:
        try:
            process = await conn.create_process(
                term_type=self._term_type, encoding=None
            )
        except (OSError, asyncssh.Error) as exc:
            self._post(_Msg.ERROR, ChannelError(f"Shell error: {exc}"))
        else:
            self._post(_Msg.CHANNEL_OPEN, process)

    async def _pump_output(self, process: Any) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while chunk := await process.stdout.read(CHUNK_SIZE):
                text = decoder.decode(chunk)
                if text:
                    self._post(_Msg.DATA, text)
        except (asyncssh.ConnectionLost, asyncssh.DisconnectError) as exc:
            self._post(_Msg.ERROR, RemoteConnectionError(f"SSH error: {exc}"))
            return
        except (OSError, asyncssh.Error) as exc:
            self._post(_Msg.ERROR, ChannelError(f"Shell error: {exc}"))
            return
        self._post(_Msg.EOF, None)

    # -- consumer ----------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        assert self._queue is not None
        while self._state not in _TERMINAL:
            kind, payload = await self._queue.get()
            self._handle(kind, payload)

    def _handle(self, kind: _Msg, payload: Any) -> None:
        if kind is _Msg.READY:
            self._on_connection_ready(payload)
        elif kind is _Msg.CHANNEL_OPEN:
            self._on_channel_open(payload)
        elif kind is _Msg.TIMER:
            self._on_settled()
        elif kind is _Msg.DATA:
            if self._state in (RemoteState.SHELL_OPEN, RemoteState.STREAMING):
                self._listener.on_data(payload)
        elif kind is _Msg.EOF:
            if self._state not in _TERMINAL:
                logger.info("SSH shell closed")
                self._state = RemoteState.CLOSED
                self._release()
                self._listener.on_closed("Shell closed")
        elif kind is _Msg.ERROR:
            self._on_error(payload)

    def _on_connection_ready(self, conn: Any) -> None:
        if self._state is not RemoteState.CONNECTING:
            conn.close()
            return
        logger.info("SSH connection ready, requesting shell")
        self._state = RemoteState.READY
        self._conn = conn
        self._spawn(self._open_shell(conn))

    def _on_channel_open(self, process: Any) -> None:
        if self._state is not RemoteState.READY:
            process.close()
            return
        logger.info("SSH shell open, sending command in %gs", self._settle_delay)
        self._state = RemoteState.SHELL_OPEN
        self._process = process
        self._spawn(self._pump_output(process))
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._settle_delay, self._post, _Msg.TIMER, None)
        self._listener.on_ready("SSH Shell Connected")

    def _on_settled(self) -> None:
        self._timer = None
        if self._state is not RemoteState.SHELL_OPEN:
            return
        line = self._command.rstrip("\n") + "\n"
        try:
            self._process.stdin.write(line.encode("utf-8"))
        except (OSError, asyncssh.Error) as exc:
            self._on_error(ChannelError(f"Failed to send command: {exc}"))
            return
        logger.debug("Command sent to shell: %s", self._command.strip())
        self._state = RemoteState.STREAMING

    def _on_error(self, error: TransportError) -> None:
        if self._state in _TERMINAL:
            return
        logger.warning(
            "SSH transport error in state %s: %s", self._state.value, error.message
        )
        self._state = RemoteState.ERRORED
        self._release()
        self._listener.on_error(error)

    # -- plumbing ----------------------------------------------------------

    def _post(self, kind: _Msg, payload: Any) -> None:
        if self._queue is not None:
            self._queue.put_nowait((kind, payload))

    def _spawn(self, coro: Awaitable[None]) -> None:
        self._tasks.append(asyncio.ensure_future(coro))

    def _release(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        current = asyncio.current_task() if self._tasks else None
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._tasks = [t for t in self._tasks if t is current]

        # A connection or channel may be queued but not yet handled
        while self._queue is not None and not self._queue.empty():
            kind, payload = self._queue.get_nowait()
            if kind in (_Msg.READY, _Msg.CHANNEL_OPEN):
                payload.close()

        if self._conn is not None:
            try:
                self._conn.close()
            except (OSError, asyncssh.Error):
                logger.debug("Error closing SSH connection", exc_info=True)
            self._conn = None
        self._process = None
