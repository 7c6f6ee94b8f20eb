"""Session manager — one live capture per client, relayed as client events."""

from __future__ import annotations

import asyncio
import logging
import time

from dlogstream.command import CommandResolver, TemplateResolver
from dlogstream.config import DlogStreamConfig
from dlogstream.errors import TransportError
from dlogstream.recorder import CaptureRecorder
from dlogstream.session.models import (
    AUTH_REQUEST,
    CAPTURE_STATUS,
    ERROR_EVENTS,
    LOG_DATA,
    Emitter,
    LocalCaptureRequest,
    RemoteCaptureRequest,
    Session,
    SessionStatus,
)
from dlogstream.transport.base import TransportKind
from dlogstream.transport.process import ProcessTransport, Spawner
from dlogstream.transport.remote import Connector, RemoteShellTransport

logger = logging.getLogger(__name__)


def _status_payload(session: Session, status: str, message: str) -> dict[str, str]:
    return {"transport": session.kind.value, "status": status, "message": message}


class _SessionListener:
    """Relays one session's transport callbacks onto its client.

    Every callback is dropped once the session is no longer the client's
    current one, so a torn-down session can never reach the client.
    """

    def __init__(self, manager: SessionManager, session: Session, emit: Emitter) -> None:
        self._manager = manager
        self._session = session
        self._emit = emit

    @property
    def _live(self) -> bool:
        return self._manager.get(self._session.client_id) is self._session

    def on_ready(self, message: str) -> None:
        if not self._live:
            return
        self._session.status = SessionStatus.RUNNING
        self._emit(CAPTURE_STATUS, _status_payload(self._session, "connected", message))

    def on_data(self, text: str) -> None:
        if not self._live:
            return
        session = self._session
        session.chunks += 1
        session.bytes_received += len(text)
        if session.recorder is not None:
            session.recorder.write(text)
        self._emit(LOG_DATA, text)

    def on_error(self, error: TransportError) -> None:
        if not self._live:
            return
        self._session.status = SessionStatus.ERROR
        self._emit(ERROR_EVENTS[self._session.kind], error.to_payload())
        self._manager._release(self._session)

    def on_closed(self, reason: str) -> None:
        if not self._live:
            return
        self._emit(CAPTURE_STATUS, _status_payload(self._session, "disconnected", reason))
        self._manager._release(self._session)

    async def prompt(self, text: str, echo: bool) -> str:
        """Ask the client to answer one keyboard-interactive prompt."""
        if not self._live:
            return ""
        return await self._manager._ask(self._session, self._emit, text, echo)


class SessionManager:
    """Owns the table of live sessions, keyed by client connection id."""

    def __init__(
        self,
        config: DlogStreamConfig | None = None,
        resolver: CommandResolver | None = None,
        spawn: Spawner | None = None,
        ssh_connect: Connector | None = None,
    ) -> None:
        self._config = config or DlogStreamConfig.load()
        self._resolver = resolver or TemplateResolver(self._config.default_commands)
        self._spawn = spawn
        self._ssh_connect = ssh_connect
        self._sessions: dict[str, Session] = {}
        self._auth_waiters: dict[str, asyncio.Future[str]] = {}

    @property
    def config(self) -> DlogStreamConfig:
        return self._config

    def get(self, client_id: str) -> Session | None:
        return self._sessions.get(client_id)

    def find(self, session_id: str) -> Session | None:
        for session in self._sessions.values():
            if session.id == session_id:
                return session
        return None

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    async def start_local(
        self, client_id: str, request: LocalCaptureRequest, emit: Emitter
    ) -> Session:
        """Replace the client's capture with an sdb shell capture."""
        self.teardown(client_id)

        kind = TransportKind.LOCAL
        command = self._resolver.resolve(request.command, request.tags, kind)
        session = Session(
            client_id=client_id,
            kind=kind,
            target=request.device_id or "default",
            command=command,
            tags=tuple(request.tags),
            emit=emit,
        )
        transport = ProcessTransport(
            _SessionListener(self, session, emit),
            sdb_path=request.sdb_path or self._config.sdb_path,
            spawn=self._spawn,
        )
        session.transport = transport
        self._install(session, emit, request.save_to_file)

        logger.info(
            "Client %s: local capture on %s: %s", client_id, session.target, command
        )
        await transport.start(request.device_id, self._resolver.tokenize(command))
        return session

    async def start_remote(
        self, client_id: str, request: RemoteCaptureRequest, emit: Emitter
    ) -> Session:
        """Replace the client's capture with an SSH shell capture."""
        self.teardown(client_id)

        kind = TransportKind.REMOTE
        target = request.target
        command = self._resolver.resolve(request.command, request.tags, kind)
        session = Session(
            client_id=client_id,
            kind=kind,
            target=str(target),
            command=command,
            tags=tuple(request.tags),
            emit=emit,
        )
        listener = _SessionListener(self, session, emit)
        transport = RemoteShellTransport(
            listener,
            connect=self._ssh_connect,
            settle_delay=self._config.settle_delay,
            connect_timeout=self._config.ssh_connect_timeout,
            keepalive_interval=self._config.ssh_keepalive_interval,
            prompter=listener.prompt,
        )
        session.transport = transport
        self._install(session, emit, request.save_to_file)

        logger.info(
            "Client %s: remote capture on %s: %s", client_id, session.target, command
        )
        await transport.start(target, command)
        return session

    def stop(self, client_id: str, message: str = "Disconnected by user") -> bool:
        """Tear down the client's session and tell the client it ended."""
        session = self._sessions.get(client_id)
        if session is None or not self.teardown(client_id):
            return False
        if session.emit is not None:
            session.emit(CAPTURE_STATUS, _status_payload(session, "disconnected", message))
        return True

    def teardown(self, client_id: str) -> bool:
        """Stop and forget the client's session. Returns False if it had none."""
        session = self._sessions.pop(client_id, None)
        if session is None:
            return False
        logger.info(
            "Client %s: tearing down %s session %s",
            client_id,
            session.kind.value,
            session.id,
        )
        self._close(session)
        if session.status is not SessionStatus.ERROR:
            session.status = SessionStatus.STOPPED
        return True

    def on_disconnect(self, client_id: str) -> bool:
        """The client connection went away — release everything it owned."""
        return self.teardown(client_id)

    def write(self, client_id: str, data: str) -> bool:
        """Forward raw input to the client's live transport."""
        session = self._sessions.get(client_id)
        if session is None or session.transport is None:
            return False
        return session.transport.write(data)

    def answer_auth(self, client_id: str, response: str) -> bool:
        """Deliver the client's answer to a pending keyboard-interactive prompt."""
        waiter = self._auth_waiters.pop(client_id, None)
        if waiter is None or waiter.done():
            return False
        waiter.set_result(response)
        return True

    def shutdown(self) -> None:
        """Tear down every session (server shutdown)."""
        for client_id in list(self._sessions):
            self.teardown(client_id)

    async def _ask(self, session: Session, emit: Emitter, text: str, echo: bool) -> str:
        client_id = session.client_id
        waiter = asyncio.get_running_loop().create_future()
        previous = self._auth_waiters.pop(client_id, None)
        if previous is not None:
            previous.cancel()
        self._auth_waiters[client_id] = waiter
        emit(AUTH_REQUEST, {"prompt": text, "echo": echo})
        try:
            return await waiter
        finally:
            if self._auth_waiters.get(client_id) is waiter:
                del self._auth_waiters[client_id]

    def _install(self, session: Session, emit: Emitter, save_to_file: bool) -> None:
        if save_to_file:
            try:
                session.recorder = CaptureRecorder.for_session(
                    self._config.capture_dir, session.kind
                )
            except OSError as exc:
                logger.warning("Cannot open capture file: %s", exc)
            else:
                emit(
                    CAPTURE_STATUS,
                    _status_payload(
                        session,
                        "recording",
                        f"Saving logs to file: {session.recorder.path.name}",
                    ),
                )
        self._sessions[session.client_id] = session

    def _release(self, session: Session) -> None:
        """The transport ended on its own — drop the session if still current."""
        if self._sessions.get(session.client_id) is not session:
            return
        del self._sessions[session.client_id]
        self._close(session)
        if session.status is not SessionStatus.ERROR:
            session.status = SessionStatus.STOPPED

    def _close(self, session: Session) -> None:
        waiter = self._auth_waiters.pop(session.client_id, None)
        if waiter is not None:
            waiter.cancel()
        if session.transport is not None:
            session.transport.stop()
        if session.recorder is not None:
            session.recorder.close()
        session.end_time = time.time()
