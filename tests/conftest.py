"""Shared test fixtures — fake process launcher, fake SSH client, event sink."""

from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from dlogstream.config import DlogStreamConfig


class FakeStream:
    """Async byte stream the test feeds by hand."""

    def __init__(self, chunks: tuple[bytes, ...] = (), eof: bool = False) -> None:
        self._chunks: deque[bytes] = deque(chunks)
        self._eof = eof
        self._error: BaseException | None = None
        self._waiter: asyncio.Event | None = None

    def feed(self, data: bytes) -> None:
        self._chunks.append(data)
        self._wake()

    def feed_eof(self) -> None:
        self._eof = True
        self._wake()

    def fail(self, exc: BaseException) -> None:
        self._error = exc
        self._wake()

    def _wake(self) -> None:
        if self._waiter is not None:
            self._waiter.set()

    async def read(self, n: int = -1) -> bytes:
        while True:
            if self._chunks:
                return self._chunks.popleft()
            if self._error is not None:
                raise self._error
            if self._eof:
                return b""
            self._waiter = asyncio.Event()
            await self._waiter.wait()


class FakeProcess:
    """Stands in for an asyncio subprocess."""

    def __init__(
        self,
        pid: int,
        log: list,
        exit_code: int = 0,
        output: tuple[bytes, bytes] = (b"", b""),
        hang: bool = False,
    ) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.stdin = MagicMock()
        self.stdout = FakeStream()
        self.stderr = FakeStream(eof=True)
        self._log = log
        self._exit_code = exit_code
        self._output = output
        self._hang = hang
        self.terminate = MagicMock(side_effect=self._record_terminate)
        self.kill = MagicMock(side_effect=self._record_kill)

    def _record_terminate(self) -> None:
        self._log.append(("terminate", self.pid))

    def _record_kill(self) -> None:
        self._log.append(("kill", self.pid))

    async def wait(self) -> int:
        self.returncode = self._exit_code
        return self.returncode

    async def communicate(self) -> tuple[bytes, bytes]:
        if self._hang:
            await asyncio.Event().wait()
        self.returncode = self._exit_code
        return self._output


class FakeSpawner:
    """Replacement for ``asyncio.create_subprocess_exec``."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.kwargs: list[dict[str, Any]] = []
        self.processes: list[FakeProcess] = []
        self.log: list[tuple[str, Any]] = []
        self.error: BaseException | None = None
        self.exit_code = 0
        self.output: tuple[bytes, bytes] = (b"", b"")
        self.hang = False

    async def __call__(self, program: str, *args: str, **kwargs: Any) -> FakeProcess:
        argv = [program, *args]
        self.calls.append(argv)
        self.kwargs.append(kwargs)
        self.log.append(("spawn", argv))
        if self.error is not None:
            raise self.error
        process = FakeProcess(
            pid=1000 + len(self.processes),
            log=self.log,
            exit_code=self.exit_code,
            output=self.output,
            hang=self.hang,
        )
        self.processes.append(process)
        return process

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


class FakeSSHProcess:
    """Stands in for an asyncssh interactive shell process."""

    def __init__(self) -> None:
        self.stdin = MagicMock()
        self.stdout = FakeStream()
        self.close = MagicMock()


class FakeSSHConnection:
    def __init__(self) -> None:
        self.process = FakeSSHProcess()
        self.shell_kwargs: dict[str, Any] | None = None
        self.shell_error: BaseException | None = None
        self.close = MagicMock()

    async def create_process(self, **kwargs: Any) -> FakeSSHProcess:
        self.shell_kwargs = kwargs
        if self.shell_error is not None:
            raise self.shell_error
        return self.process


class FakeConnector:
    """Replacement for ``asyncssh.connect``.

    With ``hold`` set, connecting blocks until ``release()``, so the test decides
    when the server becomes ready.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, int, dict[str, Any]]] = []
        self.connections: list[FakeSSHConnection] = []
        self.error: BaseException | None = None
        self.hold = False
        self._gate: asyncio.Event | None = None

    async def __call__(self, host: str, port: int, **options: Any) -> FakeSSHConnection:
        self.calls.append((host, port, options))
        connection = FakeSSHConnection()
        self.connections.append(connection)
        if self.hold:
            self._gate = asyncio.Event()
            await self._gate.wait()
        if self.error is not None:
            raise self.error
        return connection

    def release(self) -> None:
        self.hold = False
        if self._gate is not None:
            self._gate.set()

    @property
    def connection(self) -> FakeSSHConnection:
        return self.connections[-1]


class ClientEvents:
    """Collects outbound client events in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def __call__(self, event: str, payload: Any) -> None:
        self.events.append((event, payload))

    def named(self, event: str) -> list[Any]:
        return [payload for name, payload in self.events if name == event]

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def events() -> ClientEvents:
    return ClientEvents()


@pytest.fixture
def config(tmp_path: Path) -> DlogStreamConfig:
    return DlogStreamConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        settle_delay=0.05,
        ssh_connect_timeout=1.0,
    )
