"""Local capture — an ``sdb shell`` subprocess streaming device logs to stdout."""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from dlogstream.errors import LaunchFailure, ProcessRuntimeError
from dlogstream.transport.base import CHUNK_SIZE, TransportKind, TransportListener

logger = logging.getLogger(__name__)

# Device id the UI sends when the user did not pick one
AUTO_DETECT = "auto-detect"

Spawner = Callable[..., Awaitable[Any]]


def device_args(device_id: str | None) -> list[str]:
    """sdb arguments selecting the target device (none means the only one)."""
    if device_id and device_id != AUTO_DETECT:
        return ["-s", device_id]
    return []


class ProcessTransport:
    """Owns exactly one ``sdb`` process for one capture session."""

    kind = TransportKind.LOCAL

    def __init__(
        self,
        listener: TransportListener,
        sdb_path: str = "sdb",
        spawn: Spawner | None = None,
    ) -> None:
        self._listener = listener
        self._sdb_path = sdb_path
        self._spawn = spawn or asyncio.create_subprocess_exec
        self._process: Any = None
        self._tasks: list[asyncio.Task[None]] = []
        self._started = False
        self._finished = False

    @property
    def is_active(self) -> bool:
        return self._started and not self._finished

    async def start(self, device_id: str | None, argv: Sequence[str]) -> None:
        """Spawn ``sdb [-s DEVICE] shell ARGV...`` and start forwarding output."""
        if self._started:
            raise RuntimeError("ProcessTransport already started")
        self._started = True

        args = [*device_args(device_id), "shell", *argv]
        logger.debug("Spawning %s %s", self._sdb_path, " ".join(args))
        try:
            process = await self._spawn(
                self._sdb_path,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            self._fail(
                LaunchFailure(
                    f"SDB command not found ({exc}). Install Tizen Studio and "
                    "add sdb to your PATH."
                )
            )
            return
        except (OSError, ValueError) as exc:
            # ValueError: an argument holds a NUL byte
            self._fail(LaunchFailure(f"Failed to start SDB process: {exc}"))
            return

        if self._finished:
            # stop() arrived while the spawn was in flight
            self._terminate(process)
            return

        self._process = process
        logger.info(
            "SDB shell started for %s (PID %s)", device_id or "default", process.pid
        )
        self._listener.on_ready(f"SDB Shell Connected to {device_id or 'default'}")

        self._tasks = [
            asyncio.ensure_future(self._pump_stdout()),
            asyncio.ensure_future(self._drain_stderr()),
        ]

    def stop(self) -> None:
        """Terminate the process. Safe to call repeatedly or after exit."""
        if self._finished:
            return
        self._finished = True
        self._cancel_tasks()
        if self._process is not None:
            self._terminate(self._process)

    def write(self, data: str) -> bool:
        if not self.is_active or self._process is None or self._process.stdin is None:
            return False
        try:
            self._process.stdin.write(data.encode("utf-8"))
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("SDB stdin closed, input dropped")
            return False
        return True

    async def _pump_stdout(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while chunk := await self._process.stdout.read(CHUNK_SIZE):
                if self._finished:
                    return
                text = decoder.decode(chunk)
                if text:
                    self._listener.on_data(text)
            returncode = await self._process.wait()
        except OSError as exc:
            if not self._finished:
                self._fail(ProcessRuntimeError(f"SDB error: {exc}"))
            return

        if self._finished:
            return
        self._finished = True
        logger.info("SDB process exited with code %s", returncode)
        self._listener.on_closed(f"SDB Exited (Code: {returncode})")

    async def _drain_stderr(self) -> None:
        stderr = self._process.stderr
        if stderr is None:
            return
        try:
            while chunk := await stderr.read(CHUNK_SIZE):
                logger.debug("SDB stderr: %s", chunk.decode("utf-8", "replace").rstrip())
        except OSError:
            logger.debug("SDB stderr closed", exc_info=True)

    def _fail(self, error: LaunchFailure | ProcessRuntimeError) -> None:
        logger.warning("SDB transport error: %s", error.message)
        self._finished = True
        self._cancel_tasks()
        if self._process is not None:
            self._terminate(self._process)
        self._listener.on_error(error)

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task() if self._tasks else None
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

    @staticmethod
    def _terminate(process: Any) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            logger.debug("SDB process %s already exited", process.pid)
