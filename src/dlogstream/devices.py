"""sdb device discovery — list attached devices, connect network devices."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass

from dlogstream.errors import LaunchFailure, ProcessRuntimeError
from dlogstream.transport.process import Spawner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Device:
    """One line of ``sdb devices`` output."""

    id: str
    type: str = "device"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class ConnectResult:
    success: bool
    message: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def parse_devices(output: str) -> list[Device]:
    """Parse ``sdb devices`` output, keeping only usable devices and emulators."""
    devices: list[Device] = []
    for line in output.splitlines():
        if "\tdevice" not in line and "\temulator" not in line:
            continue
        parts = line.split("\t")
        device_id = parts[0].strip()
        kind = parts[1].strip() if len(parts) > 1 and parts[1].strip() else "device"
        devices.append(Device(id=device_id, type=kind))
    return devices


async def _run_sdb(
    sdb_path: str,
    args: list[str],
    spawn: Spawner | None,
    timeout: float | None = None,
) -> tuple[int | None, str, str]:
    """Run one sdb command to completion; returns (code, stdout, stderr)."""
    spawn = spawn or asyncio.create_subprocess_exec
    try:
        process = await spawn(
            sdb_path,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise LaunchFailure(
            f"SDB command not found ({exc}). Install Tizen Studio and add sdb "
            "to your PATH."
        ) from exc
    except (OSError, ValueError) as exc:
        raise LaunchFailure(f"Failed to execute sdb: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug("sdb %s already exited", args[0])
        raise
    return (
        process.returncode,
        (stdout or b"").decode("utf-8", "replace"),
        (stderr or b"").decode("utf-8", "replace"),
    )


async def list_devices(
    sdb_path: str = "sdb", spawn: Spawner | None = None
) -> list[Device]:
    """Return the devices ``sdb devices`` reports as attached."""
    code, stdout, stderr = await _run_sdb(sdb_path, ["devices"], spawn)
    if code != 0:
        logger.warning("sdb devices exited with %s: %s", code, stderr.strip())
        raise ProcessRuntimeError("Failed to list sdb devices")
    devices = parse_devices(stdout)
    logger.debug("Found %d sdb device(s)", len(devices))
    return devices


async def connect_device(
    ip: str,
    sdb_path: str = "sdb",
    spawn: Spawner | None = None,
    timeout: float = 10.0,
) -> ConnectResult:
    """Attach a network device with ``sdb connect IP``."""
    try:
        _, stdout, stderr = await _run_sdb(sdb_path, ["connect", ip], spawn, timeout)
    except asyncio.TimeoutError:
        logger.warning("sdb connect %s timed out after %gs", ip, timeout)
        return ConnectResult(False, f"Connecting to {ip} timed out after {timeout:g}s")

    output = stdout + stderr
    if f"connected to {ip}" in output or "already connected" in output:
        logger.info("sdb connected to %s", ip)
        return ConnectResult(True, f"Connected to {ip}")
    return ConnectResult(False, f"Failed: {output.strip()}")
