"""REST API for sdb device discovery."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dlogstream import devices
from dlogstream.errors import TransportError

router = APIRouter(tags=["devices"])


class DeviceConnect(BaseModel):
    ip: str
    sdb_path: str | None = None


@router.get("/devices")
async def list_devices(request: Request):
    config = request.app.state.config
    try:
        found = await devices.list_devices(config.sdb_path)
    except TransportError as exc:
        return JSONResponse(status_code=502, content={"detail": exc.message})
    return [d.to_dict() for d in found]


@router.post("/devices/connect")
async def connect_device(body: DeviceConnect, request: Request):
    config = request.app.state.config
    try:
        result = await devices.connect_device(
            body.ip,
            body.sdb_path or config.sdb_path,
            timeout=config.device_connect_timeout,
        )
    except TransportError as exc:
        return JSONResponse(status_code=502, content={"detail": exc.message})
    return result.to_dict()
