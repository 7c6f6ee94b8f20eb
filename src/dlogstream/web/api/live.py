"""WebSocket endpoint — one socket is one client connection.

Frames in both directions are ``{"event": name, "data": payload}``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dlogstream.session.handler import ConnectionHandler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


async def _pump_outbox(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        event, payload = await outbox.get()
        await websocket.send_text(json.dumps({"event": event, "data": payload}))


@router.websocket("/ws/capture")
async def capture_ws(websocket: WebSocket):
    """Accept capture commands and stream log events back on one socket."""
    await websocket.accept()

    client_id = uuid.uuid4().hex[:12]
    outbox: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

    def emit(event: str, payload: Any) -> None:
        outbox.put_nowait((event, payload))

    handler = ConnectionHandler(client_id, emit, manager=websocket.app.state.manager)
    sender = asyncio.ensure_future(_pump_outbox(websocket, outbox))
    logger.info("Client %s connected", client_id)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                message = None
            if not isinstance(message, dict) or "event" not in message:
                logger.debug("Client %s: malformed frame %r", client_id, message)
                continue
            try:
                await handler.dispatch(message["event"], message.get("data"))
            except Exception:
                logger.exception(
                    "Client %s: %r handler failed", client_id, message["event"]
                )
    except WebSocketDisconnect:
        pass
    finally:
        handler.close()
        sender.cancel()
        logger.info("Client %s disconnected", client_id)
