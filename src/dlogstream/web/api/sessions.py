"""REST API for live capture sessions."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["sessions"])


@router.get("/sessions")
async def list_sessions(request: Request):
    manager = request.app.state.manager
    return [session.to_dict() for session in manager.sessions()]


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request):
    session = request.app.state.manager.find(session_id)
    if session is None:
        return JSONResponse(
            status_code=404,
            content={"detail": "Session not found"},
        )
    return session.to_dict()


@router.post("/sessions/{session_id}/stop")
async def stop_session(session_id: str, request: Request):
    manager = request.app.state.manager
    session = manager.find(session_id)
    if session is None:
        return JSONResponse(
            status_code=404,
            content={"detail": "Session not found"},
        )

    manager.stop(session.client_id, "Capture stopped by server request")
    return {"status": "stopped", "session_id": session_id}
