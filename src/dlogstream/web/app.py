"""FastAPI application factory for the dlogstream capture server."""

from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from dlogstream import __version__
from dlogstream.config import DlogStreamConfig
from dlogstream.session.manager import SessionManager

_FRONTEND_DIR = Path(__file__).parent / "frontend"


def create_app(
    config: DlogStreamConfig | None = None,
    manager: SessionManager | None = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or DlogStreamConfig.load()

    app = FastAPI(
        title="dlogstream",
        version=__version__,
        docs_url="/api/docs",
    )

    # One manager for every websocket client; sessions are keyed by client id
    app.state.config = config
    app.state.manager = manager or SessionManager(config=config)

    from dlogstream.web.api.devices import router as devices_router
    from dlogstream.web.api.live import router as live_router
    from dlogstream.web.api.sessions import router as sessions_router

    app.include_router(sessions_router, prefix="/api")
    app.include_router(devices_router, prefix="/api")
    app.include_router(live_router, prefix="/api")

    @app.get("/api/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "version": __version__,
            "sessions": len(app.state.manager.sessions()),
        }

    # Serve a bundled frontend build if one is installed next to the package
    if _FRONTEND_DIR.is_dir():
        app.mount(
            "/",
            StaticFiles(directory=str(_FRONTEND_DIR), html=True),
            name="frontend",
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        app.state.manager.shutdown()

    return app
